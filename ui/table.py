from typing import Dict, Optional

from PyQt5.QtWidgets import QFormLayout, QLabel, QLineEdit, QTabWidget, QVBoxLayout, QWidget
from loguru import logger

from modules.columns import render_boolean
from modules.orchestrator import GridHandle, GridListener, LazyGridOrchestrator, RowExpansion
from network.errors import ConfigIntegrityError, GridError
from schema.table import RenderStrategy, SlotKey
from ui.table_base import ColumnGridWidget


class TabPage(QWidget):
    """Место под дочерний грид внутри вкладки"""
    def __init__(self, title: str):
        super().__init__()
        self.page_layout = QVBoxLayout(self)
        self.page_layout.addWidget(QLabel(f"<b>{title}</b>"))
        self.status = QLabel()
        self.page_layout.addWidget(self.status)
        self.content: Optional[QWidget] = None

    def show_loading(self):
        self.status.setText("Загрузка данных...")
        self.status.setVisible(True)

    def show_error(self, error: GridError):
        prefix = "Ошибка конфигурации" if isinstance(error, ConfigIntegrityError) else "Ошибка загрузки"
        self.status.setText(f"{prefix}: {error}")
        self.status.setVisible(True)

    def set_content(self, widget: QWidget):
        self.clear_content()
        self.status.setVisible(False)
        self.content = widget
        self.page_layout.addWidget(widget)

    def clear_content(self):
        if self.content is not None:
            self.page_layout.removeWidget(self.content)
            self.content.deleteLater()
            self.content = None


class DetailPanel(QWidget):
    """Раскрытая строка: поля записи и вкладки дочерних таблиц"""
    def __init__(self, expansion: RowExpansion, row_index: int, orchestrator: LazyGridOrchestrator):
        super().__init__()
        self.expansion = expansion
        self.row_index = row_index
        self.orchestrator = orchestrator
        self.pages: Dict[SlotKey, TabPage] = {}

        layout = QVBoxLayout(self)
        info = QFormLayout()
        template = expansion.template
        for item in template.info_items if template else []:
            value = expansion.record.get(item.field)
            text = render_boolean(value) if item.strategy is RenderStrategy.BOOLEAN else ("" if value is None else str(value))
            info.addRow(f"{item.label}:", QLabel(text))
        layout.addLayout(info)

        self.tabs = QTabWidget()
        if template and template.has_tabs:
            for key, tab in zip(expansion.slot_keys, template.tabs):
                page = TabPage(tab.label)
                page.setObjectName(tab.slot_id)
                self.pages[key] = page
                self.tabs.addTab(page, tab.label)
            self.tabs.currentChanged.connect(self.activate)
            layout.addWidget(self.tabs)

    def activate(self, index: int):
        if index < 0:
            return
        self.orchestrator.activate_tab(self.expansion.grid_key, self.expansion.record, index, self.row_index)


class HierarchicalGridWidget(QWidget):
    """Грид уровня и панель раскрытой строки под ним"""
    def __init__(self, handle: GridHandle, orchestrator: LazyGridOrchestrator, view: "GridView"):
        super().__init__()
        self.handle = handle
        self.orchestrator = orchestrator
        self.view = view
        self.detail: Optional[DetailPanel] = None
        self.expanded_row: Optional[int] = None

        layout = QVBoxLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)
        self.grid = ColumnGridWidget(handle.columns, handle.rows, handle.options)
        self.grid.expand_requested.connect(self.toggle_row)
        self.grid.view_requested.connect(view.view_record)
        self.grid.edit_requested.connect(view.edit_record)
        self.grid.delete_requested.connect(lambda record_id: view.delete_record(record_id, handle.key))
        if handle.options.allow_filtering:
            self.search = QLineEdit()
            self.search.setPlaceholderText("Поиск...")
            self.search.textEdited.connect(self.grid.set_filter)
            layout.addWidget(self.search)
        layout.addWidget(self.grid)

    def toggle_row(self, row: int):
        record = self.handle.rows[row]
        if self.expanded_row == row:
            self.orchestrator.collapse_row(self.handle.key, record, row)
            self.clear_detail()
            return
        if self.expanded_row is not None:
            self.orchestrator.collapse_row(self.handle.key, self.handle.rows[self.expanded_row], self.expanded_row)
        self.expanded_row = row
        self.orchestrator.expand_row(self.handle.key, record, row)

    def show_detail(self, expansion: RowExpansion):
        self.clear_detail(keep_row=True)
        self.detail = DetailPanel(expansion, self.expanded_row, self.orchestrator)
        for key, page in self.detail.pages.items():
            self.view.pages[key] = page
        self.layout().addWidget(self.detail)
        if self.detail.tabs.count():
            self.detail.activate(self.detail.tabs.currentIndex())

    def clear_detail(self, keep_row: bool = False):
        if self.detail is not None:
            self.layout().removeWidget(self.detail)
            self.detail.deleteLater()
            self.detail = None
        if not keep_row:
            self.expanded_row = None


class GridView(GridListener):
    """Связывает события оркестратора с виджетами"""
    def __init__(self, container: QVBoxLayout, app):
        self.container = container
        self.app = app
        self.orchestrator: Optional[LazyGridOrchestrator] = None
        self.root: Optional[HierarchicalGridWidget] = None
        self.grids: Dict[SlotKey, HierarchicalGridWidget] = {}
        self.pages: Dict[SlotKey, TabPage] = {}

    def root_loaded(self, handle: GridHandle) -> None:
        if self.root is not None:
            self.container.removeWidget(self.root)
            self.root.deleteLater()
        self.grids.clear()
        self.pages.clear()
        self.root = HierarchicalGridWidget(handle, self.orchestrator, self)
        self.grids[handle.key] = self.root
        self.container.addWidget(self.root)
        self.app.hide_loading()

    def root_failed(self, error: GridError) -> None:
        self.app.show_error(str(error))

    def row_expanded(self, expansion: RowExpansion) -> None:
        widget = self.grids.get(expansion.grid_key)
        if widget is None:
            logger.warning(f"Нет виджета для грида {expansion.grid_key.slot_id}")
            return
        widget.show_detail(expansion)

    def slot_loading(self, key: SlotKey) -> None:
        page = self.pages.get(key)
        if page is not None:
            page.show_loading()

    def slot_loaded(self, handle: GridHandle) -> None:
        page = self.pages.get(handle.key)
        if page is None:
            return
        widget = HierarchicalGridWidget(handle, self.orchestrator, self)
        self.grids[handle.key] = widget
        page.set_content(widget)

    def slot_failed(self, key: SlotKey, error: GridError) -> None:
        page = self.pages.get(key)
        if page is not None:
            page.show_error(error)
        else:
            self.app.show_error(str(error))

    def slot_destroyed(self, key: SlotKey) -> None:
        self.grids.pop(key, None)
        self.pages.pop(key, None)

    def view_record(self, record_id):
        self.app.open_url(self.app.connection.view_url(self.app.current_endpoint(), record_id))

    def edit_record(self, record_id):
        self.app.open_url(self.app.connection.edit_url(self.app.current_endpoint(), record_id))

    def delete_record(self, record_id, grid_key: Optional[SlotKey] = None):
        self.app.confirm_delete(record_id, grid_key)

    def record_deleted(self, record_id, ack) -> None:
        self.app.show_info(f"Запись {record_id} удалена")

    def delete_failed(self, record_id, error: GridError) -> None:
        self.app.show_error(f"Ошибка удаления записи: {error}")
