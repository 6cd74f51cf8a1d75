from typing import Any, Dict, List

from PyQt5.QtCore import Qt, pyqtSignal
from PyQt5.QtGui import QKeySequence
from PyQt5.QtWidgets import (
    QAbstractItemView, QAction, QHeaderView, QLabel, QMenu, QTableWidget, QTableWidgetItem,
)
from loguru import logger

from modules.columns import matches_filter, render_value
from schema.table import ColumnSpec, GridOptions, RenderStrategy
from ui.utils import SafeTableInserter


class ColumnGridWidget(QTableWidget):
    """Грид для одного уровня: колонки ColumnSpec и строки-словари"""
    expand_requested = pyqtSignal(int)
    view_requested = pyqtSignal(object)
    edit_requested = pyqtSignal(object)
    delete_requested = pyqtSignal(object)

    def __init__(self, columns: List[ColumnSpec], rows: List[Dict[str, Any]], options: GridOptions):
        super().__init__()
        self.columns = columns
        self.rows = rows
        self.options = options

        self.verticalHeader().setVisible(False)
        self.horizontalHeader().setSectionResizeMode(
            QHeaderView.Interactive if options.allow_resizing else QHeaderView.Fixed
        )
        self.setSelectionBehavior(QAbstractItemView.SelectRows)
        self.setSelectionMode(QAbstractItemView.SingleSelection)
        self.setEditTriggers(QAbstractItemView.NoEditTriggers)

        self.view_action = QAction("Открыть запись", self)
        self.view_action.triggered.connect(lambda: self._emit_for_selected(self.view_requested))
        self.addAction(self.view_action)

        self.edit_action = QAction("Изменить запись", self)
        self.edit_action.triggered.connect(lambda: self._emit_for_selected(self.edit_requested))
        self.addAction(self.edit_action)

        self.delete_action = QAction("Удалить запись", self)
        self.delete_action.triggered.connect(lambda: self._emit_for_selected(self.delete_requested))
        self.delete_action.setShortcut(QKeySequence(Qt.Key_Delete))
        self.addAction(self.delete_action)

        actions = {"view": self.view_action, "edit": self.edit_action, "delete": self.delete_action}
        for name, action in actions.items():
            action.setVisible(name in options.record_actions)

        self.setContextMenuPolicy(Qt.CustomContextMenu)
        self.customContextMenuRequested.connect(self.show_context_menu)
        self.cellDoubleClicked.connect(lambda row, _: self.expand_requested.emit(self.source_row(row)))

        self.load_data()

    def show_context_menu(self, pos):
        actions = [action for action in (self.view_action, self.edit_action, self.delete_action) if action.isVisible()]
        if not actions or not self.get_selected_rows():
            return
        menu = QMenu()
        for action in actions:
            menu.addAction(action)
        menu.exec_(self.mapToGlobal(pos))

    def get_selected_rows(self) -> List[int]:
        return sorted({self.source_row(index.row()) for index in self.selectedIndexes()})

    def source_row(self, view_row: int) -> int:
        """Номер строки в self.rows с учётом сортировки"""
        item = self.item(view_row, 0)
        if item is None:
            return view_row
        source = item.data(Qt.UserRole)
        return view_row if source is None else source

    def _emit_for_selected(self, signal) -> None:
        for row in self.get_selected_rows():
            record_id = self.rows[row].get("id")
            if record_id is None:
                logger.warning(f"У строки {row} нет поля id")
                continue
            signal.emit(record_id)

    def load_headers(self):
        self.setColumnCount(len(self.columns))
        self.setHorizontalHeaderLabels([column.label for column in self.columns])
        for i, column in enumerate(self.columns):
            self.setColumnWidth(i, column.width)
            self.setColumnHidden(i, not column.visible)

    def create_row_items(self, row_index: int, row: Dict[str, Any]) -> List[QTableWidgetItem]:
        items = []
        for column in self.columns:
            item = QTableWidgetItem()
            if column.strategy is not RenderStrategy.ACTION_MARKUP:
                item.setData(Qt.DisplayRole, render_value(column, row))
            if column.strategy is RenderStrategy.BOOLEAN:
                item.setTextAlignment(Qt.AlignCenter)
            items.append(item)
        if items:
            items[0].setData(Qt.UserRole, row_index)
        return items

    def load_data(self):
        logger.info(f"Заполнение грида: {len(self.rows)} записей, {len(self.columns)} колонок")
        self.clear()
        self.setRowCount(0)
        self.load_headers()

        with SafeTableInserter(self):
            self.setRowCount(len(self.rows))
            for row_index, row in enumerate(self.rows):
                for col, (column, item) in enumerate(zip(self.columns, self.create_row_items(row_index, row))):
                    self.setItem(row_index, col, item)
                    if column.strategy is RenderStrategy.ACTION_MARKUP:
                        label = QLabel(render_value(column, row))
                        label.setTextFormat(Qt.RichText)
                        self.setCellWidget(row_index, col, label)
        self.setSortingEnabled(self.options.allow_sorting)

    def set_filter(self, filter_text: str):
        for view_row in range(self.rowCount()):
            row = self.rows[self.source_row(view_row)]
            matched = matches_filter(self.columns, row, filter_text, self.options.allow_filtering)
            self.setRowHidden(view_row, not matched)
