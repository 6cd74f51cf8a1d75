import sys

from PyQt5.QtCore import Qt, QUrl
from PyQt5.QtGui import QDesktopServices, QKeySequence
from PyQt5.QtWidgets import (
    QAction, QApplication, QHBoxLayout, QLabel, QLineEdit, QMainWindow, QMessageBox, QPushButton, QScrollArea,
    QVBoxLayout, QWidget,
)
from loguru import logger
from pyqtexcept_forgenet.main import create_exceptions_hook

from modules.orchestrator import LazyGridOrchestrator
from network.connection import Connection
from network.loader import RemoteTableLoader
from ui.table import GridView
from ui.utils import QtDispatcher


class EndpointWidget(QWidget):
    def __init__(self, default_endpoint: str):
        super().__init__()
        self.endpoint_line_edit = QLineEdit(default_endpoint)
        self.endpoint_line_edit.setPlaceholderText("Адрес API...")
        self.load_button = QPushButton("Загрузить")
        self.refresh_button = QPushButton("Обновить")
        layout = QHBoxLayout(self)
        layout.addWidget(self.endpoint_line_edit)
        layout.addWidget(self.load_button)
        layout.addWidget(self.refresh_button)


class App(QMainWindow):
    def __init__(self):
        super().__init__()
        self.setWindowTitle("Иерархический просмотр таблиц")
        self.resize(1200, 800)

        self.connection = Connection()
        self.dispatcher = QtDispatcher()

        central_widget = QWidget()
        self.setCentralWidget(central_widget)
        layout = QVBoxLayout(central_widget)

        self.endpoint_widget = EndpointWidget(self.connection.build_api_url(self.connection.default_endpoint))
        self.endpoint_widget.load_button.clicked.connect(self.load_data)
        self.endpoint_widget.endpoint_line_edit.returnPressed.connect(self.load_data)
        self.endpoint_widget.refresh_button.clicked.connect(self.refresh)
        layout.addWidget(self.endpoint_widget)

        self.loading_label = QLabel("Загрузка данных...")
        self.loading_label.setAlignment(Qt.AlignCenter)
        self.loading_label.setVisible(False)
        layout.addWidget(self.loading_label)

        grids_widget = QWidget()
        grids_layout = QVBoxLayout(grids_widget)
        scroll_area = QScrollArea()
        scroll_area.setWidgetResizable(True)
        scroll_area.setWidget(grids_widget)
        layout.addWidget(scroll_area)

        self.view = GridView(grids_layout, self)
        self.orchestrator = LazyGridOrchestrator(
            RemoteTableLoader(self.connection), dispatcher=self.dispatcher, listener=self.view
        )
        self.view.orchestrator = self.orchestrator

        self.reload_action = QAction("Перезагрузить", self)
        self.reload_action.triggered.connect(self.load_data)
        self.reload_action.setShortcut(QKeySequence(Qt.Key_F5))
        self.addAction(self.reload_action)

        menu_bar = self.menuBar()
        file_menu = menu_bar.addMenu("&Файл")
        file_menu.addAction(self.reload_action)
        file_menu.addAction("&Закрыть", self.close)

    def current_endpoint(self) -> str:
        return self.endpoint_widget.endpoint_line_edit.text().strip()

    def load_data(self):
        endpoint = self.current_endpoint()
        if not endpoint:
            self.show_error("Не указан адрес API")
            return
        self.show_loading()
        self.orchestrator.load_root(endpoint)

    def refresh(self):
        if not self.orchestrator.refresh():
            self.show_error("Нет данных для обновления")

    def confirm_delete(self, record_id, grid_key=None):
        approval = QMessageBox(QMessageBox.Warning, "Вы уверены?", f"Удалить запись с ID {record_id}?",
                               QMessageBox.Yes | QMessageBox.No)
        approval.setDefaultButton(QMessageBox.No)
        approval.button(QMessageBox.Yes).setText("Да")
        approval.button(QMessageBox.No).setText("Нет")
        if approval.exec() == QMessageBox.Yes:
            self.show_loading()
            self.orchestrator.delete_record(record_id, grid_key=grid_key)

    @staticmethod
    def open_url(url: str):
        logger.info(f"Открытие {url}")
        QDesktopServices.openUrl(QUrl(url))

    def show_loading(self):
        self.loading_label.setVisible(True)

    def hide_loading(self):
        self.loading_label.setVisible(False)

    def show_error(self, message: str):
        logger.error(message)
        self.hide_loading()
        QMessageBox.critical(self, "Ошибка", message)

    def show_info(self, message: str):
        QMessageBox.information(self, "Готово", message)

    def closeEvent(self, event):
        self.dispatcher.shutdown()
        super().closeEvent(event)


def main():
    app = QApplication(sys.argv)
    window = App()
    sys.excepthook = create_exceptions_hook(window, True)
    window.show()
    sys.exit(app.exec_())


if __name__ == "__main__":
    main()
