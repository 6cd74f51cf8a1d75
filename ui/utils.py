from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable

from PyQt5.QtCore import QObject, pyqtSignal
from PyQt5.QtWidgets import QTableWidget
from loguru import logger

from network.errors import GridError


class SafeTableInserter:
    """
    Контекстный менеджер для безопасного заполнения QTableWidget.

    :param table: Объект QTableWidget, в который добавляются данные.
    """
    def __init__(self, table: QTableWidget):
        if not isinstance(table, QTableWidget):
            raise TypeError("SafeTableInserter работает только с QTableWidget.")
        self.table = table
        self.sorting_enabled = table.isSortingEnabled()
        self.updates_blocked = table.signalsBlocked()

    def __enter__(self):
        self.table.setSortingEnabled(False)
        self.table.blockSignals(True)
        return self.table

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.table.setSortingEnabled(self.sorting_enabled)
        self.table.blockSignals(self.updates_blocked)
        if exc_type is not None:
            logger.error(f"Ошибка при заполнении таблицы: {exc_type.__name__}, {exc_val}")


class QtDispatcher(QObject):
    """
    Выполняет загрузки в пуле потоков и возвращает результат в поток интерфейса.

    Обработчики on_success / on_error всегда вызываются из главного потока.
    """
    finished = pyqtSignal(object, object, object)

    def __init__(self, max_workers: int = 4):
        super().__init__()
        self.executor = ThreadPoolExecutor(max_workers=max_workers)
        self.finished.connect(self._deliver)

    def dispatch(self, job: Callable[[], Any], on_success: Callable[[Any], None],
                 on_error: Callable[[GridError], None]) -> None:
        future = self.executor.submit(job)
        future.add_done_callback(lambda done: self.finished.emit(done, on_success, on_error))

    @staticmethod
    def _deliver(future: Future, on_success, on_error) -> None:
        error = future.exception()
        if error is None:
            on_success(future.result())
        elif isinstance(error, GridError):
            on_error(error)
        else:
            raise error

    def shutdown(self) -> None:
        self.executor.shutdown(wait=False)
