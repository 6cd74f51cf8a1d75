class GridError(Exception):
    """Базовая ошибка загрузки и построения гридов"""
    kind = "grid"


class TransportError(GridError):
    """Сетевая ошибка или ответ сервера с кодом не из диапазона 2xx"""
    kind = "transport"

    def __init__(self, message: str, url: str = "", status_code: int = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class ConfigIntegrityError(GridError):
    """Конфигурация дерева таблиц не согласована с данными клиента"""
    kind = "config"


class MalformedResponseError(GridError):
    """В ответе сервера нет ожидаемых data/tableConfig"""
    kind = "response"
