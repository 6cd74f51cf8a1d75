import json

import pytest
import requests
from loguru import logger

from network.connection import Connection
from network.errors import GridError
from network.loader import RemoteTableLoader

BASE_URL = "http://api.test/api/"


class FakeResponse:
    def __init__(self, status_code=200, body=None, text=None):
        self.status_code = status_code
        self._body = body
        self.text = text if text is not None else (json.dumps(body) if body is not None else "")
        self.content = self.text.encode()

    def json(self):
        return json.loads(self.text)

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)


class FakeSession:
    """Отвечает заранее заданными ответами и запоминает запросы"""

    def __init__(self):
        self.routes = {}
        self.calls = []

    def add(self, url, body=None, status_code=200, text=None, error=None):
        self.routes[url] = error or FakeResponse(status_code, body, text)

    def request(self, method, url, headers=None, timeout=None):
        self.calls.append((method, url, headers))
        route = self.routes.get(url)
        if route is None:
            return FakeResponse(404, {"message": "not found"})
        if isinstance(route, Exception):
            raise route
        return route

    def urls(self, method="GET"):
        return [url for call_method, url, _ in self.calls if call_method == method]


class ManualDispatcher:
    """Откладывает загрузки, пока тест явно их не выполнит"""

    def __init__(self):
        self.pending = []

    def dispatch(self, job, on_success, on_error):
        self.pending.append((job, on_success, on_error))

    def run(self, index=0):
        job, on_success, on_error = self.pending.pop(index)
        try:
            result = job()
        except GridError as e:
            on_error(e)
            return
        on_success(result)

    def run_all(self):
        while self.pending:
            self.run()


class RecordingListener:
    def __init__(self):
        self.events = []

    def __getattr__(self, name):
        def record(*args):
            self.events.append((name, *args))
        return record

    def names(self):
        return [event[0] for event in self.events]


@pytest.fixture
def session(monkeypatch):
    monkeypatch.setenv("GRID_API_BASE_URL", BASE_URL)
    monkeypatch.setenv("GRID_API_TOKEN", "secret-token")
    monkeypatch.setenv("GRID_CSRF_TOKEN", "csrf-123")
    monkeypatch.delenv("GRID_API_TIMEOUT", raising=False)
    return FakeSession()


@pytest.fixture
def connection(session):
    return Connection(session=session)


@pytest.fixture
def loader(connection):
    return RemoteTableLoader(connection)


@pytest.fixture
def dispatcher():
    return ManualDispatcher()


@pytest.fixture
def listener():
    return RecordingListener()


@pytest.fixture
def log_messages():
    messages = []
    handler_id = logger.add(lambda message: messages.append(message.record["message"]), level="WARNING")
    yield messages
    logger.remove(handler_id)


@pytest.fixture
def users_response():
    return {
        "data": {"data": [
            {"id": 1, "name": "Alice", "user_id": 5, "active": True, "action_column": "<a>edit</a>"},
            {"id": 2, "name": "Bob", "active": False, "action_column": "<a>edit</a>"},
        ]},
        "tableConfig": {
            "columnDefs": [
                {"field": "id", "headerName": "ID", "sortable": True},
                {"field": "name", "headerName": "Name", "filter": True},
                {"field": "actions", "cellRenderer": "actionsRenderer"},
            ],
        },
        "childTableTree": {
            "orders": {
                "route": "http://api.test/api/orders/by-user/",
                "relationKeyTo": "user_id",
                "pageConfig": {"singularName": "Order", "pluralName": "Orders"},
                "childTables": {
                    "order_items": {"route": "http://api.test/api/items/by-order/", "relationKeyTo": "id"},
                },
            },
            "invoices": {
                "route": "http://api.test/api/invoices/by-user/",
                "relationKeyTo": "user_id",
            },
            "roles": {
                "route": "http://api.test/api/roles/by-owner/",
                "relationKeyTo": "owner_id",
            },
        },
    }
