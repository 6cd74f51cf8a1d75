import pytest
import requests

from modules.resolver import parse_tree
from network.errors import ConfigIntegrityError, MalformedResponseError, TransportError
from schema.table import ChildTableNode

BASE_URL = "http://api.test/api/"

TREE = {"orders": {"route": "/orders/", "relationKeyTo": "user_id"}}
ROWS = [{"id": 1, "user_id": 5}]


def test_load_root_builds_url_and_headers(loader, session, users_response):
    session.add(BASE_URL + "users", users_response)
    result = loader.load_root("users")

    method, url, headers = session.calls[0]
    assert (method, url) == ("GET", BASE_URL + "users")
    assert headers["Authorization"] == "bearer secret-token"
    assert headers["Content-Type"] == "application/json"
    assert "X-CSRF-TOKEN" not in headers
    assert [row["id"] for row in result.rows] == [1, 2]
    assert [column.field for column in result.config.column_defs] == ["id", "name", "actions"]
    assert list(result.child_tree) == ["orders", "invoices", "roles"]


def test_load_root_absolute_endpoint(loader, session, users_response):
    session.add("http://other.test/api/users?page=1", users_response)
    loader.load_root("http://other.test/api/users?page=1")
    assert session.urls() == ["http://other.test/api/users?page=1"]


@pytest.mark.parametrize("body", [
    {"data": {"data": ROWS}, "tableConfig": {"columnDefs": [], "childTableTree": TREE}},
    {"data": {"data": ROWS}, "tableConfig": {"columnDefs": []}, "childTableTree": TREE},
    {"data": ROWS, "tableConfig": {"columnDefs": []}, "allChildTables": TREE},
])
def test_load_root_tree_locations_give_same_result(loader, session, body):
    session.add(BASE_URL + "users", body)
    result = loader.load_root("users")
    assert result.rows == ROWS
    assert result.child_tree == parse_tree(TREE)


def test_load_root_prefers_table_config_tree(loader, session):
    session.add(BASE_URL + "users", {
        "data": ROWS,
        "tableConfig": {"childTableTree": TREE},
        "childTableTree": {"other": {"route": "/other/", "relationKeyTo": "id"}},
    })
    assert list(loader.load_root("users").child_tree) == ["orders"]


def test_load_root_http_error(loader, session):
    session.add(BASE_URL + "users", {"message": "boom"}, status_code=500)
    with pytest.raises(TransportError) as error:
        loader.load_root("users")
    assert error.value.status_code == 500
    assert len(session.calls) == 1


def test_load_root_connection_error(loader, session):
    session.add(BASE_URL + "users", error=requests.ConnectionError("refused"))
    with pytest.raises(TransportError):
        loader.load_root("users")


@pytest.mark.parametrize("body, text", [
    ({"tableConfig": {}}, None),
    ({"data": {"rows": []}, "tableConfig": {}}, None),
    ({"data": []}, None),
    ({"data": [], "tableConfig": "x"}, None),
    ({"data": [1, 2], "tableConfig": {}}, None),
    ({"data": {"data": [None]}, "tableConfig": {}}, None),
    (None, "<html>not json</html>"),
])
def test_load_root_malformed(loader, session, body, text):
    session.add(BASE_URL + "users", body, text=text)
    with pytest.raises(MalformedResponseError):
        loader.load_root("users")


def test_load_child_builds_url_from_relation_key(loader, session):
    node = ChildTableNode(route=BASE_URL + "orders/by-user/", relationKeyTo="user_id")
    session.add(BASE_URL + "orders/by-user/5", {"data": [{"id": 10}], "childTableTree": TREE})
    result = loader.load_child(node, {"id": 1, "user_id": 5})
    assert session.urls() == [BASE_URL + "orders/by-user/5"]
    assert result.rows == [{"id": 10}]
    assert result.config.column_defs is None
    assert list(result.child_tree) == ["orders"]


def test_load_child_null_relation_value(loader, session):
    node = ChildTableNode(route=BASE_URL + "orders/", relationKeyTo="user_id")
    session.add(BASE_URL + "orders/null", {"data": []})
    assert loader.load_child(node, {"user_id": None}).rows == []


@pytest.mark.parametrize("node, record", [
    (ChildTableNode(route=BASE_URL + "orders/", relationKeyTo="user_id"), {"id": 1}),
    (ChildTableNode(relationKeyTo="user_id"), {"user_id": 1}),
    (ChildTableNode(route=BASE_URL + "orders/"), {"user_id": 1}),
])
def test_load_child_config_integrity_without_request(loader, session, node, record):
    with pytest.raises(ConfigIntegrityError):
        loader.load_child(node, record)
    assert session.calls == []


def test_delete_row_sends_csrf_header(loader, session):
    session.add(BASE_URL + "users/delete/7", {"success": True})
    assert loader.delete_row(7, "users") == {"success": True}
    method, url, headers = session.calls[0]
    assert method == "DELETE"
    assert headers["X-CSRF-TOKEN"] == "csrf-123"
    assert headers["Authorization"] == "bearer secret-token"


def test_delete_row_empty_body(loader, session):
    session.add(BASE_URL + "users/delete/7", text="")
    assert loader.delete_row(7, "users") is True


def test_delete_row_failure(loader, session):
    session.add(BASE_URL + "users/delete/7", {"message": "forbidden"}, status_code=403)
    with pytest.raises(TransportError):
        loader.delete_row(7, "users")


def test_web_routes(connection):
    api_url = "http://host/app/api/users?page=2"
    assert connection.web_route(api_url) == "http://host/app/users"
    assert connection.view_url(api_url, 3) == "http://host/app/users/3"
    assert connection.edit_url(api_url, 3) == "http://host/app/users/edit/3"
