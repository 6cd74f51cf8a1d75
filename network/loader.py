import contextlib
from typing import Any, Dict, List, NamedTuple

import requests
from loguru import logger

from modules.resolver import parse_tree
from network.connection import Connection
from network.errors import ConfigIntegrityError, MalformedResponseError, TransportError
from schema.table import ChildTableNode, ChildTableTree, TableConfig


class LoadResult(NamedTuple):
    rows: List[dict]
    config: TableConfig
    child_tree: ChildTableTree


def format_key_value(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class RemoteTableLoader:
    """
    Загрузка корневой и дочерних таблиц.

    Состояния между вызовами не хранит: каждый вызов это запрос и разбор ответа.
    """

    def __init__(self, connection: Connection):
        self.connection = connection

    def load_root(self, endpoint: str) -> LoadResult:
        url = self.connection.build_api_url(endpoint)
        logger.info(f"Загрузка корневой таблицы {url}")
        body = self._get_json(url)
        with self.response_handler(url):
            result = self.decompose(body, require_config=True)
        logger.success(f"Корневая таблица загружена: {len(result.rows)} записей, "
                       f"дочерних таблиц: {len(result.child_tree)}")
        return result

    def load_child(self, node: ChildTableNode, parent_record: Dict[str, Any]) -> LoadResult:
        url = self.child_url(node, parent_record)
        logger.info(f"Загрузка дочерней таблицы {url}")
        body = self._get_json(url)
        with self.response_handler(url):
            result = self.decompose(body, require_config=False)
        logger.success(f"Дочерняя таблица загружена: {len(result.rows)} записей")
        return result

    def delete_row(self, row_id: Any, table_base_path: str) -> Any:
        url = f"{self.connection.build_api_url(table_base_path)}/delete/{row_id}"
        logger.info(f"Удаление записи с ID {row_id}")
        with self.exception_handler(url):
            response = self.connection.request("DELETE", url, csrf=True)
        logger.success(f"Запись с ID {row_id} удалена")
        if not response.content:
            return True
        try:
            return response.json()
        except ValueError:
            return response.text

    @staticmethod
    def child_url(node: ChildTableNode, parent_record: Dict[str, Any]) -> str:
        if not node.route or not node.relation_key_to:
            raise ConfigIntegrityError(
                f"В конфигурации дочерней таблицы не заданы route/relationKeyTo: "
                f"route={node.route!r}, relationKeyTo={node.relation_key_to!r}"
            )
        if node.relation_key_to not in parent_record:
            raise ConfigIntegrityError(
                f"В родительской записи нет поля {node.relation_key_to!r}, "
                f"необходимого для загрузки {node.route}"
            )
        return node.route + format_key_value(parent_record[node.relation_key_to])

    @staticmethod
    def decompose(body: Any, require_config: bool) -> LoadResult:
        """
        Разбор ответа на три части: строки, конфигурация таблицы и дерево дочерних таблиц.

        Дерево ищется последовательно в tableConfig.childTableTree, childTableTree и allChildTables.
        """
        if not isinstance(body, dict):
            raise MalformedResponseError(f"Ожидался JSON-объект, получено {type(body).__name__}")
        if "data" not in body:
            raise MalformedResponseError("В ответе отсутствует поле data")
        data = body["data"]
        rows = data.get("data") if isinstance(data, dict) else data
        if not isinstance(rows, list):
            raise MalformedResponseError("Поле data не содержит списка записей")
        for index, row in enumerate(rows):
            if not isinstance(row, dict):
                raise MalformedResponseError(f"Запись {index} должна быть объектом, получено {type(row).__name__}")

        raw_config = body.get("tableConfig")
        if raw_config is None:
            if require_config:
                raise MalformedResponseError("В ответе отсутствует tableConfig")
            raw_config = {}
        if not isinstance(raw_config, dict):
            raise MalformedResponseError("tableConfig должен быть объектом")
        config = TableConfig.model_validate(raw_config)

        raw_tree = raw_config.get("childTableTree")
        if not raw_tree:
            raw_tree = body.get("childTableTree")
        if not raw_tree:
            raw_tree = body.get("allChildTables")
        return LoadResult(rows, config, parse_tree(raw_tree))

    def _get_json(self, url: str) -> Any:
        with self.exception_handler(url):
            response = self.connection.request("GET", url)
        try:
            return response.json()
        except ValueError as e:
            logger.error(f"Ответ {url} не является JSON: {e}")
            raise MalformedResponseError(f"Ответ сервера не является JSON: {e}") from e

    @contextlib.contextmanager
    def exception_handler(self, url: str):
        """Преобразует ошибки requests в TransportError"""
        try:
            yield
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            logger.error(f"Сервер вернул ошибку {status} для {url}")
            raise TransportError(f"API Error: {status} {e}", url=url, status_code=status) from e
        except requests.ConnectionError as e:
            logger.error(f"Нет соединения с {url}: {e}")
            raise TransportError(f"API Error: нет соединения ({e})", url=url) from e
        except requests.RequestException as e:
            logger.error(f"Ошибка запроса {url}: {e}")
            raise TransportError(f"API Error: {e}", url=url) from e

    @contextlib.contextmanager
    def response_handler(self, url: str):
        """Ошибки разбора ответа превращаются в MalformedResponseError"""
        try:
            yield
        except MalformedResponseError as e:
            logger.error(f"Некорректный ответ {url}: {e}")
            raise
        except (ValueError, TypeError) as e:
            logger.error(f"Не удалось разобрать ответ {url}: {e}")
            raise MalformedResponseError(f"Error processing data: {e}") from e
