import itertools
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from loguru import logger

from modules.columns import columns_for
from modules.resolver import applicable_children, find_config
from modules.templates import build_level_template
from network.errors import ConfigIntegrityError, GridError
from network.loader import LoadResult, RemoteTableLoader
from schema.table import (
    CHILD_GRID_OPTIONS, ROOT_GRID_OPTIONS, ChildTableNode, ChildTableTree, ColumnSpec, GridOptions,
    SlotKey, TableConfig, TemplateDescriptor,
)


class SlotState(str, Enum):
    UNMOUNTED = "unmounted"
    MOUNTED_EMPTY = "mounted-empty"
    LOADING = "loading"
    LOADED = "loaded"
    LOAD_ERROR = "load-error"


@dataclass
class GridHandle:
    key: SlotKey
    rows: List[dict]
    columns: List[ColumnSpec]
    child_tree: ChildTableTree
    config: TableConfig
    options: GridOptions
    template: Optional[TemplateDescriptor] = None


@dataclass
class Slot:
    key: SlotKey
    node: ChildTableNode
    record: dict
    state: SlotState = SlotState.MOUNTED_EMPTY
    generation: int = 0
    error: Optional[GridError] = None


@dataclass
class RowExpansion:
    grid_key: SlotKey
    record_id: str
    record: dict
    template: Optional[TemplateDescriptor]
    slot_keys: List[SlotKey] = field(default_factory=list)


class GridListener:
    """Слой отображения получает события оркестратора через эти методы"""

    def root_loaded(self, handle: GridHandle) -> None:
        pass

    def root_failed(self, error: GridError) -> None:
        pass

    def row_expanded(self, expansion: RowExpansion) -> None:
        pass

    def slot_loading(self, key: SlotKey) -> None:
        pass

    def slot_loaded(self, handle: GridHandle) -> None:
        pass

    def slot_failed(self, key: SlotKey, error: GridError) -> None:
        pass

    def slot_destroyed(self, key: SlotKey) -> None:
        pass

    def record_deleted(self, record_id: Any, ack: Any) -> None:
        pass

    def delete_failed(self, record_id: Any, error: GridError) -> None:
        pass


class ImmediateDispatcher:
    """Выполняет загрузку сразу, в текущем потоке"""

    def dispatch(self, job: Callable[[], Any], on_success: Callable[[Any], None],
                 on_error: Callable[[GridError], None]) -> None:
        try:
            result = job()
        except GridError as e:
            on_error(e)
            return
        on_success(result)


def record_identity(record: Dict[str, Any], row_index: Optional[int] = None) -> str:
    if record.get("id") is not None:
        return str(record["id"])
    if row_index is not None:
        return f"#{row_index}"
    raise ConfigIntegrityError(f"У записи нет поля id и не передан номер строки: {sorted(record)}")


def table_name_from_endpoint(endpoint: str) -> str:
    name = endpoint.split("?")[0].rstrip("/").rsplit("/", 1)[-1]
    return name or "root"


class LazyGridOrchestrator:
    """
    Управляет гридами всех уровней.

    Каждая дочерняя таблица раскрытой строки это слот (таблица, путь от корня).
    Слот загружается не более одного раза за время жизни; повторная активация
    во время загрузки или после неё запросов не делает. Пересоздание предка
    удаляет все слоты-потомки, а результаты их незавершённых загрузок отбрасываются.
    """

    def __init__(self, loader: RemoteTableLoader, dispatcher=None, listener: Optional[GridListener] = None,
                 root_name: Optional[str] = None):
        self.loader = loader
        self.dispatcher = dispatcher or ImmediateDispatcher()
        self.listener = listener or GridListener()
        self.root_name = root_name

        self.endpoint: Optional[str] = None
        self.root_key: Optional[SlotKey] = None
        self._root_result: Optional[LoadResult] = None
        self._root_generation = 0
        self._generation = itertools.count(1)

        self._grids: Dict[SlotKey, GridHandle] = {}
        self._slots: Dict[SlotKey, Slot] = {}
        self._expansions: Dict[Tuple[SlotKey, str], RowExpansion] = {}

    # Корневая таблица

    def load_root(self, endpoint: str) -> None:
        self.endpoint = endpoint
        generation = next(self._generation)
        self._root_generation = generation
        logger.info(f"Загрузка данных из {endpoint}")
        self.dispatcher.dispatch(
            lambda: self.loader.load_root(endpoint),
            lambda result: self._root_loaded(generation, result),
            lambda error: self._root_failed(generation, error),
        )

    def reload(self) -> None:
        if self.endpoint is None:
            logger.warning("Адрес данных ещё не задан, перезагружать нечего")
            return
        self.load_root(self.endpoint)

    def refresh(self) -> bool:
        """Пересоздаёт гриды из последнего ответа без повторного запроса"""
        if self._root_result is None:
            logger.warning("Нет данных для обновления")
            return False
        self._mount_root()
        return True

    def _root_loaded(self, generation: int, result: LoadResult) -> None:
        if generation != self._root_generation:
            logger.debug("Отброшен устаревший ответ корневой таблицы")
            return
        self._root_result = result
        self._mount_root()

    def _root_failed(self, generation: int, error: GridError) -> None:
        if generation != self._root_generation:
            return
        logger.error(f"Ошибка загрузки корневой таблицы: {error}")
        self.listener.root_failed(error)

    def _mount_root(self) -> None:
        self._destroy_all()
        result = self._root_result
        key = SlotKey(table_name=self.root_name or table_name_from_endpoint(self.endpoint or ""))
        handle = GridHandle(
            key=key,
            rows=result.rows,
            columns=columns_for(result.config.column_defs, result.rows),
            child_tree=result.child_tree,
            config=result.config,
            options=ROOT_GRID_OPTIONS,
            template=self._level_template(key, result.rows, result.child_tree),
        )
        self.root_key = key
        self._grids[key] = handle
        logger.success(f"Корневой грид {key.slot_id} создан: {len(handle.columns)} колонок")
        self.listener.root_loaded(handle)

    # Раскрытие строк и вкладки

    def expand_row(self, grid_key: SlotKey, record: Dict[str, Any], row_index: Optional[int] = None) -> RowExpansion:
        handle = self._grids.get(grid_key)
        if handle is None:
            raise LookupError(f"Грид {grid_key.slot_id} не создан")
        record_id = record_identity(record, row_index)
        self._destroy_expansion(grid_key, record_id)

        children = applicable_children(record, handle.child_tree)
        expansion = RowExpansion(
            grid_key=grid_key,
            record_id=record_id,
            record=record,
            template=build_level_template(record, children, grid_key.prefix_for(record_id)),
        )
        for table_name, node in children.items():
            key = grid_key.child(record_id, table_name)
            self._slots[key] = Slot(key=key, node=node, record=record)
            expansion.slot_keys.append(key)
        self._expansions[(grid_key, record_id)] = expansion
        logger.debug(f"Раскрыта запись {record_id} грида {grid_key.slot_id}, вкладок: {len(expansion.slot_keys)}")
        self.listener.row_expanded(expansion)
        return expansion

    def collapse_row(self, grid_key: SlotKey, record: Dict[str, Any], row_index: Optional[int] = None) -> None:
        self._destroy_expansion(grid_key, record_identity(record, row_index))

    def activate_tab(self, grid_key: SlotKey, record: Dict[str, Any], tab: Union[int, str],
                     row_index: Optional[int] = None) -> SlotState:
        record_id = record_identity(record, row_index)
        expansion = self._expansions.get((grid_key, record_id))
        if expansion is None:
            expansion = self.expand_row(grid_key, record, row_index)

        key = self._tab_key(expansion, tab)
        if key is None:
            error = ConfigIntegrityError(
                f"Для вкладки {tab!r} записи {record_id} нет конфигурации в дереве таблиц {grid_key.slot_id}"
            )
            logger.error(f"Ошибка конфигурации: {error}")
            self.listener.slot_failed(grid_key.child(record_id, str(tab)), error)
            return SlotState.LOAD_ERROR

        slot = self._slots[key]
        if slot.state in (SlotState.LOADING, SlotState.LOADED):
            logger.debug(f"Слот {key.slot_id} уже в состоянии {slot.state.value}, загрузка не нужна")
            return slot.state
        self._start_load(slot)
        return self._slots[key].state if key in self._slots else SlotState.UNMOUNTED

    @staticmethod
    def _tab_key(expansion: RowExpansion, tab: Union[int, str]) -> Optional[SlotKey]:
        if isinstance(tab, int):
            if 0 <= tab < len(expansion.slot_keys):
                return expansion.slot_keys[tab]
            return None
        return next((key for key in expansion.slot_keys if key.table_name == tab), None)

    def _start_load(self, slot: Slot) -> None:
        slot.generation = next(self._generation)
        slot.state = SlotState.LOADING
        slot.error = None
        key, generation, node, record = slot.key, slot.generation, slot.node, slot.record
        logger.info(f"Загрузка слота {key.slot_id}")
        self.listener.slot_loading(key)
        self.dispatcher.dispatch(
            lambda: self.loader.load_child(node, record),
            lambda result: self._slot_loaded(key, generation, result),
            lambda error: self._slot_failed(key, generation, error),
        )

    def _current_slot(self, key: SlotKey, generation: int) -> Optional[Slot]:
        slot = self._slots.get(key)
        if slot is None or slot.generation != generation:
            logger.debug(f"Отброшен результат загрузки для удалённого слота {key.slot_id}")
            return None
        return slot

    def _slot_loaded(self, key: SlotKey, generation: int, result: LoadResult) -> None:
        slot = self._current_slot(key, generation)
        if slot is None:
            return
        child_tree = result.child_tree or slot.node.child_tables or self._nested_children(key.table_name)
        handle = GridHandle(
            key=key,
            rows=result.rows,
            columns=columns_for(result.config.column_defs or slot.node.column_defs, result.rows),
            child_tree=child_tree,
            config=result.config,
            options=CHILD_GRID_OPTIONS,
            template=self._level_template(key, result.rows, child_tree) if child_tree else None,
        )
        self._grids[key] = handle
        slot.state = SlotState.LOADED
        logger.success(f"Слот {key.slot_id} загружен: {len(result.rows)} записей")
        self.listener.slot_loaded(handle)

    def _slot_failed(self, key: SlotKey, generation: int, error: GridError) -> None:
        slot = self._current_slot(key, generation)
        if slot is None:
            return
        slot.state = SlotState.LOAD_ERROR
        slot.error = error
        if isinstance(error, ConfigIntegrityError):
            logger.error(f"Ошибка конфигурации слота {key.slot_id}: {error}")
        else:
            logger.error(f"Ошибка загрузки слота {key.slot_id}: {error}")
        self.listener.slot_failed(key, error)

    def _nested_children(self, table_name: str) -> ChildTableTree:
        if self._root_result is None:
            return {}
        node = find_config(table_name, self._root_result.child_tree)
        return node.child_tables if node else {}

    @staticmethod
    def _level_template(key: SlotKey, rows: List[dict], child_tree: ChildTableTree) -> Optional[TemplateDescriptor]:
        if not rows:
            logger.warning(f"Грид {key.slot_id} пуст, шаблон раскрытия не построен")
            return None
        sample = rows[0]
        return build_level_template(sample, applicable_children(sample, child_tree),
                                    key.prefix_for(record_identity(sample, 0)))

    # Удаление

    def delete_record(self, record_id: Any, table_base_path: Optional[str] = None,
                      grid_key: Optional[SlotKey] = None) -> None:
        """
        Удаляет запись и перезагружает корневую таблицу.

        Без table_base_path удаление идёт по адресу корневой таблицы, поэтому
        запись дочернего грида так удалить нельзя.
        """
        if table_base_path is None and grid_key is not None and not self._allows(grid_key, "delete"):
            error = ConfigIntegrityError(f"Удаление записей в гриде {grid_key.slot_id} не поддерживается")
            logger.error(f"Ошибка при удалении записи {record_id}: {error}")
            self.listener.delete_failed(record_id, error)
            return
        path = table_base_path or (self.endpoint or "").split("?")[0]

        def deleted(ack):
            self.listener.record_deleted(record_id, ack)
            self.reload()

        def failed(error):
            logger.error(f"Ошибка при удалении записи {record_id}: {error}")
            self.listener.delete_failed(record_id, error)

        self.dispatcher.dispatch(lambda: self.loader.delete_row(record_id, path), deleted, failed)

    def _allows(self, grid_key: SlotKey, action: str) -> bool:
        handle = self._grids.get(grid_key)
        return handle is not None and action in handle.options.record_actions

    # Пересоздание

    def _destroy_expansion(self, grid_key: SlotKey, record_id: str) -> None:
        self._expansions.pop((grid_key, record_id), None)
        self._destroy_descendants(grid_key.prefix_for(record_id))

    def _destroy_descendants(self, prefix: Tuple[Tuple[str, str], ...]) -> None:
        for key in [key for key in self._slots if key.descends_from(prefix)]:
            del self._slots[key]
            self._grids.pop(key, None)
            self.listener.slot_destroyed(key)
        for grid_key, record_id in [item for item in self._expansions if item[0].descends_from(prefix)]:
            del self._expansions[(grid_key, record_id)]

    def _destroy_all(self) -> None:
        for key in list(self._slots):
            self.listener.slot_destroyed(key)
        self._slots.clear()
        self._grids.clear()
        self._expansions.clear()
        self.root_key = None

    # Состояние

    def slot_state(self, key: SlotKey) -> SlotState:
        slot = self._slots.get(key)
        return slot.state if slot else SlotState.UNMOUNTED

    def slot(self, key: SlotKey) -> Optional[Slot]:
        return self._slots.get(key)

    def grid(self, key: SlotKey) -> Optional[GridHandle]:
        return self._grids.get(key)

    def expansion(self, grid_key: SlotKey, record: Dict[str, Any],
                  row_index: Optional[int] = None) -> Optional[RowExpansion]:
        return self._expansions.get((grid_key, record_identity(record, row_index)))

    def slots(self) -> List[Slot]:
        return list(self._slots.values())
