from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, model_validator


class RenderStrategy(str, Enum):
    PLAIN = "plain"
    BOOLEAN = "boolean"
    ICON = "icon"
    RELATED_LOOKUP = "related-lookup"
    ACTION_MARKUP = "action-markup"


class PageConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    singular_name: Optional[str] = Field(default=None, alias="singularName")
    plural_name: Optional[str] = Field(default=None, alias="pluralName")


class ColumnDef(BaseModel):
    """Декларативное описание колонки в том виде, в каком его присылает сервер"""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    field: str = ""
    header_name: Optional[str] = Field(default=None, alias="headerName")
    header_text: Optional[str] = Field(default=None, alias="headerText")
    width: Optional[int] = None
    hide: Optional[bool] = False
    sortable: Optional[bool] = False
    filter: Any = None
    cell_renderer: Optional[str] = Field(default=None, alias="cellRenderer")
    value_getter: Optional[str] = Field(default=None, alias="valueGetter")


class TableConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    column_defs: Optional[List[ColumnDef]] = Field(default=None, alias="columnDefs")
    page_config: Optional[PageConfig] = Field(default=None, alias="pageConfig")


class ChildTableNode(BaseModel):
    """
    Узел дерева дочерних таблиц.

    route + parent[relation_key_to] даёт адрес, по которому загружаются строки таблицы,
    child_tables описывает её собственных потомков.
    """
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    route: Optional[str] = None
    relation_key_to: Optional[str] = Field(default=None, alias="relationKeyTo")
    relation_name: Optional[str] = None
    page_config: Optional[PageConfig] = Field(default=None, alias="pageConfig")
    column_defs: Optional[List[ColumnDef]] = Field(default=None, alias="columnDefs")
    child_tables: Dict[str, "ChildTableNode"] = Field(default_factory=dict, alias="childTables")

    @model_validator(mode="before")
    @classmethod
    def migrate_legacy_keys(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "relationKey" in data and "relationKeyTo" not in data and "relation_key_to" not in data:
            logger.warning(f"Устаревшее поле relationKey={data['relationKey']!r} переименовано в relationKeyTo")
            data["relationKeyTo"] = data.pop("relationKey")
        table_config = data.get("tableConfig")
        if "columnDefs" not in data and isinstance(table_config, dict) and "columnDefs" in table_config:
            data["columnDefs"] = table_config["columnDefs"]
        if data.get("childTables") is None:
            data.pop("childTables", None)
        return data


ChildTableNode.model_rebuild()

ChildTableTree = Dict[str, ChildTableNode]


class RelatedLookup(BaseModel):
    relation: str
    field: str
    fallback: str


class ColumnSpec(BaseModel):
    field: str
    label: str
    width: int = 100
    visible: bool = True
    sortable: bool = False
    filterable: bool = False
    pinned: Optional[str] = None
    strategy: RenderStrategy = RenderStrategy.PLAIN
    lookup: Optional[RelatedLookup] = None
    source_field: Optional[str] = None

    @property
    def value_field(self) -> str:
        return self.source_field or self.field


class InfoItem(BaseModel):
    field: str
    label: str
    strategy: RenderStrategy = RenderStrategy.PLAIN


class TabDescriptor(BaseModel):
    table_name: str
    label: str
    slot_id: str


class TemplateDescriptor(BaseModel):
    info_items: List[InfoItem] = Field(default_factory=list)
    tabs: List[TabDescriptor] = Field(default_factory=list)

    @property
    def has_tabs(self) -> bool:
        return bool(self.tabs)


class GridOptions(BaseModel):
    allow_paging: bool = True
    allow_sorting: bool = True
    allow_filtering: bool = False
    allow_resizing: bool = True
    filter_type: Optional[str] = None
    page_size: Optional[int] = None
    record_actions: Tuple[str, ...] = ("view", "edit", "delete")


ROOT_GRID_OPTIONS = GridOptions()
# маршруты дочерних таблиц не дают базового пути для просмотра и удаления
CHILD_GRID_OPTIONS = GridOptions(allow_filtering=True, filter_type="excel", page_size=5, record_actions=())


def _escape_slot_part(part: str) -> str:
    """В части идентификатора не остаётся "-", "__" и "_" по краям, поэтому разделители однозначны"""
    part = part.replace("%", "%25").replace("-", "%2D").replace("__", "_%5F")
    if part.startswith("_"):
        part = "%5F" + part[1:]
    if part.endswith("_"):
        part = part[:-1] + "%5F"
    return part


class SlotKey(BaseModel):
    """Адрес грида: имя таблицы и полный путь (таблица, id записи) от корня"""
    model_config = ConfigDict(frozen=True)

    table_name: str
    ancestry: Tuple[Tuple[str, str], ...] = ()

    @property
    def slot_id(self) -> str:
        parts = [f"{_escape_slot_part(table)}-{_escape_slot_part(record_id)}" for table, record_id in self.ancestry]
        return "__".join([_escape_slot_part(self.table_name), *parts])

    def child(self, record_id: str, table_name: str) -> "SlotKey":
        return SlotKey(table_name=table_name, ancestry=self.ancestry + ((self.table_name, record_id),))

    def prefix_for(self, record_id: str) -> Tuple[Tuple[str, str], ...]:
        return self.ancestry + ((self.table_name, record_id),)

    def descends_from(self, prefix: Tuple[Tuple[str, str], ...]) -> bool:
        return self.ancestry[:len(prefix)] == prefix
