import re
from typing import Any, Dict, List, Optional

from loguru import logger

from schema.table import ColumnDef, ColumnSpec, RelatedLookup, RenderStrategy

ACTION_FIELDS = ("action_column", "action_view", "action_modify", "action_delete")
ACTION_SOURCE_FIELD = "action_column"
DEFAULT_WIDTH = 100
ACTION_WIDTH = 140
TRUE_GLYPH = "✓"
FALSE_GLYPH = "✗"

RENDERERS = {
    "booleanRenderer": RenderStrategy.BOOLEAN,
    "iconRenderer": RenderStrategy.ICON,
    "actionsRenderer": RenderStrategy.ACTION_MARKUP,
}


def format_field_label(field: str) -> str:
    """
    user_id -> User Id, pageTitle -> Page Title
    """
    spaced = field.replace("_", " ")
    spaced = re.sub(r"(?<=.)([A-Z])", r" \1", spaced)
    words = spaced.split()
    return " ".join(word[:1].upper() + word[1:] for word in words)


def is_scalar(value: Any) -> bool:
    return not isinstance(value, (dict, list, tuple))


def parse_value_getter(expression: Optional[str], fallback: str) -> Optional[RelatedLookup]:
    """
    Разбор выражения valueGetter вида
    "data.table ? data.table.page_title : data.table_id" или "data.table.page_title".
    """
    if not expression or "." not in expression:
        return None

    parts = expression.split("?")
    if len(parts) > 1:
        relation_path = parts[0].strip().split(".")
        if len(relation_path) < 2:
            return None
        relation = relation_path[1].strip()
        display_path = parts[1].split(":")[0].strip().split(".")
        field = display_path[2].strip() if len(display_path) >= 3 else ""
    else:
        path = expression.strip().split(".")
        if len(path) < 3:
            return None
        relation, field = path[1].strip(), path[2].strip()

    if not relation or not field:
        return None
    return RelatedLookup(relation=relation, field=field, fallback=fallback)


def _action_column(column_def: ColumnDef) -> ColumnSpec:
    return ColumnSpec(
        field=column_def.field,
        label=column_def.header_text or "Actions",
        width=column_def.width or DEFAULT_WIDTH,
        visible=not column_def.hide,
        sortable=False,
        filterable=False,
        pinned="left",
        strategy=RenderStrategy.ACTION_MARKUP,
        source_field=ACTION_SOURCE_FIELD,
    )


def project(column_defs: List[Any]) -> List[ColumnSpec]:
    """
    Декларативные определения колонок -> ColumnSpec.

    Колонка действий всегда переносится в начало списка, закрепляется слева
    и не участвует в сортировке и фильтрации.
    """
    columns = []
    for raw in column_defs or []:
        column_def = raw if isinstance(raw, ColumnDef) else ColumnDef.model_validate(raw)
        strategy = RENDERERS.get(column_def.cell_renderer, RenderStrategy.PLAIN)
        if column_def.cell_renderer and column_def.cell_renderer not in RENDERERS:
            logger.debug(f"Неизвестный cellRenderer {column_def.cell_renderer} у колонки {column_def.field}")

        if strategy is RenderStrategy.ACTION_MARKUP:
            columns.insert(0, _action_column(column_def))
            continue

        column = ColumnSpec(
            field=column_def.field,
            label=column_def.header_name or "",
            width=column_def.width or DEFAULT_WIDTH,
            visible=not column_def.hide,
            sortable=bool(column_def.sortable),
            filterable=bool(column_def.filter),
            strategy=strategy,
        )

        if column_def.value_getter:
            lookup = parse_value_getter(column_def.value_getter, column_def.field)
            if lookup is None:
                logger.warning(f"Не удалось разобрать valueGetter {column_def.value_getter!r}, "
                               f"колонка {column_def.field} будет показана как есть")
                column.strategy = RenderStrategy.PLAIN
            else:
                column.strategy = RenderStrategy.RELATED_LOOKUP
                column.lookup = lookup

        columns.append(column)
    return columns


def infer(sample_row: Optional[Dict[str, Any]]) -> List[ColumnSpec]:
    """Колонки по форме первой записи, если сервер не прислал columnDefs"""
    if not sample_row:
        return []
    columns = []
    for field, value in sample_row.items():
        if field in ACTION_FIELDS or not is_scalar(value):
            continue
        columns.append(ColumnSpec(
            field=field,
            label=format_field_label(field),
            width=DEFAULT_WIDTH,
            filterable=True,
            strategy=RenderStrategy.BOOLEAN if isinstance(value, bool) else RenderStrategy.PLAIN,
        ))
    if sample_row.get(ACTION_SOURCE_FIELD):
        columns.append(ColumnSpec(
            field=ACTION_SOURCE_FIELD,
            label="Actions",
            width=ACTION_WIDTH,
            strategy=RenderStrategy.ACTION_MARKUP,
            source_field=ACTION_SOURCE_FIELD,
        ))
    return columns


def columns_for(column_defs: Optional[List[Any]], rows: List[Dict[str, Any]]) -> List[ColumnSpec]:
    if column_defs:
        return project(column_defs)
    return infer(rows[0] if rows else None)


def render_boolean(value: Any) -> str:
    return TRUE_GLYPH if value else FALSE_GLYPH


def render_value(column: ColumnSpec, row: Dict[str, Any]) -> str:
    """Текст ячейки для слоя отображения"""
    if column.strategy is RenderStrategy.RELATED_LOOKUP and column.lookup:
        related = row.get(column.lookup.relation)
        if isinstance(related, dict) and related:
            value = related.get(column.lookup.field)
        else:
            value = row.get(column.lookup.fallback)
    else:
        value = row.get(column.value_field)

    if column.strategy is RenderStrategy.BOOLEAN:
        return render_boolean(value)
    if value is None:
        return ""
    return str(value)


def matches_filter(columns: List[ColumnSpec], row: Dict[str, Any], filter_text: str,
                   only_filterable: bool = True) -> bool:
    """
    Проверка строки для быстрого поиска.

    Ищется по колонкам с filterable, а если таких нет, по всем колонкам кроме колонки действий.
    """
    filter_text = filter_text.strip().lower()
    if not filter_text:
        return True
    searchable = [column for column in columns if column.strategy is not RenderStrategy.ACTION_MARKUP]
    if only_filterable and any(column.filterable for column in searchable):
        searchable = [column for column in searchable if column.filterable]
    return any(filter_text in render_value(column, row).lower() for column in searchable)
