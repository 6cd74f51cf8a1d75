from typing import Any, Dict, Optional, Tuple

from loguru import logger

from modules.columns import ACTION_FIELDS, format_field_label, is_scalar
from schema.table import (
    ChildTableTree, InfoItem, RenderStrategy, SlotKey, TabDescriptor, TemplateDescriptor,
)


def format_tab_name(table_name: str, tree: Optional[ChildTableTree]) -> str:
    node = (tree or {}).get(table_name)
    if node is not None and node.page_config and node.page_config.plural_name:
        return node.page_config.plural_name
    return format_field_label(table_name)


def build_level_template(sample_record: Optional[Dict[str, Any]],
                         children: Optional[ChildTableTree],
                         ancestry: Tuple[Tuple[str, str], ...] = ()) -> Optional[TemplateDescriptor]:
    """
    Шаблон раскрытой строки: скалярные поля записи и по вкладке на каждую дочернюю таблицу.

    ancestry это путь (таблица, id записи) от корня до раскрываемой записи включительно,
    из него составляются идентификаторы слотов, поэтому они уникальны на любой глубине.
    """
    if sample_record is None:
        logger.warning("Нет записи-образца для построения шаблона")
        return None

    info_items = [
        InfoItem(
            field=field,
            label=format_field_label(field),
            strategy=RenderStrategy.BOOLEAN if isinstance(value, bool) else RenderStrategy.PLAIN,
        )
        for field, value in sample_record.items()
        if is_scalar(value) and field not in ACTION_FIELDS
    ]

    tabs = []
    for table_name in children or {}:
        key = SlotKey(table_name=table_name, ancestry=ancestry)
        tabs.append(TabDescriptor(
            table_name=table_name,
            label=format_tab_name(table_name, children),
            slot_id=key.slot_id,
        ))
    return TemplateDescriptor(info_items=info_items, tabs=tabs)
