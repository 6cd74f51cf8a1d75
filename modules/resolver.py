from typing import Any, Dict, List, Optional, Tuple

from loguru import logger
from pydantic import ValidationError

from schema.table import ChildTableNode, ChildTableTree


def parse_tree(raw: Any) -> ChildTableTree:
    """
    Преобразует JSON дерева дочерних таблиц в модели.

    Записи, которые не удалось разобрать, пропускаются с ошибкой в логе.
    """
    if not raw:
        return {}
    if not isinstance(raw, dict):
        logger.warning(f"Дерево дочерних таблиц должно быть объектом, получено {type(raw).__name__}")
        return {}
    tree = {}
    for table_name, raw_node in raw.items():
        if isinstance(raw_node, ChildTableNode):
            tree[table_name] = raw_node
            continue
        if not isinstance(raw_node, dict):
            logger.warning(f"Пропущена дочерняя таблица {table_name}: ожидался объект")
            continue
        try:
            tree[table_name] = ChildTableNode.model_validate(raw_node)
        except ValidationError as e:
            logger.error(f"Некорректная конфигурация дочерней таблицы {table_name}: {e}")
    return tree


def _walk(table_name: str, tree: ChildTableTree, path: Tuple[str, ...],
          found: List[Tuple[Tuple[str, ...], ChildTableNode]]) -> None:
    for key, node in tree.items():
        if key == table_name:
            found.append((path + (key,), node))
    for key, node in tree.items():
        if node.child_tables:
            _walk(table_name, node.child_tables, path + (key,), found)


def find_config(table_name: str, tree: Optional[ChildTableTree]) -> Optional[ChildTableNode]:
    """
    Ищет конфигурацию таблицы на любой глубине дерева.

    Сначала проверяются ключи текущего уровня, затем вложенные childTables.
    При нескольких совпадениях выигрывает первое, о коллизии пишется предупреждение.
    Если по имени ничего не найдено, ищется узел с таким relation_name.
    """
    if not tree:
        return None

    found = []
    _walk(table_name, tree, (), found)
    if found:
        if len(found) > 1:
            paths = [" > ".join(path) for path, _ in found]
            logger.warning(f"Таблица {table_name} встречается в дереве несколько раз: {paths}, "
                           f"используется {paths[0]}")
        return found[0][1]

    stack = list(reversed(list(tree.values())))
    while stack:
        node = stack.pop()
        if node.relation_name == table_name:
            return node
        stack.extend(reversed(list(node.child_tables.values())))
    return None


def applicable_children(record: Optional[Dict[str, Any]], tree: Optional[ChildTableTree]) -> ChildTableTree:
    """Дочерние таблицы, для которых в записи есть ключ связи. Порядок сохраняется"""
    if not tree or record is None:
        return {}
    result = {}
    for table_name, node in tree.items():
        if node.relation_key_to is None:
            logger.warning(f"У дочерней таблицы {table_name} не задан relationKeyTo")
            result[table_name] = node
        elif node.relation_key_to in record:
            result[table_name] = node
    return result
