"""
Category Normalizer
Pazaryerlerinden gelen düz veya iç içe kategori listelerini kanonik ağaca çevirir
"""
import logging
from typing import Any, Dict, Iterable, List, Optional

from app.models import CategoryNode, FlatCategory

logger = logging.getLogger(__name__)


def build_tree(flat: Iterable[FlatCategory]) -> List[CategoryNode]:
    """
    Düz (id, name, parent_id) listesinden ağaç kurar

    İki geçiş: önce tüm düğümler indekslenir, sonra her düğüm ebeveynine
    eklenir. Ebeveyni listede olmayan düğümler kök olur. Giriş sırası
    korunur. Son olarak kökten aşağı path doldurulur.

    Args:
        flat: FlatCategory (veya aynı alanlara sahip dict) listesi

    Returns:
        Kök düğümler
    """
    rows = [row if isinstance(row, FlatCategory) else FlatCategory.model_validate(row) for row in flat]

    nodes: Dict[str, CategoryNode] = {}
    for row in rows:
        nodes[row.id] = CategoryNode(id=row.id, name=row.name, parent_id=row.parent_id)

    roots: List[CategoryNode] = []
    orphans = 0
    for row in rows:
        node = nodes[row.id]
        parent = nodes.get(row.parent_id) if row.parent_id is not None else None
        if parent is not None and parent is not node:
            parent.children.append(node)
        else:
            if row.parent_id is not None:
                orphans += 1
            roots.append(node)

    if orphans:
        logger.debug(f"Kategori ağacı: {orphans} yetim düğüm köke alındı")

    for root in roots:
        _fill_paths(root, [])
    return roots


def _fill_paths(node: CategoryNode, parent_path: List[str]):
    node.path = parent_path + [node.name]
    for child in node.children:
        _fill_paths(child, node.path)


def tree_from_nested(
    items: Iterable[Dict[str, Any]],
    children_key: str = "children",
    id_key: str = "id",
    name_key: str = "name",
    parent_id: Optional[str] = None,
    parent_path: Optional[List[str]] = None,
) -> List[CategoryNode]:
    """
    İç içe gelen kategori yapısını (Trendyol subCategories, Etsy children ...)
    kanonik ağaca çevirir
    """
    parent_path = parent_path or []
    nodes = []
    for item in items or []:
        node_id = str(item.get(id_key))
        name = item.get(name_key) or ""
        path = parent_path + [name]
        nodes.append(CategoryNode(
            id=node_id,
            name=name,
            parent_id=parent_id,
            path=path,
            children=tree_from_nested(
                item.get(children_key) or [],
                children_key=children_key,
                id_key=id_key,
                name_key=name_key,
                parent_id=node_id,
                parent_path=path,
            ),
        ))
    return nodes


def flatten(tree: Iterable[CategoryNode]) -> List[FlatCategory]:
    """Ağacı derinlik öncelikli sırayla tekrar düz listeye çevirir"""
    result: List[FlatCategory] = []

    def walk(node: CategoryNode):
        result.append(FlatCategory(id=node.id, name=node.name, parent_id=node.parent_id))
        for child in node.children:
            walk(child)

    for root in tree:
        walk(root)
    return result


def iter_leaves(tree: Iterable[CategoryNode]):
    """Yaprak düğümleri gezer"""
    for node in tree:
        if node.children:
            yield from iter_leaves(node.children)
        else:
            yield node


def find_node(tree: Iterable[CategoryNode], category_id: str) -> Optional[CategoryNode]:
    for node in tree:
        if node.id == category_id:
            return node
        found = find_node(node.children, category_id)
        if found is not None:
            return found
    return None
