from app.models import FlatCategory
from services.category_tree import build_tree, find_node, flatten, iter_leaves, tree_from_nested
from services.fallback_categories import VERSION, fallback_tree


def test_build_tree_attaches_children_and_fills_paths():
    flat = [
        FlatCategory(id="1", name="Giyim"),
        FlatCategory(id="2", name="Kadın", parent_id="1"),
        FlatCategory(id="3", name="Elbise", parent_id="2"),
        FlatCategory(id="4", name="Elektronik"),
    ]

    tree = build_tree(flat)

    assert [root.id for root in tree] == ["1", "4"]
    dress = find_node(tree, "3")
    assert dress.path == ["Giyim", "Kadın", "Elbise"]
    assert dress.children == []
    assert [leaf.id for leaf in iter_leaves(tree)] == ["3", "4"]


def test_build_tree_handles_child_before_parent():
    flat = [
        {"id": "2", "name": "Telefon", "parentId": "1"},
        {"id": "1", "name": "Elektronik"},
    ]

    tree = build_tree(flat)

    assert len(tree) == 1
    assert tree[0].children[0].path == ["Elektronik", "Telefon"]


def test_orphans_become_roots():
    flat = [
        FlatCategory(id="1", name="Ev"),
        FlatCategory(id="9", name="Yetim", parent_id="missing"),
    ]

    tree = build_tree(flat)

    assert [root.id for root in tree] == ["1", "9"]
    assert find_node(tree, "9").path == ["Yetim"]


def test_flatten_round_trip_preserves_every_node():
    flat = [
        FlatCategory(id="1", name="Giyim"),
        FlatCategory(id="2", name="Kadın", parent_id="1"),
        FlatCategory(id="3", name="Erkek", parent_id="1"),
        FlatCategory(id="4", name="Elbise", parent_id="2"),
    ]

    again = flatten(build_tree(flat))

    assert {(c.id, c.parent_id) for c in again} == {(c.id, c.parent_id) for c in flat}
    assert flatten(build_tree(again)) == again


def test_tree_from_nested_with_custom_children_key():
    nested = [{"id": 1, "name": "Moda", "subCategories": [{"id": 2, "name": "Çanta", "subCategories": []}]}]

    tree = tree_from_nested(nested, children_key="subCategories")

    assert tree[0].id == "1"
    assert tree[0].children[0].parent_id == "1"
    assert tree[0].children[0].path == ["Moda", "Çanta"]


def test_fallback_tree_returns_fresh_copies():
    first = fallback_tree("amazon")
    first[0].children.clear()

    second = fallback_tree("amazon")

    assert second[0].children
    assert VERSION


def test_fallback_tree_unknown_marketplace_uses_generic_table():
    assert [root.name for root in fallback_tree("unknown")] == [root.name for root in fallback_tree()]
