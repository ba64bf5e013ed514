"""Unit tests for copy-on-write tree operations."""

import pytest

from backend.services.tree_store import (
    InvalidNodeError,
    InvalidTopologyError,
    add_child,
    create_initial_tree,
    delete_node,
    find_node,
    iter_nodes,
    update_node,
    validate_structure,
)
from shared.schemas import NodeType, TreeNode


def test_find_node(scenario_tree):
    assert find_node(scenario_tree, "a2").value == 0
    assert find_node(scenario_tree, "root") is scenario_tree
    assert find_node(scenario_tree, "missing") is None


def test_update_merges_fields_and_shares_untouched_subtrees(scenario_tree):
    before = scenario_tree.to_snapshot()
    new_root = update_node(scenario_tree, "a1", {"value": 150, "label": "Boom"})

    assert new_root is not scenario_tree
    assert find_node(new_root, "a1").value == 150
    assert find_node(new_root, "a1").label == "Boom"
    assert find_node(new_root, "a1").probability == 0.5
    # Path to the changed node is copied, the sibling subtree is shared
    assert new_root.children[0] is not scenario_tree.children[0]
    assert new_root.children[0].children[1] is scenario_tree.children[0].children[1]
    assert new_root.children[1] is scenario_tree.children[1]
    assert scenario_tree.to_snapshot() == before


def test_update_accepts_snapshot_keys(scenario_tree):
    new_root = update_node(scenario_tree, "B", {"calculatedValue": 40, "isOptimal": False})
    node = find_node(new_root, "B")
    assert node.calculated_value == 40
    assert node.is_optimal is False


def test_update_unknown_id_returns_same_tree(scenario_tree):
    assert update_node(scenario_tree, "nope", {"value": 1}) is scenario_tree


def test_update_to_terminal_with_children_is_rejected(scenario_tree):
    with pytest.raises(InvalidTopologyError):
        update_node(scenario_tree, "A", {"type": NodeType.TERMINAL})


def test_update_validates_merged_node(scenario_tree):
    for fields in ({"label": None}, {"type": None}, {"value": "lots"}, {"type": "BRANCH"}):
        with pytest.raises(InvalidNodeError):
            update_node(scenario_tree, "A", fields)


def test_update_keeps_existing_children(scenario_tree):
    new_root = update_node(scenario_tree, "A", {"type": "DECISION", "label": "Pick"})
    node = find_node(new_root, "A")
    assert node.type == NodeType.DECISION
    assert node.children[0] is scenario_tree.children[0].children[0]
    assert node.children[1] is scenario_tree.children[0].children[1]


def test_add_child_defaults(scenario_tree):
    new_root = add_child(scenario_tree, "B", NodeType.CHANCE)
    b = find_node(new_root, "B")
    assert len(b.children) == 2
    child = b.children[-1]
    assert child.type == NodeType.CHANCE
    assert child.label == "Chance event"
    assert child.value == 0
    assert child.probability == 0.5
    assert child.children == []
    assert child.id not in {n.id for n in iter_nodes(scenario_tree)}
    assert len(find_node(scenario_tree, "B").children) == 1
    assert new_root.children[0] is scenario_tree.children[0]


def test_add_child_under_terminal_is_rejected(scenario_tree):
    with pytest.raises(InvalidTopologyError):
        add_child(scenario_tree, "b1", NodeType.TERMINAL)


def test_add_child_unknown_parent_is_noop(scenario_tree):
    assert add_child(scenario_tree, "nope", NodeType.TERMINAL) is scenario_tree


def test_delete_removes_subtree_without_touching_original(scenario_tree):
    new_root = delete_node(scenario_tree, "A")
    assert [c.id for c in new_root.children] == ["B"]
    assert find_node(new_root, "a1") is None
    assert find_node(scenario_tree, "a1") is not None
    assert new_root.children[0] is scenario_tree.children[1]


def test_delete_never_removes_root(scenario_tree):
    assert delete_node(scenario_tree, "root") is scenario_tree
    sample = create_initial_tree()
    assert delete_node(sample, "root").id == "root"


def test_delete_is_exhaustive():
    # Duplicate ids only arise from bad input; every match is removed
    dup = TreeNode(id="x", type=NodeType.TERMINAL, label="x")
    root = TreeNode(
        id="root",
        type=NodeType.DECISION,
        label="r",
        children=[dup, TreeNode(id="d", type=NodeType.DECISION, label="d", children=[dup])],
    )
    new_root = delete_node(root, "x")
    assert [c.id for c in new_root.children] == ["d"]
    assert new_root.children[0].children == []


def test_validate_structure():
    assert validate_structure(create_initial_tree()) == []
    bad = TreeNode(
        id="root",
        type=NodeType.DECISION,
        label="r",
        children=[
            TreeNode(id="t", type=NodeType.TERMINAL, label="t", children=[TreeNode(id="t", type=NodeType.TERMINAL, label="t")]),
        ],
    )
    errors = validate_structure(bad)
    assert any("Duplicate" in e for e in errors)
    assert any("has children" in e for e in errors)


def test_sample_tree_ids_unique():
    ids = [n.id for n in iter_nodes(create_initial_tree())]
    assert len(ids) == len(set(ids)) == 10
