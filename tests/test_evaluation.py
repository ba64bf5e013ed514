"""Unit tests for backward induction, formulas and optimal-path marking."""

import pytest

from backend.services.evaluation_service import (
    calculation_formula,
    check_probabilities,
    clear_results,
    compute_value,
    evaluate_tree,
    mark_optimal_path,
    post_order,
)
from backend.services.tree_store import create_initial_tree, find_node, iter_nodes
from shared.schemas import NodeType, TreeNode


def test_compute_value_by_type():
    leaf = TreeNode(id="t", type=NodeType.TERMINAL, label="t", value=12.5)
    assert compute_value(leaf) == 12.5

    decision = TreeNode(
        id="d",
        type=NodeType.DECISION,
        label="d",
        children=[
            TreeNode(id="x", type=NodeType.TERMINAL, label="x", calculated_value=3),
            TreeNode(id="y", type=NodeType.TERMINAL, label="y", calculated_value=7),
        ],
    )
    assert compute_value(decision) == 7

    chance = TreeNode(
        id="c",
        type=NodeType.CHANCE,
        label="c",
        children=[
            TreeNode(id="x", type=NodeType.TERMINAL, label="x", calculated_value=10, probability=0.25),
            TreeNode(id="y", type=NodeType.TERMINAL, label="y", calculated_value=20),
        ],
    )
    # Missing probability counts as 0
    assert compute_value(chance) == pytest.approx(2.5)


def test_compute_value_without_children_is_zero():
    assert compute_value(TreeNode(id="d", type=NodeType.DECISION, label="d")) == 0
    assert compute_value(TreeNode(id="c", type=NodeType.CHANCE, label="c")) == 0


def test_decision_with_negative_children_uncalculated_counts_as_zero():
    decision = TreeNode(
        id="d",
        type=NodeType.DECISION,
        label="d",
        children=[
            TreeNode(id="x", type=NodeType.TERMINAL, label="x", calculated_value=-5),
            TreeNode(id="y", type=NodeType.TERMINAL, label="y"),
        ],
    )
    assert compute_value(decision) == 0


def test_formulas(scenario_tree):
    evaluated, _ = evaluate_tree(scenario_tree)
    assert calculation_formula(find_node(evaluated, "a1")) == "100"
    assert calculation_formula(find_node(evaluated, "A")) == "(0.5 × 100.00) + (0.5 × 0.00)"
    assert calculation_formula(evaluated) == "MAX(50.00, 40.00)"
    assert calculation_formula(scenario_tree) == "MAX(?, ?)"


def test_scenario_decision_over_two_chance_nodes(scenario_tree):
    evaluated, logs = evaluate_tree(scenario_tree)
    a = find_node(evaluated, "A")
    b = find_node(evaluated, "B")
    assert a.calculated_value == pytest.approx(50)
    assert b.calculated_value == pytest.approx(40)
    assert evaluated.calculated_value == pytest.approx(50)
    assert a.is_optimal is True
    assert b.is_optimal is False
    # Chance children are never flagged
    assert all(c.is_optimal is None for c in a.children)
    assert [entry.node_id for entry in logs] == ["A", "B", "root"]


def test_evaluation_is_idempotent():
    tree = create_initial_tree()
    first, first_logs = evaluate_tree(tree)
    second, second_logs = evaluate_tree(first)
    assert first.to_snapshot() == second.to_snapshot()
    assert [e.result for e in first_logs] == [e.result for e in second_logs]


def test_properties_hold_on_sample_tree():
    evaluated, logs = evaluate_tree(create_initial_tree())
    for node in iter_nodes(evaluated):
        if node.type == NodeType.DECISION:
            assert any(
                c.is_optimal and abs(c.calculated_value - node.calculated_value) < 1e-4 for c in node.children
            )
        if node.type == NodeType.CHANCE:
            expected = sum(c.calculated_value * c.probability for c in node.children)
            assert node.calculated_value == pytest.approx(expected)

    # plant 1300, extend 840, outsource 680
    assert evaluated.calculated_value == pytest.approx(1300)
    assert [c.is_optimal for c in evaluated.children] == [True, False, False]

    position = {entry.node_id: i for i, entry in enumerate(logs)}
    for node in iter_nodes(evaluated):
        if node.id not in position:
            continue
        for descendant in iter_nodes(node):
            if descendant is not node and descendant.id in position:
                assert position[descendant.id] < position[node.id]


def test_mark_optimal_path_marks_all_ties():
    tree = TreeNode(
        id="root",
        type=NodeType.DECISION,
        label="r",
        calculated_value=10,
        children=[
            TreeNode(id="x", type=NodeType.TERMINAL, label="x", value=10, calculated_value=10),
            TreeNode(id="y", type=NodeType.TERMINAL, label="y", value=10, calculated_value=10.00001),
            TreeNode(id="z", type=NodeType.TERMINAL, label="z", value=9, calculated_value=9),
        ],
    )
    marked = mark_optimal_path(tree)
    assert [c.is_optimal for c in marked.children] == [True, True, False]
    assert tree.children[0].is_optimal is None


def test_mark_optimal_path_skips_unevaluated_decisions(scenario_tree):
    marked = mark_optimal_path(scenario_tree)
    assert all(n.is_optimal is None for n in iter_nodes(marked))


def test_post_order_children_first(five_leaf_tree):
    assert [n.id for n in post_order(five_leaf_tree)] == ["t1", "t2", "c1", "t3", "t4", "c2", "root"]


def test_clear_results(scenario_tree):
    evaluated, _ = evaluate_tree(scenario_tree)
    cleared = clear_results(evaluated)
    assert all(n.calculated_value is None and n.is_optimal is None for n in iter_nodes(cleared))


def test_check_probabilities(scenario_tree):
    assert check_probabilities(scenario_tree) == []
    off = TreeNode(
        id="c",
        type=NodeType.CHANCE,
        label="Weather",
        children=[
            TreeNode(id="x", type=NodeType.TERMINAL, label="x", probability=0.5),
            TreeNode(id="y", type=NodeType.TERMINAL, label="y"),
        ],
    )
    codes = sorted(w.code for w in check_probabilities(off))
    assert codes == ["missing_probability", "probability_sum"]


def test_check_probabilities_allows_rounded_thirds():
    thirds = TreeNode(
        id="c",
        type=NodeType.CHANCE,
        label="Market",
        children=[
            TreeNode(id=f"t{i}", type=NodeType.TERMINAL, label=f"t{i}", value=10, probability=0.3333)
            for i in range(3)
        ],
    )
    assert check_probabilities(thirds) == []
    # Off by more than a rounding error is still reported
    skewed = thirds.model_copy(update={"children": thirds.children[:2]})
    assert [w.code for w in check_probabilities(skewed)] == ["probability_sum"]
