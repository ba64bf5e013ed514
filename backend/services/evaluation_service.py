"""
Backward-induction evaluation of a decision tree.

Pure functions over TreeNode snapshots: node values (EMV), derivation
formulas for the calculation log, optimal-path marking, and advisory
probability checks. Nothing here mutates its input.
"""

import logging
import time
from typing import Optional

from pydantic import BaseModel, Field

from backend.services.tree_store import generate_id
from shared.schemas import CalculationLog, NodeType, TreeNode

logger = logging.getLogger(__name__)

OPTIMAL_TOLERANCE = 1e-4
PROBABILITY_TOLERANCE = 1e-3


def compute_value(node: TreeNode) -> float:
    """
    EMV of node from its children's calculated values (missing counts as 0).

    - terminal: its payout
    - decision: best child, 0 without children
    - chance: sum of child value × child probability
    """
    if node.type == NodeType.TERMINAL:
        return node.value or 0
    if not node.children:
        return 0
    if node.type == NodeType.DECISION:
        return max(child.calculated_value or 0 for child in node.children)
    return sum((child.calculated_value or 0) * (child.probability or 0) for child in node.children)


def format_literal(number: Optional[float]) -> str:
    if number is None:
        return "0"
    number = float(number)
    return str(int(number)) if number.is_integer() else repr(number)


def _fmt_value(value: Optional[float]) -> str:
    return "?" if value is None else f"{value:.2f}"


def calculation_formula(node: TreeNode) -> str:
    """Human-readable derivation of compute_value for the calculation log."""
    if node.type == NodeType.TERMINAL:
        return format_literal(node.value)
    if node.type == NodeType.DECISION:
        return "MAX(" + ", ".join(_fmt_value(c.calculated_value) for c in node.children) + ")"
    parts = [
        f"({format_literal(c.probability)} × {_fmt_value(c.calculated_value)})" for c in node.children
    ]
    return " + ".join(parts) if parts else "0"


def make_log_entry(node: TreeNode, result: float) -> CalculationLog:
    return CalculationLog(
        id=generate_id(),
        node_id=node.id,
        node_label=node.label,
        node_type=node.type,
        formula=calculation_formula(node),
        result=result,
        timestamp=int(time.time() * 1000),
    )


def post_order(root: TreeNode) -> list[TreeNode]:
    """All nodes, children (left to right) before their parent."""
    order: list[TreeNode] = []
    for child in root.children:
        order.extend(post_order(child))
    order.append(root)
    return order


def mark_optimal_path(root: TreeNode) -> TreeNode:
    """
    Flag the chosen branches of every evaluated decision node.

    Each child of a decision node whose value is within OPTIMAL_TOLERANCE of
    the parent's gets is_optimal=True (ties are all marked), the others False.
    Children of chance nodes are left as they are.
    """
    if root.type == NodeType.TERMINAL or not root.children:
        return root
    children = [mark_optimal_path(child) for child in root.children]
    if root.type == NodeType.DECISION and root.calculated_value is not None:
        best = root.calculated_value
        children = [
            child.model_copy(
                update={"is_optimal": abs((child.calculated_value or 0) - best) < OPTIMAL_TOLERANCE}
            )
            for child in children
        ]
    return root.model_copy(update={"children": children})


def clear_results(root: TreeNode) -> TreeNode:
    """New tree with every calculated value and optimal flag removed."""
    return root.model_copy(
        update={
            "calculated_value": None,
            "is_optimal": None,
            "children": [clear_results(child) for child in root.children],
        }
    )


def has_results(root: TreeNode) -> bool:
    if root.calculated_value is not None or root.is_optimal is not None:
        return True
    return any(has_results(child) for child in root.children)


def fill_terminals(root: TreeNode) -> TreeNode:
    """Give every terminal without a calculated value its own payout."""
    if root.type == NodeType.TERMINAL:
        if root.calculated_value is not None:
            return root
        return root.model_copy(update={"calculated_value": root.value or 0})
    children = [fill_terminals(child) for child in root.children]
    if all(new is old for new, old in zip(children, root.children)):
        return root
    return root.model_copy(update={"children": children})


def _evaluate(node: TreeNode, logs: list[CalculationLog]) -> TreeNode:
    if node.type == NodeType.TERMINAL:
        return node.model_copy(update={"calculated_value": node.value or 0})
    solved = node.model_copy(update={"children": [_evaluate(child, logs) for child in node.children]})
    result = compute_value(solved)
    logs.append(make_log_entry(solved, result))
    return solved.model_copy(update={"calculated_value": result})


def evaluate_tree(root: TreeNode) -> tuple[TreeNode, list[CalculationLog]]:
    """
    Full backward induction without pacing.

    Returns the evaluated tree with the optimal path marked and one log entry
    per decision/chance node, in post-order. Existing results are discarded
    first, so evaluating twice gives the same values.
    """
    logs: list[CalculationLog] = []
    evaluated = _evaluate(clear_results(root), logs)
    return mark_optimal_path(evaluated), logs


# -----------------------------------------------------------------------------
# Probability checks (advisory)
# -----------------------------------------------------------------------------


class ProbabilityWarning(BaseModel):
    """A chance node whose branch probabilities do not add up to 1."""

    code: str = Field(..., description="probability_sum | missing_probability")
    message: str
    node_id: str
    total: Optional[float] = Field(None, description="Sum of the branch probabilities")


def check_probabilities(root: TreeNode) -> list[ProbabilityWarning]:
    """Advisory check of every chance node; the tree is evaluated regardless."""
    warnings: list[ProbabilityWarning] = []
    for node in post_order(root):
        if node.type != NodeType.CHANCE or not node.children:
            continue
        missing = [c.id for c in node.children if c.probability is None]
        if missing:
            warnings.append(
                ProbabilityWarning(
                    code="missing_probability",
                    message=f"Chance node '{node.label}' has branches without a probability: {', '.join(missing)}",
                    node_id=node.id,
                )
            )
        total = sum(c.probability or 0 for c in node.children)
        if abs(total - 1) > PROBABILITY_TOLERANCE:
            warnings.append(
                ProbabilityWarning(
                    code="probability_sum",
                    message=f"Probabilities of chance node '{node.label}' sum to {total:.4f}, expected 1",
                    node_id=node.id,
                    total=total,
                )
            )
    if warnings:
        logger.info("Probability check: %d warning(s)", len(warnings))
    return warnings
