"""Shared schemas and types for EMV Lab (backend and frontend contract)."""

from shared.schemas.decision_tree import (
    CalculationLog,
    NodeType,
    SolveMode,
    SolveState,
    TreeNode,
)

__all__ = [
    "CalculationLog",
    "NodeType",
    "SolveMode",
    "SolveState",
    "TreeNode",
]
