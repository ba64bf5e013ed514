"""Backend services (tree store, evaluation, solve controller, layout, advisor)."""

from backend.services.tree_store import (
    InvalidNodeError,
    InvalidTopologyError,
    add_child,
    create_initial_tree,
    delete_node,
    find_node,
    update_node,
)
from backend.services.evaluation_service import (
    ProbabilityWarning,
    calculation_formula,
    check_probabilities,
    compute_value,
    evaluate_tree,
    mark_optimal_path,
)
from backend.services.solve_controller import CancelToken, SolveController
from backend.services.layout_service import TreeLayout, compute_layout, layout_tree
from backend.services.advisor_service import AdvisorError, TreeAdvisor, build_advisor_snapshot

__all__ = [
    "InvalidNodeError",
    "InvalidTopologyError",
    "add_child",
    "create_initial_tree",
    "delete_node",
    "find_node",
    "update_node",
    "ProbabilityWarning",
    "calculation_formula",
    "check_probabilities",
    "compute_value",
    "evaluate_tree",
    "mark_optimal_path",
    "CancelToken",
    "SolveController",
    "TreeLayout",
    "compute_layout",
    "layout_tree",
    "AdvisorError",
    "TreeAdvisor",
    "build_advisor_snapshot",
]
