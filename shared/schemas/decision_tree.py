"""
Decision tree snapshot schema and Pydantic models.

Used by the backend (store, evaluation, solve controller, API) and by any
client that renders the tree. The JSON snapshot uses camelCase keys
(calculatedValue, isOptimal); Python code uses the snake_case attributes.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class NodeType(str, Enum):
    """Type of node in the decision tree."""

    DECISION = "DECISION"
    CHANCE = "CHANCE"
    TERMINAL = "TERMINAL"


class SolveMode(str, Enum):
    """Mode of the solve controller."""

    EDIT = "edit"
    STEPPING = "stepping"
    SOLVED = "solved"


class TreeNode(BaseModel):
    """
    Single node of the tree, with its ordered children.

    Instances are never modified in place: every change produces a new node
    (see backend.services.tree_store) so older snapshots stay valid.
    """

    id: str = Field(..., description="Unique node ID")
    type: NodeType = Field(..., description="Node type")
    label: str = Field("", description="Display label")
    value: float = Field(0, description="Payout; meaningful for terminal nodes")
    probability: Optional[float] = Field(
        None,
        description="Branch probability; meaningful only for children of a chance node",
    )
    children: list["TreeNode"] = Field(default_factory=list, description="Ordered child nodes")
    collapsed: Optional[bool] = Field(None, description="Presentation only")
    calculated_value: Optional[float] = Field(None, alias="calculatedValue", description="EMV after evaluation")
    is_optimal: Optional[bool] = Field(None, alias="isOptimal", description="Chosen branch of the parent decision")
    notes: Optional[str] = Field(None, description="Free-text notes (presentation only)")

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    def to_snapshot(self) -> dict:
        """Plain structural snapshot with camelCase keys, unset optionals omitted."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class CalculationLog(BaseModel):
    """One entry of the calculation log (one solved node)."""

    id: str = Field(..., description="Unique log entry ID")
    node_id: str = Field(..., alias="nodeId", description="ID of the solved node")
    node_label: str = Field(..., alias="nodeLabel")
    node_type: NodeType = Field(..., alias="nodeType")
    formula: str = Field(..., description="Human-readable derivation")
    result: float = Field(..., description="Computed value")
    timestamp: int = Field(..., description="Epoch milliseconds")

    model_config = ConfigDict(frozen=True, populate_by_name=True)


class SolveState(BaseModel):
    """What observers of a solve see after each committed step."""

    mode: SolveMode = Field(..., description="edit | stepping | solved")
    running: bool = Field(False, description="True while an automatic replay is in flight")
    tree: TreeNode
    logs: list[CalculationLog] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)

    def to_response(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
