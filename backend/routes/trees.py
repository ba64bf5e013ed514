"""
CRUD routes for decision trees and their nodes, plus layout and probability checks.

Every structural change goes through the tree's live SolveController (which
resets any calculated results) and is then written back to the database.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy.orm import Session

from backend.database import get_db
from backend.models_db import DecisionTreeModel
from backend.services import workspace_service
from backend.services.evaluation_service import check_probabilities
from backend.services.layout_service import compute_layout
from backend.services.solve_controller import SolveController
from backend.services.tree_store import (
    InvalidNodeError,
    InvalidTopologyError,
    create_initial_tree,
    generate_id,
    validate_structure,
)
from shared.schemas import NodeType, TreeNode

router = APIRouter()

SAMPLE_TREE_ID = "sample-expansion"


class CreateTreeRequest(BaseModel):
    id: Optional[str] = Field(None, description="Tree ID; generated when omitted")
    name: Optional[str] = Field(None, description="Human-readable name (defaults to the root label)")
    description: Optional[str] = None
    tree: Optional[TreeNode] = Field(None, description="Root node snapshot; the sample tree when omitted")


class NodeUpdate(BaseModel):
    """Editable node fields; only the ones sent are merged."""

    label: Optional[str] = None
    type: Optional[NodeType] = None
    value: Optional[float] = None
    probability: Optional[float] = Field(None, ge=0, le=1)
    collapsed: Optional[bool] = None
    notes: Optional[str] = None

    model_config = ConfigDict(extra="forbid")

    @field_validator("label", "type", "value", "collapsed")
    @classmethod
    def not_null(cls, v, info):
        # Only runs for fields that were sent; probability and notes may be cleared with null
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v


class AddChildRequest(BaseModel):
    type: NodeType = Field(..., description="Type of the new child node")


def load_controller(db: Session, tree_id: str) -> SolveController:
    controller = workspace_service.get_controller(db, tree_id)
    if controller is None:
        raise HTTPException(status_code=404, detail=f"Tree '{tree_id}' not found")
    return controller


def _summary(row: DecisionTreeModel) -> dict:
    return {
        "id": row.id,
        "name": row.name,
        "description": row.description,
        "created_at": row.created_at.isoformat(),
        "updated_at": row.updated_at.isoformat(),
    }


@router.get("/", response_model=list[dict])
def list_trees(db: Session = Depends(get_db)):
    """List stored decision trees, most recently updated first."""
    rows = db.query(DecisionTreeModel).order_by(DecisionTreeModel.updated_at.desc()).all()
    return [_summary(r) for r in rows]


@router.post("/", status_code=201)
async def create_tree(body: CreateTreeRequest, db: Session = Depends(get_db)):
    """Create or overwrite a tree from a snapshot (or the sample tree)."""
    root = body.tree or create_initial_tree()
    errors = validate_structure(root)
    if errors:
        raise HTTPException(status_code=400, detail={"message": "Invalid tree structure", "errors": errors})
    tree_id = body.id or generate_id()
    row = workspace_service.save_tree(db, tree_id, root, name=body.name, description=body.description)
    workspace_service.open_workspace(tree_id, root)
    return {**_summary(row), "tree": row.tree_json}


@router.post("/seed-sample", status_code=201)
async def seed_sample_tree(db: Session = Depends(get_db)):
    """Store the sample production-expansion tree so it appears in the list."""
    root = create_initial_tree()
    row = workspace_service.save_tree(
        db,
        SAMPLE_TREE_ID,
        root,
        name=root.label,
        description="Sample: build, extend or outsource under uncertain demand",
    )
    workspace_service.open_workspace(SAMPLE_TREE_ID, root)
    return {"id": row.id, "name": row.name}


@router.get("/{tree_id}")
async def get_tree(tree_id: str, db: Session = Depends(get_db)):
    """Current snapshot of the tree, including any calculated values."""
    return load_controller(db, tree_id).root.to_snapshot()


@router.delete("/{tree_id}", status_code=204)
async def delete_tree(tree_id: str, db: Session = Depends(get_db)):
    row = workspace_service.get_tree_row(db, tree_id)
    if not row:
        raise HTTPException(status_code=404, detail=f"Tree '{tree_id}' not found")
    workspace_service.close_workspace(tree_id)
    db.delete(row)
    db.commit()
    return None


@router.get("/{tree_id}/layout")
async def get_layout(tree_id: str, db: Session = Depends(get_db)):
    """Node coordinates and connector anchors for rendering."""
    return compute_layout(load_controller(db, tree_id).root).model_dump(mode="json")


@router.get("/{tree_id}/warnings")
async def get_warnings(tree_id: str, db: Session = Depends(get_db)):
    """Chance nodes whose branch probabilities do not sum to 1 (advisory)."""
    warnings = check_probabilities(load_controller(db, tree_id).root)
    return [w.model_dump() for w in warnings]


# -----------------------------------------------------------------------------
# Node edits
# -----------------------------------------------------------------------------


def _apply(db: Session, tree_id: str, controller: SolveController, edit) -> dict:
    try:
        edit()
    except InvalidTopologyError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except InvalidNodeError as e:
        raise HTTPException(status_code=422, detail=str(e))
    workspace_service.save_tree(db, tree_id, controller.root)
    return controller.state().to_response()


@router.patch("/{tree_id}/nodes/{node_id}")
async def update_node(tree_id: str, node_id: str, body: NodeUpdate, db: Session = Depends(get_db)):
    """Merge the given fields into a node. Unknown node ids are ignored."""
    controller = load_controller(db, tree_id)
    fields = body.model_dump(exclude_unset=True)
    return _apply(db, tree_id, controller, lambda: controller.update_node(node_id, fields))


@router.post("/{tree_id}/nodes/{parent_id}/children", status_code=201)
async def add_child(tree_id: str, parent_id: str, body: AddChildRequest, db: Session = Depends(get_db)):
    """Append a new child of the given type to parent_id."""
    controller = load_controller(db, tree_id)
    return _apply(db, tree_id, controller, lambda: controller.add_node(parent_id, body.type))


@router.delete("/{tree_id}/nodes/{node_id}")
async def delete_node(tree_id: str, node_id: str, db: Session = Depends(get_db)):
    """Remove a node and its subtree. The root cannot be deleted."""
    controller = load_controller(db, tree_id)
    return _apply(db, tree_id, controller, lambda: controller.delete_node(node_id))
