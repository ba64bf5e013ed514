"""
Live workspaces: one SolveController per stored tree.

The database holds the structural snapshot of each tree; the controller
holds everything derived from it (calculated values, log, mode) for as
long as the process runs. Structural changes are written back through
save_tree().
"""

import asyncio
import logging
from typing import Optional

from sqlalchemy.orm import Session

from backend.models_db import DecisionTreeModel
from backend.services.evaluation_service import clear_results
from backend.services.solve_controller import SolveController
from shared.schemas import TreeNode

logger = logging.getLogger(__name__)

_controllers: dict[str, SolveController] = {}
_replay_tasks: dict[str, asyncio.Task] = {}


def structural_snapshot(root: TreeNode) -> dict:
    """Snapshot stored in the database: no calculated values, no optimal flags."""
    return clear_results(root).to_snapshot()


def get_tree_row(db: Session, tree_id: str) -> Optional[DecisionTreeModel]:
    return db.query(DecisionTreeModel).filter(DecisionTreeModel.id == tree_id).first()


def get_controller(db: Session, tree_id: str) -> Optional[SolveController]:
    """Controller for tree_id, loaded from the database on first use. None if unknown."""
    controller = _controllers.get(tree_id)
    if controller is not None:
        return controller
    row = get_tree_row(db, tree_id)
    if row is None:
        return None
    controller = SolveController(TreeNode.model_validate(row.tree_json))
    _controllers[tree_id] = controller
    logger.debug("Loaded workspace for tree %s", tree_id)
    return controller


def save_tree(
    db: Session,
    tree_id: str,
    root: TreeNode,
    name: Optional[str] = None,
    description: Optional[str] = None,
) -> DecisionTreeModel:
    """Create or overwrite the stored snapshot of tree_id."""
    row = get_tree_row(db, tree_id)
    payload = structural_snapshot(root)
    if row:
        row.tree_json = payload
        if name is not None:
            row.name = name
        if description is not None:
            row.description = description
    else:
        row = DecisionTreeModel(
            id=tree_id,
            name=name or root.label or tree_id,
            description=description,
            tree_json=payload,
        )
        db.add(row)
    db.commit()
    db.refresh(row)
    return row


def open_workspace(tree_id: str, root: TreeNode) -> SolveController:
    """Start (or restart) the live workspace of tree_id from root."""
    controller = _controllers.get(tree_id)
    if controller is None:
        controller = SolveController(root)
        _controllers[tree_id] = controller
    else:
        controller.replace_tree(root)
    return controller


def close_workspace(tree_id: str) -> None:
    controller = _controllers.pop(tree_id, None)
    if controller is not None:
        controller.cancel()
    _replay_tasks.pop(tree_id, None)


def start_replay(tree_id: str, controller: SolveController, step_delay: Optional[float] = None) -> asyncio.Task:
    """Run controller.request_auto() in the background on the running loop."""
    task = asyncio.get_running_loop().create_task(controller.request_auto(step_delay))
    _replay_tasks[tree_id] = task

    def _done(t: asyncio.Task) -> None:
        if _replay_tasks.get(tree_id) is t:
            _replay_tasks.pop(tree_id, None)
        if not t.cancelled() and t.exception() is not None:
            logger.error("Automatic replay of tree %s failed: %s", tree_id, t.exception())

    task.add_done_callback(_done)
    return task


def clear_workspaces() -> None:
    """Drop every live workspace (used on shutdown and in tests)."""
    for tree_id in list(_controllers):
        close_workspace(tree_id)
