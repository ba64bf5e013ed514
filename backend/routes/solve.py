"""
Solve API: step, automatic replay, cancel, reset and current state of a tree's evaluation.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from backend.database import get_db
from backend.routes.trees import load_controller
from backend.services import workspace_service

router = APIRouter()


@router.get("/{tree_id}/solve")
async def get_solve_state(tree_id: str, db: Session = Depends(get_db)):
    """Mode, running flag, current tree and calculation log."""
    return load_controller(db, tree_id).state().to_response()


@router.post("/{tree_id}/solve/step")
async def solve_step(tree_id: str, db: Session = Depends(get_db)):
    """
    Solve one more node. Returns the new log entry (null once the tree is
    solved) together with the resulting state.
    """
    controller = load_controller(db, tree_id)
    entry = controller.request_step()
    return {
        "entry": entry.model_dump(mode="json", by_alias=True) if entry else None,
        "state": controller.state().to_response(),
    }


@router.post("/{tree_id}/solve/auto", status_code=202)
async def solve_auto(
    tree_id: str,
    wait: bool = Query(False, description="Wait for the replay to finish before responding"),
    delay: float | None = Query(None, ge=0, le=30, description="Pacing delay in seconds for this replay only"),
    db: Session = Depends(get_db),
):
    """
    Start the paced automatic replay. By default the replay runs in the
    background; poll GET /solve for progress.
    """
    controller = load_controller(db, tree_id)
    if wait:
        state = await controller.request_auto(delay)
        return state.to_response()
    workspace_service.start_replay(tree_id, controller, delay)
    step_delay = controller.step_delay if delay is None else delay
    return {"tree_id": tree_id, "status": "running", "step_delay": step_delay}


@router.post("/{tree_id}/solve/now")
async def solve_now(tree_id: str, db: Session = Depends(get_db)):
    """Evaluate the whole tree at once, without pacing."""
    return load_controller(db, tree_id).solve_now().to_response()


@router.post("/{tree_id}/solve/cancel")
async def solve_cancel(tree_id: str, db: Session = Depends(get_db)):
    """Stop a running replay; partial results are kept."""
    controller = load_controller(db, tree_id)
    controller.cancel()
    return controller.state().to_response()


@router.post("/{tree_id}/solve/reset")
async def solve_reset(tree_id: str, db: Session = Depends(get_db)):
    """Cancel and clear all calculated values, optimal flags and log entries."""
    controller = load_controller(db, tree_id)
    controller.reset()
    return controller.state().to_response()
