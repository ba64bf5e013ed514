"""
Solve controller: manual stepping and paced automatic replay of backward induction.

State machine
  edit      -> stepping   request_step() / request_auto()
  stepping  -> stepping   a node was solved and more remain
  stepping  -> solved     every node solved, optimal path marked
  any       -> edit       reset() or any tree mutation

The automatic replay is a coroutine whose only suspension points are the
pacing delays. Cancellation goes through an explicit CancelToken checked at
the top of every iteration and right after every delay; a cancelled replay
never writes to the controller again, so replays cannot interleave.

Environment variables:
  EMVLAB_STEP_DELAY_SEC   pacing delay between solved nodes in auto mode (default: 2)
"""

import asyncio
import logging
import os
from typing import Any, Callable, Optional

from backend.services import evaluation_service as engine
from backend.services import tree_store
from backend.services.tree_store import InvalidTopologyError
from backend.utils.logging import log_calculation_step, log_solve_transition
from shared.schemas import CalculationLog, NodeType, SolveMode, SolveState, TreeNode

logger = logging.getLogger(__name__)

DEFAULT_STEP_DELAY_SEC = float(os.getenv("EMVLAB_STEP_DELAY_SEC", "2"))

Observer = Callable[[SolveState], None]


class CancelToken:
    """Cooperative cancellation flag for one automatic replay."""

    __slots__ = ("cancelled",)

    def __init__(self):
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class SolveController:
    """
    Owns the current tree snapshot, the calculation log and the solve mode.

    While stepping or solved the controller is the only writer of the tree;
    observers registered with subscribe() receive a SolveState after every
    committed change.
    """

    def __init__(
        self,
        root: Optional[TreeNode] = None,
        step_delay: Optional[float] = None,
    ):
        self._root = root if root is not None else tree_store.create_initial_tree()
        self.root_id = self._root.id
        self.step_delay = DEFAULT_STEP_DELAY_SEC if step_delay is None else step_delay
        self._mode = SolveMode.EDIT
        self._logs: list[CalculationLog] = []
        self._token: Optional[CancelToken] = None
        self._observers: list[Observer] = []

    # -------------------------------------------------------------------------
    # Read access
    # -------------------------------------------------------------------------

    @property
    def root(self) -> TreeNode:
        return self._root

    @property
    def mode(self) -> SolveMode:
        return self._mode

    @property
    def logs(self) -> list[CalculationLog]:
        return list(self._logs)

    @property
    def is_running(self) -> bool:
        return self._token is not None and not self._token.cancelled

    def state(self) -> SolveState:
        return SolveState(mode=self._mode, running=self.is_running, tree=self._root, logs=list(self._logs))

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register observer; returns a function that unregisters it."""
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def _publish(self) -> None:
        state = self.state()
        for observer in list(self._observers):
            observer(state)

    def _set_mode(self, mode: SolveMode, reason: str) -> None:
        if mode != self._mode:
            log_solve_transition(logger, self._mode.value, mode.value, reason, len(self._logs))
        self._mode = mode

    # -------------------------------------------------------------------------
    # Cancellation and reset
    # -------------------------------------------------------------------------

    def cancel(self) -> None:
        """Stop an in-flight automatic replay. Partial results stay; no-op when idle."""
        if self._token is None:
            return
        self._token.cancel()
        self._token = None
        logger.info("Automatic replay cancelled after %d logged step(s)", len(self._logs))

    def reset(self) -> None:
        """Cancel, drop every calculated value, optimal flag and log entry, back to edit."""
        self.cancel()
        self._root = engine.clear_results(self._root)
        self._logs = []
        self._set_mode(SolveMode.EDIT, "reset")
        self._publish()

    # -------------------------------------------------------------------------
    # Solving
    # -------------------------------------------------------------------------

    def _append_log(self, node: TreeNode, result: float) -> CalculationLog:
        entry = engine.make_log_entry(node, result)
        self._logs.append(entry)
        log_calculation_step(logger, node.id, node.label, entry.formula, result, {"mode": self._mode.value})
        return entry

    def _finish(self) -> None:
        self._root = engine.mark_optimal_path(self._root)
        self._set_mode(SolveMode.SOLVED, "all nodes evaluated")
        self._publish()

    def request_step(self) -> Optional[CalculationLog]:
        """
        Solve exactly one more node.

        Terminal payouts are filled in silently; the first decision/chance
        node in post-order whose children are all calculated is computed and
        logged. With nothing left to compute the optimal path is marked and
        the controller enters solved. Returns the new log entry, if any.
        """
        self.cancel()
        self._root = engine.fill_terminals(self._root)

        for node in engine.post_order(self._root):
            if node.calculated_value is not None:
                continue
            if any(child.calculated_value is None for child in node.children):
                continue
            self._set_mode(SolveMode.STEPPING, "step requested")
            result = engine.compute_value(node)
            entry = self._append_log(node, result)
            self._root = tree_store.update_node(self._root, node.id, {"calculated_value": result})
            self._publish()
            return entry

        self._finish()
        return None

    async def request_auto(self, step_delay: Optional[float] = None) -> SolveState:
        """
        Replay the whole evaluation with a pacing delay before each solved node.

        step_delay overrides self.step_delay for this replay only.

        Starting from edit or solved resets everything first; starting from a
        partially stepped tree continues where it stopped. Returns the state
        after the replay finished or was cancelled.
        """
        delay = self.step_delay if step_delay is None else step_delay
        self.cancel()
        token = CancelToken()
        self._token = token
        if self._mode in (SolveMode.EDIT, SolveMode.SOLVED):
            self._root = engine.clear_results(self._root)
            self._logs = []
        self._set_mode(SolveMode.STEPPING, "automatic replay")
        self._publish()

        order = [node.id for node in engine.post_order(self._root)]
        try:
            for node_id in order:
                if token.cancelled:
                    return self.state()
                node = tree_store.find_node(self._root, node_id)
                if node is None:
                    continue
                if node.type == NodeType.TERMINAL:
                    self._root = tree_store.update_node(self._root, node_id, {"calculated_value": node.value or 0})
                    continue
                if node.calculated_value is not None:
                    continue

                await asyncio.sleep(delay)
                if token.cancelled:
                    return self.state()

                node = tree_store.find_node(self._root, node_id)
                result = engine.compute_value(node)
                self._append_log(node, result)
                self._root = tree_store.update_node(self._root, node_id, {"calculated_value": result})
                self._publish()

            if token.cancelled:
                return self.state()
            self._token = None
            self._finish()
            return self.state()
        finally:
            if self._token is token:
                self._token = None

    def solve_now(self) -> SolveState:
        """Evaluate the whole tree at once, without pacing."""
        self.cancel()
        self._root, self._logs = engine.evaluate_tree(self._root)
        for entry in self._logs:
            log_calculation_step(logger, entry.node_id, entry.node_label, entry.formula, entry.result)
        self._set_mode(SolveMode.SOLVED, "solved at once")
        self._publish()
        return self.state()

    # -------------------------------------------------------------------------
    # Mutations (reset derived results first)
    # -------------------------------------------------------------------------

    def _invalidate(self) -> None:
        if self._mode != SolveMode.EDIT or engine.has_results(self._root):
            self.reset()

    def _mutate(self, operation: Callable[[TreeNode], TreeNode]) -> TreeNode:
        # Dry run on the current tree so a rejected edit leaves results in place.
        operation(self._root)
        self._invalidate()
        new_root = operation(self._root)
        if new_root is not self._root:
            self._root = new_root
            self._publish()
        return self._root

    def update_node(self, node_id: str, fields: dict[str, Any]) -> TreeNode:
        return self._mutate(lambda root: tree_store.update_node(root, node_id, fields))

    def add_node(self, parent_id: str, node_type: NodeType) -> TreeNode:
        return self._mutate(lambda root: tree_store.add_child(root, parent_id, node_type))

    def delete_node(self, node_id: str) -> TreeNode:
        if node_id == self.root_id:
            raise InvalidTopologyError("The root node cannot be deleted")
        return self._mutate(lambda root: tree_store.delete_node(root, node_id))

    def replace_tree(self, root: TreeNode) -> TreeNode:
        """Swap in a whole new tree (e.g. loaded from storage)."""
        self.cancel()
        self._logs = []
        self._root = engine.clear_results(root)
        self.root_id = root.id
        self._set_mode(SolveMode.EDIT, "tree replaced")
        self._publish()
        return self._root
