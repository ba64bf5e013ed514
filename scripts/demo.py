#!/usr/bin/env python3
"""
Replay the backward induction of the sample tree in the console.

Usage (from project root):
  python scripts/demo.py [delay_seconds]

Output: one line per solved node as the paced replay runs, then the
optimal choice at the root and any probability warnings.
"""
import asyncio
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def main() -> None:
    from backend.services.evaluation_service import check_probabilities
    from backend.services.solve_controller import SolveController
    from backend.services.tree_store import create_initial_tree

    delay = float(sys.argv[1]) if len(sys.argv) > 1 else 0.5
    controller = SolveController(create_initial_tree(), step_delay=delay)
    printed = 0

    def show(state) -> None:
        nonlocal printed
        for entry in state.logs[printed:]:
            print(f"{entry.node_type.value:<9} {entry.node_label:<32} {entry.formula:<48} = {entry.result:.2f}")
        printed = len(state.logs)

    controller.subscribe(show)
    print(f"Tree: {controller.root.label} (delay {delay:.1f}s per node)\n")
    state = asyncio.run(controller.request_auto())

    root = state.tree
    print()
    print(f"Mode: {state.mode.value}")
    print(f"Root EMV: {root.calculated_value:.2f}")
    best = [child.label for child in root.children if child.is_optimal]
    print(f"Optimal choice: {', '.join(best) or '-'}")
    for warning in check_probabilities(root):
        print(f"Warning: {warning.message}")


if __name__ == "__main__":
    main()
