#!/usr/bin/env python3
"""
Store the sample production-expansion tree in the database.
Idempotent: safe to run multiple times (upserts).

Usage (from project root):
  python scripts/seed_sample_tree.py
"""
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

SAMPLE_TREE_ID = "sample-expansion"


def main() -> int:
    from backend.database import Base, SessionLocal, engine
    from backend.services.tree_store import create_initial_tree
    from backend.services.workspace_service import save_tree

    Base.metadata.create_all(bind=engine)
    root = create_initial_tree()
    db = SessionLocal()
    try:
        row = save_tree(
            db,
            SAMPLE_TREE_ID,
            root,
            name=root.label,
            description="Sample: build, extend or outsource under uncertain demand",
        )
        print(f"Seeded tree: {row.name} (id={row.id})")
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
