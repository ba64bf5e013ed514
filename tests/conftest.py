"""
Pytest fixtures for EMV Lab tests.

Uses an in-memory SQLite DB for speed and isolation.
StaticPool keeps a single connection so the :memory: database (and tables) persist.
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from backend.database import Base, get_db
from backend.main import app
from backend.services.workspace_service import clear_workspaces
from shared.schemas import NodeType, TreeNode

TEST_DB = "sqlite:///:memory:"


@pytest.fixture(scope="function")
def db_engine():
    """Create a fresh in-memory DB and tables per test."""
    test_engine = create_engine(
        TEST_DB,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,  # single connection so :memory: DB and tables persist
    )
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def client(db_engine):
    """FastAPI TestClient with test DB and no live workspaces left over."""
    session_factory = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    clear_workspaces()
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
    clear_workspaces()


def terminal(node_id: str, value: float, probability: float | None = None) -> TreeNode:
    return TreeNode(id=node_id, type=NodeType.TERMINAL, label=node_id, value=value, probability=probability)


@pytest.fixture
def scenario_tree() -> TreeNode:
    """Decision root with two chance options: A (100 @0.5, 0 @0.5) and B (40 @1.0)."""
    return TreeNode(
        id="root",
        type=NodeType.DECISION,
        label="Choose",
        children=[
            TreeNode(
                id="A",
                type=NodeType.CHANCE,
                label="Option A",
                children=[terminal("a1", 100, 0.5), terminal("a2", 0, 0.5)],
            ),
            TreeNode(
                id="B",
                type=NodeType.CHANCE,
                label="Option B",
                children=[terminal("b1", 40, 1.0)],
            ),
        ],
    )


@pytest.fixture
def five_leaf_tree() -> TreeNode:
    """Decision root, two chance children, two terminal leaves under each."""
    return TreeNode(
        id="root",
        type=NodeType.DECISION,
        label="Launch",
        children=[
            TreeNode(
                id="c1",
                type=NodeType.CHANCE,
                label="Market",
                children=[terminal("t1", 200, 0.3), terminal("t2", -50, 0.7)],
            ),
            TreeNode(
                id="c2",
                type=NodeType.CHANCE,
                label="Partner",
                children=[terminal("t3", 80, 0.5), terminal("t4", 20, 0.5)],
            ),
        ],
    )
