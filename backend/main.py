"""
EMV Lab FastAPI application entrypoint.

Run with: uvicorn backend.main:app --reload
"""

from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend.database import Base, engine
from backend.models_db import AdvisorCallLog, DecisionTreeModel  # noqa: F401  (register tables)
from backend.routes import api_router
from backend.services.workspace_service import clear_workspaces
from backend.utils.logging import configure_logging


def ensure_dirs():
    """Create the logs directory if missing."""
    root = Path(__file__).resolve().parent.parent
    (root / "logs").mkdir(parents=True, exist_ok=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create DB tables, dirs, and configure logging on startup; stop replays on shutdown."""
    ensure_dirs()
    configure_logging()
    Base.metadata.create_all(bind=engine)
    yield
    clear_workspaces()


app = FastAPI(
    title="EMV Lab API",
    description="""Decision tree editor backend: backward induction (EMV), step-by-step and paced replay, layout, AI advisor.

## Solving
- `POST /api/trees/{id}/solve/step` solves one more node.
- `POST /api/trees/{id}/solve/auto` starts the paced replay (`?wait=true` to block until done).
- `POST /api/trees/{id}/solve/cancel` stops it; `POST /api/trees/{id}/solve/reset` clears all results.

Any edit of a node resets calculated values.
""",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS for local React dev (Vite default port 5173)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)


@app.get("/")
def root():
    return {"service": "EMV Lab", "docs": "/docs", "api": "/api"}
