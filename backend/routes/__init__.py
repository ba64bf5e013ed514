"""API routes for the EMV Lab backend."""

from fastapi import APIRouter

from backend.routes import advisor, monitoring, solve, trees

api_router = APIRouter(prefix="/api", tags=["api"])

api_router.include_router(monitoring.router)
api_router.include_router(trees.router, prefix="/trees", tags=["trees"])
api_router.include_router(solve.router, prefix="/trees", tags=["solve"])
api_router.include_router(advisor.router, prefix="/trees", tags=["advisor"])
