"""Health and usage counts endpoints."""

from fastapi import APIRouter

from backend.services.monitoring_service import get_counts, get_health

router = APIRouter(tags=["monitoring"])


@router.get("/health", summary="Health check")
def health():
    """
    Health check for load balancers and orchestration.
    Returns database and advisor config status.
    """
    return get_health()


@router.get("/metrics", summary="Usage counts")
def metrics():
    """Stored trees and advisor calls (total and failed)."""
    return get_counts()
