"""
Health check for EMV Lab.

- Database connectivity
- Advisor configuration (API key present; the API is not called)
- Counts of stored trees and advisor calls
"""

import logging
from typing import Any

from sqlalchemy import func, text

from backend.database import SessionLocal, engine
from backend.models_db import AdvisorCallLog, DecisionTreeModel
from backend.services.advisor_service import advisor_configured

logger = logging.getLogger(__name__)


def check_db() -> tuple[bool, str]:
    """Check database connectivity. Returns (ok, message)."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True, "ok"
    except Exception as e:
        return False, str(e)


def get_counts() -> dict[str, Any]:
    db = SessionLocal()
    try:
        trees_total = db.query(func.count(DecisionTreeModel.id)).scalar() or 0
        advisor_calls = db.query(func.count(AdvisorCallLog.id)).scalar() or 0
        advisor_failures = (
            db.query(func.count(AdvisorCallLog.id)).filter(AdvisorCallLog.success.is_(False)).scalar() or 0
        )
        return {
            "trees_stored": trees_total,
            "advisor_calls": advisor_calls,
            "advisor_failures": advisor_failures,
        }
    except Exception as e:
        logger.exception("get_counts failed: %s", e)
        return {"trees_stored": 0, "advisor_calls": 0, "advisor_failures": 0, "error": str(e)}
    finally:
        db.close()


def get_health() -> dict[str, Any]:
    """Return health status for /api/health."""
    db_ok, db_msg = check_db()
    advisor_ok, advisor_msg = advisor_configured()
    return {
        "status": "healthy" if db_ok else "unhealthy",
        "checks": {
            "database": {"status": "up" if db_ok else "down", "message": db_msg},
            "advisor_config": {"status": "configured" if advisor_ok else "not_configured", "message": advisor_msg},
        },
    }
