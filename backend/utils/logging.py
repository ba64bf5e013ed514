"""
Structured logging for EMV Lab.

- Configurable level (DEBUG, INFO, WARN, ERROR)
- Writes to /logs/ directory
- Console handler for development
- Helpers for calculation steps, solve transitions and advisor calls
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

# Default: project root / logs
LOG_DIR = Path(__file__).resolve().parent.parent.parent / "logs"
LOG_LEVEL = os.getenv("EMVLAB_LOG_LEVEL", "INFO").upper()
LOG_ADVISOR_CONTENT = os.getenv("EMVLAB_LOG_ADVISOR_CONTENT", "0").lower() in ("1", "true", "yes")


def _ts() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def configure_logging(
    level: str = LOG_LEVEL,
    log_dir: Optional[Path] = None,
    log_to_console: bool = True,
) -> None:
    """Configure root and backend loggers. Call once at app startup."""
    log_dir = log_dir or LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)
    level_value = getattr(logging, level, logging.INFO)

    file_handler = logging.FileHandler(log_dir / "emvlab.log", encoding="utf-8")
    file_handler.setLevel(level_value)
    file_handler.setFormatter(
        logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
    )

    root = logging.getLogger()
    root.setLevel(level_value)
    # Avoid duplicate handlers when reloading
    for h in list(root.handlers):
        root.removeHandler(h)
    root.addHandler(file_handler)
    if log_to_console:
        console = logging.StreamHandler(sys.stdout)
        console.setLevel(level_value)
        console.setFormatter(logging.Formatter("%(levelname)s | %(name)s | %(message)s"))
        root.addHandler(console)

    logging.getLogger("backend").setLevel(level_value)


def get_logger(name: str) -> logging.Logger:
    """Return a logger for the given module (e.g. backend.services.solve_controller)."""
    return logging.getLogger(name)


def log_calculation_step(
    logger: logging.Logger,
    node_id: str,
    node_label: str,
    formula: str,
    result: float,
    extra: Optional[dict[str, Any]] = None,
) -> None:
    """Log one solved node of a replay at DEBUG level."""
    payload = {
        "event": "calculation_step",
        "node_id": node_id,
        "node_label": node_label,
        "formula": formula,
        "result": result,
    }
    if extra:
        payload.update(extra)
    logger.debug("Calculation: %s", json.dumps(payload, default=str, ensure_ascii=False))


def log_solve_transition(
    logger: logging.Logger,
    from_mode: str,
    to_mode: str,
    reason: str,
    logged_steps: int = 0,
) -> None:
    payload = {
        "event": "solve_transition",
        "from": from_mode,
        "to": to_mode,
        "reason": reason,
        "logged_steps": logged_steps,
        "ts": _ts(),
    }
    logger.info("Solve: %s", json.dumps(payload, default=str))


def log_advisor_call(
    logger: logging.Logger,
    provider: str,
    model: str,
    prompt_preview: str,
    response_preview: str,
    duration_sec: Optional[float] = None,
    success: bool = True,
    error: Optional[str] = None,
) -> None:
    """Log an advisor call. Full prompt/response only if EMVLAB_LOG_ADVISOR_CONTENT=1."""
    payload = {
        "event": "advisor_call",
        "provider": provider,
        "model": model,
        "duration_sec": duration_sec,
        "success": success,
        "error": error,
        "prompt_preview": prompt_preview[:200] + "..." if len(prompt_preview) > 200 else prompt_preview,
        "response_preview": response_preview[:200] + "..." if len(response_preview) > 200 else response_preview,
    }
    if LOG_ADVISOR_CONTENT:
        payload["prompt_full"] = prompt_preview
        payload["response_full"] = response_preview
    if success:
        logger.info("Advisor call: %s", json.dumps(payload, default=str, ensure_ascii=False))
    else:
        logger.warning("Advisor call: %s", json.dumps(payload, default=str, ensure_ascii=False))
