"""
SQLAlchemy ORM models for EMV Lab (persisted in SQLite).

Trees are stored as plain structural snapshots; calculated values and
optimal flags are never persisted.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Float, String, Text, JSON
from sqlalchemy.orm import Mapped, mapped_column

from backend.database import Base


class DecisionTreeModel(Base):
    """Persisted decision tree (metadata + structural snapshot)."""

    __tablename__ = "decision_trees"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # Root TreeNode snapshot (camelCase keys, derived fields stripped)
    tree_json: Mapped[dict] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class AdvisorCallLog(Base):
    """Log of AI advisor calls for usage monitoring."""

    __tablename__ = "advisor_call_logs"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    provider: Mapped[str] = mapped_column(String(32), nullable=False, index=True)  # openai, anthropic, deepseek
    model: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    duration_sec: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
