"""Review quorum models - per-module thresholds, review tasks and admin votes."""

from datetime import datetime

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.core.utils import utcnow
from app.db.database import Base

# Gated review points of the custom game pipeline
MODULE_IDEA = "custom_idea"
MODULE_MAP = "custom_map"
MODULE_START = "custom_start"
REVIEW_MODULES = (MODULE_IDEA, MODULE_MAP, MODULE_START)

TASK_PENDING = "pending"
TASK_APPROVED = "approved"
TASK_REJECTED = "rejected"

DECISION_APPROVE = "approve"
DECISION_REJECT = "reject"


class ReviewRule(Base):
    __tablename__ = "review_rules"

    module_key: Mapped[str] = mapped_column(String(50), primary_key=True)
    required_approvals: Mapped[int] = mapped_column(Integer, default=2)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


class ReviewTask(Base):
    """One approval decision; terminal once it leaves ``pending``."""
    __tablename__ = "review_tasks"
    __table_args__ = (UniqueConstraint("module_key", "target_type", "target_id"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    module_key: Mapped[str] = mapped_column(String(50))
    target_type: Mapped[str] = mapped_column(String(20))  # "game" or "map"
    target_id: Mapped[str] = mapped_column(String(50))
    creator_user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=TASK_PENDING)
    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


class ReviewVote(Base):
    """An admin's current decision on a task (re-voting overwrites it)."""
    __tablename__ = "review_votes"
    __table_args__ = (UniqueConstraint("task_id", "admin_id"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    task_id: Mapped[int] = mapped_column(ForeignKey("review_tasks.id"))
    admin_id: Mapped[int] = mapped_column(Integer)
    admin_name: Mapped[str] = mapped_column(String(100))
    decision: Mapped[str] = mapped_column(String(10))
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
