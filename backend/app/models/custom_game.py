"""Custom game models - player-authored game proposals, their maps and votes."""

from datetime import datetime

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.core.utils import utcnow
from app.db.database import Base

MAP_PENDING = "pending"
MAP_APPROVED = "approved"
MAP_REJECTED = "rejected"


class CustomGame(Base):
    """A proposal moving through idea -> map -> start -> vote -> run.

    ``status`` only changes through ``app.core.lifecycle.transition``.
    """
    __tablename__ = "custom_games"

    id: Mapped[int] = mapped_column(primary_key=True)
    title: Mapped[str] = mapped_column(String(200))
    idea_text: Mapped[str] = mapped_column(Text, default="")
    status: Mapped[str] = mapped_column(String(30), default="idea_pending", index=True)
    creator_user_id: Mapped[int] = mapped_column(Integer, index=True)

    # Population vote
    vote_status: Mapped[str] = mapped_column(String(20), default="none")
    vote_opened_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    vote_ends_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Approved map the game launches with
    current_map_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


class CustomGameMap(Base):
    """One versioned map submission. Rows are never deleted."""
    __tablename__ = "custom_game_maps"

    id: Mapped[int] = mapped_column(primary_key=True)
    game_id: Mapped[int] = mapped_column(ForeignKey("custom_games.id"), index=True)
    version: Mapped[int] = mapped_column(Integer, default=1)
    map_data: Mapped[dict] = mapped_column(JSON, default=dict)
    status: Mapped[str] = mapped_column(String(20), default=MAP_PENDING)
    creator_user_id: Mapped[int] = mapped_column(Integer)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


class CustomGameReview(Base):
    """Audit trail of individual admin review decisions."""
    __tablename__ = "custom_game_reviews"

    id: Mapped[int] = mapped_column(primary_key=True)
    game_id: Mapped[int] = mapped_column(ForeignKey("custom_games.id"), index=True)
    map_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    review_type: Mapped[str] = mapped_column(String(10))  # "idea", "map" or "start"
    status: Mapped[str] = mapped_column(String(20))  # the reviewer's own decision
    reviewer_user_id: Mapped[int] = mapped_column(Integer)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class CustomGameVote(Base):
    """A player's yes (1) / no (0) vote on launching a game."""
    __tablename__ = "custom_game_votes"
    __table_args__ = (UniqueConstraint("game_id", "user_id"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    game_id: Mapped[int] = mapped_column(ForeignKey("custom_games.id"), index=True)
    user_id: Mapped[int] = mapped_column(Integer)
    vote: Mapped[int] = mapped_column(Integer)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)
