"""Run models - live sessions of a launched custom game and lifetime stats."""

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.core.utils import utcnow
from app.db.database import Base

RUN_RUNNING = "running"
RUN_ENDED = "ended"


class CustomGameRun(Base):
    __tablename__ = "custom_game_runs"

    id: Mapped[int] = mapped_column(primary_key=True)
    game_id: Mapped[int] = mapped_column(ForeignKey("custom_games.id"), index=True)
    status: Mapped[str] = mapped_column(String(20), default=RUN_RUNNING)
    current_stage: Mapped[int] = mapped_column(Integer, default=1)
    total_stages: Mapped[int] = mapped_column(Integer, default=3)
    # [{"index": 1, "name": "Stage 1", "desc": ""}, ...]
    stage_configs: Mapped[list] = mapped_column(JSON, default=list)
    # Copy of the approved map taken at launch; patched in place while running
    map_snapshot: Mapped[dict] = mapped_column(JSON, default=dict)
    creator_user_id: Mapped[int] = mapped_column(Integer)

    started_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    ended_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


class CustomGameRunPlayer(Base):
    __tablename__ = "custom_game_run_players"
    __table_args__ = (UniqueConstraint("run_id", "user_id"),)

    id: Mapped[int] = mapped_column(primary_key=True)  # doubles as join order
    run_id: Mapped[int] = mapped_column(ForeignKey("custom_game_runs.id"), index=True)
    user_id: Mapped[int] = mapped_column(Integer)
    name: Mapped[str] = mapped_column(String(100))
    hp: Mapped[int] = mapped_column(Integer, default=100)
    energy: Mapped[int] = mapped_column(Integer, default=100)
    score: Mapped[int] = mapped_column(Integer, default=0)
    alive: Mapped[bool] = mapped_column(Boolean, default=True)

    joined_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


class CustomGameRunEvent(Base):
    """Append-only narrative log of a run."""
    __tablename__ = "custom_game_run_events"

    id: Mapped[int] = mapped_column(primary_key=True)
    run_id: Mapped[int] = mapped_column(ForeignKey("custom_game_runs.id"), index=True)
    actor_user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    event_type: Mapped[str] = mapped_column(String(30))
    message: Mapped[str] = mapped_column(Text)
    payload: Mapped[dict] = mapped_column(JSON, default=dict)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class CustomGamePlayerStats(Base):
    """Lifetime totals across settled runs."""
    __tablename__ = "custom_game_player_stats"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, unique=True)
    total_points: Mapped[int] = mapped_column(Integer, default=0)
    total_runs: Mapped[int] = mapped_column(Integer, default=0)
    total_wins: Mapped[int] = mapped_column(Integer, default=0)

    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)
