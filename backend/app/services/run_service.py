"""Run engine - staged, scored sessions spawned from a passed population vote.

At most one run per game is ``running`` at a time; creation refuses a second
one. Every mutation locks the run row first, so player actions, controller
commands and settlement on the same run are serialized.
"""

import logging
from dataclasses import asdict, dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core import lifecycle
from app.core.actor import Actor, can_control
from app.core.errors import AlreadyEnded, AlreadyFinal, Forbidden, InvalidState, NotFound, ValidationError
from app.core.utils import clamp, parse_json_list, parse_json_object, utcnow
from app.models.custom_game import CustomGame
from app.models.run import (
    RUN_ENDED,
    RUN_RUNNING,
    CustomGamePlayerStats,
    CustomGameRun,
    CustomGameRunEvent,
    CustomGameRunPlayer,
)
from app.services.action_service import action_service

logger = logging.getLogger(__name__)


@dataclass
class RankedPlayer:
    user_id: int
    name: str
    score: int
    rank: int


@dataclass
class Settlement:
    run_id: int
    ended_at: datetime | None
    rank: list[RankedPlayer]


def normalize_stages(total_stages: int, stages) -> tuple[int, list[dict]]:
    """Clamp the stage count and build exactly that many stage entries."""
    total = clamp(total_stages, 1, settings.MAX_TOTAL_STAGES)
    given = parse_json_list(stages)
    normalized = []
    for i in range(total):
        entry = given[i] if i < len(given) and isinstance(given[i], dict) else {}
        normalized.append({
            "index": i + 1,
            "name": str(entry.get("name") or f"Stage {i + 1}"),
            "desc": str(entry.get("desc") or ""),
        })
    return total, normalized


class RunService:
    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @staticmethod
    async def get_active_run(
        db: AsyncSession, game_id: int, lock: bool = False
    ) -> CustomGameRun | None:
        stmt = (
            select(CustomGameRun)
            .where(CustomGameRun.game_id == game_id, CustomGameRun.status == RUN_RUNNING)
            .order_by(CustomGameRun.id.desc())
            .limit(1)
        )
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_latest_run(
        db: AsyncSession, game_id: int, lock: bool = False
    ) -> CustomGameRun | None:
        stmt = (
            select(CustomGameRun)
            .where(CustomGameRun.game_id == game_id)
            .order_by(CustomGameRun.id.desc())
            .limit(1)
        )
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def _require_active_run(self, db: AsyncSession, game_id: int) -> CustomGameRun:
        run = await self.get_active_run(db, game_id, lock=True)
        if run is None:
            raise InvalidState("No active run")
        return run

    async def _require_controller(
        self, db: AsyncSession, actor: Actor, game_id: int
    ) -> CustomGameRun:
        run = await self._require_active_run(db, game_id)
        if not can_control(run, actor):
            raise Forbidden("Only an admin or the game's creator can control the run")
        return run

    @staticmethod
    async def get_player(
        db: AsyncSession, run_id: int, user_id: int
    ) -> CustomGameRunPlayer | None:
        result = await db.execute(
            select(CustomGameRunPlayer).where(
                CustomGameRunPlayer.run_id == run_id, CustomGameRunPlayer.user_id == user_id
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def get_players(db: AsyncSession, run_id: int) -> list[CustomGameRunPlayer]:
        """Players ranked by score, ties broken by join order."""
        result = await db.execute(
            select(CustomGameRunPlayer)
            .where(CustomGameRunPlayer.run_id == run_id)
            .order_by(CustomGameRunPlayer.score.desc(), CustomGameRunPlayer.id.asc())
        )
        return list(result.scalars().all())

    async def rank_run(self, db: AsyncSession, run_id: int) -> list[RankedPlayer]:
        players = await self.get_players(db, run_id)
        return [
            RankedPlayer(user_id=p.user_id, name=p.name, score=p.score, rank=i + 1)
            for i, p in enumerate(players)
        ]

    @staticmethod
    async def get_events(db: AsyncSession, run_id: int, limit: int) -> list[CustomGameRunEvent]:
        """The most recent ``limit`` events, oldest first."""
        result = await db.execute(
            select(CustomGameRunEvent)
            .where(CustomGameRunEvent.run_id == run_id)
            .order_by(CustomGameRunEvent.id.desc())
            .limit(limit)
        )
        events = list(result.scalars().all())
        events.reverse()
        return events

    @staticmethod
    async def log_event(
        db: AsyncSession,
        run_id: int,
        actor_user_id: int | None,
        event_type: str,
        message: str,
        payload: dict | None = None,
    ) -> CustomGameRunEvent:
        event = CustomGameRunEvent(
            run_id=run_id,
            actor_user_id=actor_user_id,
            event_type=event_type,
            message=message,
            payload=payload or {},
        )
        db.add(event)
        await db.flush()
        return event

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_run(
        self,
        db: AsyncSession,
        game: CustomGame,
        started_by: Actor,
        total_stages: int,
        map_snapshot: dict,
        yes: int = 0,
        no: int = 0,
    ) -> CustomGameRun:
        """Spawn the single running session of a game."""
        if await self.get_active_run(db, game.id) is not None:
            raise InvalidState("Game already has an active run")

        total, stage_configs = normalize_stages(total_stages, None)
        run = CustomGameRun(
            game_id=game.id,
            status=RUN_RUNNING,
            current_stage=1,
            total_stages=total,
            stage_configs=stage_configs,
            map_snapshot=dict(map_snapshot),
            creator_user_id=game.creator_user_id,
        )
        db.add(run)
        await db.flush()

        await self.log_event(
            db, run.id, started_by.id, "run_start", "Run started",
            {"game_id": game.id, "yes": yes, "no": no},
        )
        logger.info(f"Game {game.id}: run {run.id} started with {total} stages")
        return run

    # ------------------------------------------------------------------
    # Players
    # ------------------------------------------------------------------

    async def join(self, db: AsyncSession, actor: Actor, game_id: int) -> CustomGameRun:
        """Join the active run; joining twice is a no-op."""
        run = await self._require_active_run(db, game_id)
        player = await self.get_player(db, run.id, actor.id)
        if player is None:
            name = actor.display_name
            db.add(CustomGameRunPlayer(
                run_id=run.id,
                user_id=actor.id,
                name=name,
                hp=settings.PLAYER_START_HP,
                energy=settings.PLAYER_START_ENERGY,
                score=0,
                alive=True,
            ))
            await db.flush()
            await self.log_event(
                db, run.id, actor.id, "join", f"{name} joined the run", {"user_id": actor.id}
            )
        return run

    async def act(
        self, db: AsyncSession, actor: Actor, game_id: int, action_type: str, payload=None
    ) -> tuple[CustomGameRunPlayer, str]:
        """Apply one action from the server-side table to the caller's player."""
        action_type = (action_type or "").strip()
        if not action_type:
            raise ValidationError("action_type is required")

        run = await self._require_active_run(db, game_id)
        player = await self.get_player(db, run.id, actor.id)
        if player is None:
            raise Forbidden("You have not joined this run")

        rule = action_service.get_rule(action_type)
        action_service.apply(player, rule)
        message = action_service.describe(rule, player.name, action_type)
        await db.flush()

        await self.log_event(
            db, run.id, actor.id, "action", message,
            {
                "action_type": action_type,
                "payload": parse_json_object(payload),
                "score_delta": rule.score_delta,
                "energy_cost": rule.energy_cost,
                "hp_delta": rule.hp_delta,
            },
        )
        logger.debug(f"Run {run.id}: user {actor.id} {action_type} -> score={player.score}")
        return player, message

    # ------------------------------------------------------------------
    # Controller commands
    # ------------------------------------------------------------------

    async def configure_stages(
        self, db: AsyncSession, actor: Actor, game_id: int, total_stages: int, stages=None
    ) -> CustomGameRun:
        run = await self._require_controller(db, actor, game_id)
        total, normalized = normalize_stages(total_stages, stages)

        run.total_stages = total
        run.stage_configs = normalized
        run.current_stage = min(run.current_stage, total)
        await db.flush()

        await self.log_event(
            db, run.id, actor.id, "stage_config", "Stage configuration updated",
            {"total_stages": total, "stages": normalized},
        )
        return run

    async def advance_stage(self, db: AsyncSession, actor: Actor, game_id: int) -> int:
        run = await self._require_controller(db, actor, game_id)
        current = run.current_stage
        if current >= run.total_stages:
            raise AlreadyFinal("Already at the final stage")

        run.current_stage = current + 1
        await db.flush()

        await self.log_event(
            db, run.id, actor.id, "stage_next", f"Advanced to stage {run.current_stage}",
            {"from": current, "to": run.current_stage},
        )
        return run.current_stage

    async def patch_map(self, db: AsyncSession, actor: Actor, game_id: int, map_patch) -> dict:
        """Shallow-merge a patch into the run's map snapshot (the ledger is untouched)."""
        run = await self._require_controller(db, actor, game_id)
        patch = parse_json_object(map_patch)

        run.map_snapshot = {**(run.map_snapshot or {}), **patch}
        await db.flush()

        await self.log_event(
            db, run.id, actor.id, "map_update", "Run map updated", {"map_patch": patch}
        )
        return run.map_snapshot

    async def grant_score(
        self,
        db: AsyncSession,
        actor: Actor,
        game_id: int,
        user_id: int,
        points: int,
        reason: str = "Stage reward",
        stage: int = 1,
    ) -> CustomGameRunPlayer:
        if not user_id or not points:
            raise ValidationError("user_id and non-zero points are required")

        run = await self._require_controller(db, actor, game_id)
        target = await self.get_player(db, run.id, user_id)
        if target is None:
            raise NotFound("Target player has not joined this run")

        target.score = target.score + points
        await db.flush()

        await self.log_event(
            db, run.id, actor.id, "score_grant", f"Granted {points} points to {target.name}",
            {"target_user_id": user_id, "points": points, "reason": reason, "stage": stage},
        )
        return target

    async def end_run(self, db: AsyncSession, actor: Actor, game_id: int) -> Settlement:
        """Close the run and fold its ranking into lifetime stats exactly once."""
        run = await self.get_latest_run(db, game_id, lock=True)
        if run is None:
            raise NotFound("Run not found")
        if not can_control(run, actor):
            raise Forbidden("Only an admin or the game's creator can control the run")
        if run.status != RUN_RUNNING:
            raise AlreadyEnded("Run has already ended")

        ended_at = utcnow()
        run.status = RUN_ENDED
        run.ended_at = ended_at
        game = await lifecycle.lock_game(db, game_id)
        await lifecycle.transition(db, game, "run_ended")

        ranking = await self.rank_run(db, run.id)
        for entry in ranking:
            await self._add_to_stats(db, entry.user_id, entry.score, won=entry.rank == 1)

        await self.log_event(
            db, run.id, actor.id, "run_end", "Run settled",
            {"rank": [asdict(entry) for entry in ranking]},
        )
        logger.info(f"Game {game_id}: run {run.id} settled with {len(ranking)} players")
        return Settlement(run_id=run.id, ended_at=ended_at, rank=ranking)

    @staticmethod
    async def _add_to_stats(db: AsyncSession, user_id: int, points: int, won: bool) -> None:
        dialect = db.get_bind().dialect.name
        insert = sqlite_insert if dialect == "sqlite" else pg_insert
        now = utcnow()
        stmt = insert(CustomGamePlayerStats).values(
            user_id=user_id,
            total_points=points,
            total_runs=1,
            total_wins=1 if won else 0,
            updated_at=now,
        )
        # One statement, so two settlements racing on a first-time player both count
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id"],
            set_=dict(
                total_points=CustomGamePlayerStats.total_points + stmt.excluded.total_points,
                total_runs=CustomGamePlayerStats.total_runs + stmt.excluded.total_runs,
                total_wins=CustomGamePlayerStats.total_wins + stmt.excluded.total_wins,
                updated_at=now,
            ),
        )
        await db.execute(stmt)

    # ------------------------------------------------------------------
    # Read models
    # ------------------------------------------------------------------

    async def get_state(self, db: AsyncSession, actor: Actor, game_id: int) -> dict:
        """Full snapshot of the game's latest run as seen by ``actor``."""
        run = await self.get_latest_run(db, game_id)
        if run is None:
            raise NotFound("Run not found")

        players = await self.get_players(db, run.id)
        events = await self.get_events(db, run.id, settings.RUN_EVENTS_LIMIT)
        me = next((p for p in players if p.user_id == actor.id), None)

        stage_configs = run.stage_configs or []
        stage = next((s for s in stage_configs if s.get("index") == run.current_stage), {})

        return {
            "run_id": run.id,
            "game_id": run.game_id,
            "status": run.status,
            "current_stage": run.current_stage,
            "total_stages": run.total_stages,
            "stage_name": stage.get("name", ""),
            "stage_desc": stage.get("desc", ""),
            "stage_configs": stage_configs,
            "map_config": run.map_snapshot or {},
            "players": players,
            "events": [
                {
                    "id": e.id,
                    "type": e.event_type,
                    "message": e.message,
                    "actor_user_id": e.actor_user_id,
                    "payload": e.payload or {},
                    "ts": e.created_at,
                }
                for e in events
            ],
            "my_score": me.score if me else 0,
            "my_hp": me.hp if me else 0,
            "my_energy": me.energy if me else 0,
            "is_joined": me is not None,
            "can_control": can_control(run, actor),
            "creator_user_id": run.creator_user_id,
        }

    async def get_ranking(self, db: AsyncSession, game_id: int) -> list[RankedPlayer]:
        run = await self.get_latest_run(db, game_id)
        if run is None:
            return []
        return await self.rank_run(db, run.id)

    async def get_settlement(self, db: AsyncSession, game_id: int) -> Settlement:
        run = await self.get_latest_run(db, game_id)
        if run is None:
            raise NotFound("Run not found")
        if run.status != RUN_ENDED:
            raise InvalidState("Run has not ended")
        return Settlement(run_id=run.id, ended_at=run.ended_at, rank=await self.rank_run(db, run.id))

    @staticmethod
    async def get_player_stats(db: AsyncSession, user_id: int) -> CustomGamePlayerStats | None:
        result = await db.execute(
            select(CustomGamePlayerStats)
            .where(CustomGamePlayerStats.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()


run_service = RunService()
