"""Game lifecycle controller - idea submission and the three review gates.

Each admin review records an audit row, feeds the quorum engine and, only
when that vote resolved the task, applies the matching lifecycle
transition. Votes that leave the task pending, or that arrive after it was
already decided, are echoed back without touching the game.
"""

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import lifecycle
from app.core.actor import Actor
from app.core.errors import Forbidden, InvalidState, NotFound, SelfReview, ValidationError
from app.models.custom_game import MAP_APPROVED, MAP_PENDING, MAP_REJECTED, CustomGame, CustomGameReview
from app.models.review import (
    DECISION_APPROVE,
    DECISION_REJECT,
    MODULE_IDEA,
    MODULE_MAP,
    MODULE_START,
    TASK_APPROVED,
    TASK_PENDING,
)
from app.services.map_service import map_service
from app.services.review_service import VoteOutcome, review_service

logger = logging.getLogger(__name__)


@dataclass
class ReviewResult:
    outcome: VoteOutcome
    game_status: str
    map_status: str | None = None

    @property
    def pending(self) -> bool:
        return not self.outcome.done

    @property
    def message(self) -> str:
        o = self.outcome
        if not o.done:
            return (
                f"Vote recorded: {o.approve_count}/{o.required} approve, "
                f"{o.reject_count}/{o.required} reject"
            )
        return f"Final decision: {o.status}"


class GameService:
    @staticmethod
    async def get_game(db: AsyncSession, game_id: int) -> CustomGame:
        result = await db.execute(select(CustomGame).where(CustomGame.id == game_id))
        game = result.scalar_one_or_none()
        if game is None:
            raise NotFound("Game not found")
        return game

    @staticmethod
    async def create_idea(
        db: AsyncSession, actor: Actor, title: str, idea_text: str = ""
    ) -> CustomGame:
        """Create a game proposal and open its idea review."""
        title = (title or "").strip()
        idea_text = (idea_text or "").strip()
        if not title:
            raise ValidationError("Title is required")

        game = CustomGame(
            title=title,
            idea_text=idea_text,
            status=lifecycle.IDEA_PENDING,
            creator_user_id=actor.id,
            vote_status=lifecycle.VOTE_NONE,
        )
        db.add(game)
        await db.flush()

        await review_service.ensure_task(
            db,
            MODULE_IDEA,
            "game",
            game.id,
            creator_user_id=actor.id,
            payload={"title": title, "idea_text": idea_text},
        )
        logger.info(f"Game {game.id} proposed by user {actor.id}: {title!r}")
        return game

    @staticmethod
    async def list_mine(db: AsyncSession, actor: Actor) -> list[CustomGame]:
        result = await db.execute(
            select(CustomGame)
            .where(CustomGame.creator_user_id == actor.id)
            .order_by(CustomGame.id.desc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def list_by_status(db: AsyncSession, status: str) -> list[CustomGame]:
        result = await db.execute(
            select(CustomGame).where(CustomGame.status == status).order_by(CustomGame.id.asc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def review_history(db: AsyncSession, game_id: int) -> list[CustomGameReview]:
        result = await db.execute(
            select(CustomGameReview)
            .where(CustomGameReview.game_id == game_id)
            .order_by(CustomGameReview.id.asc())
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Review gates
    # ------------------------------------------------------------------

    @staticmethod
    async def _record_review(
        db: AsyncSession,
        game_id: int,
        review_type: str,
        admin: Actor,
        approve: bool,
        comment: str,
        map_id: int | None = None,
    ) -> None:
        db.add(CustomGameReview(
            game_id=game_id,
            map_id=map_id,
            review_type=review_type,
            status="approved" if approve else "rejected",
            reviewer_user_id=admin.id,
            comment=comment,
        ))
        await db.flush()

    @staticmethod
    async def _require_open_task(
        db: AsyncSession,
        game: CustomGame,
        admin: Actor,
        module_key: str,
        target_type: str,
        target_id: int,
        ready: bool,
        message: str,
    ) -> None:
        """Refuse self-review, and votes on an undecided target that is not in its review status.

        Votes on an already-decided task are let through so the engine can echo
        the stored result.
        """
        if game.creator_user_id == admin.id:
            raise SelfReview("Creator cannot review their own submission")
        task = await review_service.get_task(db, module_key, target_type, target_id)
        decided = task is not None and task.status != TASK_PENDING
        if not decided and not ready:
            raise InvalidState(message)

    async def review_idea(
        self, db: AsyncSession, admin: Actor, game_id: int, approve: bool, comment: str = ""
    ) -> ReviewResult:
        game = await lifecycle.lock_game(db, game_id)
        await self._require_open_task(
            db, game, admin, MODULE_IDEA, "game", game_id,
            ready=game.status == lifecycle.IDEA_PENDING,
            message="Game idea is not awaiting review",
        )

        outcome = await review_service.vote(
            db,
            MODULE_IDEA,
            "game",
            game_id,
            creator_user_id=game.creator_user_id,
            admin_id=admin.id,
            admin_name=admin.display_name,
            decision=DECISION_APPROVE if approve else DECISION_REJECT,
            comment=comment,
            payload={"game_id": game_id},
        )
        await self._record_review(db, game_id, "idea", admin, approve, comment)

        if outcome.resolved_now:
            event = "idea_approved" if outcome.status == TASK_APPROVED else "idea_rejected"
            await lifecycle.transition(db, game, event)

        return ReviewResult(outcome=outcome, game_status=game.status)

    async def review_map(
        self, db: AsyncSession, admin: Actor, map_id: int, approve: bool, comment: str = ""
    ) -> ReviewResult:
        game_map = await map_service.get_map(db, map_id)
        game = await lifecycle.lock_game(db, game_map.game_id)
        await self._require_open_task(
            db, game, admin, MODULE_MAP, "map", map_id,
            ready=game_map.status == MAP_PENDING and game.status == lifecycle.MAP_PENDING,
            message="Map is not awaiting review",
        )

        outcome = await review_service.vote(
            db,
            MODULE_MAP,
            "map",
            map_id,
            creator_user_id=game.creator_user_id,
            admin_id=admin.id,
            admin_name=admin.display_name,
            decision=DECISION_APPROVE if approve else DECISION_REJECT,
            comment=comment,
            payload={"game_id": game.id, "map_id": map_id},
        )
        await self._record_review(db, game.id, "map", admin, approve, comment, map_id=map_id)

        if outcome.resolved_now:
            if outcome.status == TASK_APPROVED:
                await map_service.set_status(db, game_map, MAP_APPROVED)
                await lifecycle.transition(db, game, "map_approved", current_map_id=map_id)
            else:
                await map_service.set_status(db, game_map, MAP_REJECTED)
                await lifecycle.transition(db, game, "map_rejected")

        return ReviewResult(outcome=outcome, game_status=game.status, map_status=game_map.status)

    async def review_start(
        self, db: AsyncSession, admin: Actor, game_id: int, approve: bool, comment: str = ""
    ) -> ReviewResult:
        game = await lifecycle.lock_game(db, game_id)
        await self._require_open_task(
            db, game, admin, MODULE_START, "game", game_id,
            ready=game.status == lifecycle.START_PENDING,
            message="Game is not awaiting start review",
        )

        outcome = await review_service.vote(
            db,
            MODULE_START,
            "game",
            game_id,
            creator_user_id=game.creator_user_id,
            admin_id=admin.id,
            admin_name=admin.display_name,
            decision=DECISION_APPROVE if approve else DECISION_REJECT,
            comment=comment,
            payload={"game_id": game_id},
        )
        await self._record_review(db, game_id, "start", admin, approve, comment)

        if outcome.resolved_now:
            event = "start_approved" if outcome.status == TASK_APPROVED else "start_rejected"
            await lifecycle.transition(db, game, event)

        return ReviewResult(outcome=outcome, game_status=game.status)

    # ------------------------------------------------------------------
    # Creator actions
    # ------------------------------------------------------------------

    @staticmethod
    async def request_start(db: AsyncSession, actor: Actor, game_id: int) -> CustomGame:
        game = await lifecycle.lock_game(db, game_id)
        if game.creator_user_id != actor.id:
            raise Forbidden("Only the creator can request a start")

        await lifecycle.transition(db, game, "start_requested")
        await review_service.ensure_task(
            db,
            MODULE_START,
            "game",
            game_id,
            creator_user_id=actor.id,
            payload={"game_id": game_id},
        )
        return game


game_service = GameService()
