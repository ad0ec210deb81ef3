"""Population vote - the playerbase's yes/no vote on launching an approved game.

The deadline is advisory: past ``vote_ends_at`` new casts are refused, but
the vote stays open until an admin closes and judges it.
"""

import copy
import logging
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core import lifecycle
from app.core.actor import Actor
from app.core.errors import InvalidState, VoteEnded
from app.core.utils import clamp, utcnow
from app.models.custom_game import CustomGame, CustomGameVote
from app.services.announcement_service import GAME_START, VOTE_OPEN, announcement_service
from app.services.game_service import game_service
from app.services.map_service import EMPTY_MAP, map_service
from app.services.run_service import run_service

logger = logging.getLogger(__name__)


@dataclass
class VoteJudgement:
    passed: bool
    yes: int
    no: int
    run_id: int | None = None


def vote_passes(yes: int, no: int, min_yes: int) -> bool:
    """A launch needs at least ``min_yes`` yes votes and a strict yes majority."""
    return yes >= min_yes and yes > no


class VoteService:
    @staticmethod
    async def tally(db: AsyncSession, game_id: int) -> tuple[int, int]:
        result = await db.execute(
            select(
                func.coalesce(func.sum(case((CustomGameVote.vote == 1, 1), else_=0)), 0),
                func.coalesce(func.sum(case((CustomGameVote.vote == 0, 1), else_=0)), 0),
            ).where(CustomGameVote.game_id == game_id)
        )
        yes, no = result.one()
        return int(yes), int(no)

    async def open(
        self, db: AsyncSession, game_id: int, duration_minutes: int | None = None
    ) -> CustomGame:
        """Open the vote on a game that passed its start review (or has an approved map)."""
        game = await lifecycle.lock_game(db, game_id)
        if game.status not in lifecycle.VOTE_OPENABLE:
            raise InvalidState(f"Game status '{game.status}' does not allow opening a vote")

        minutes = clamp(duration_minutes or settings.DEFAULT_VOTE_MINUTES, 1)
        opened_at = utcnow()
        game.vote_status = lifecycle.VOTE_OPEN
        game.vote_opened_at = opened_at
        game.vote_ends_at = opened_at + timedelta(minutes=minutes)
        game.updated_at = opened_at
        await db.flush()

        await announcement_service.post(
            db,
            VOTE_OPEN,
            f"Vote open: custom game #{game.id}",
            f"Launch vote for \"{game.title}\" is open and closes in {minutes} minutes.",
            {
                "game_id": game.id,
                "duration_minutes": minutes,
                "vote_ends_at": game.vote_ends_at.isoformat(),
            },
        )
        logger.info(f"Game {game.id}: population vote opened for {minutes} minutes")
        return game

    async def status(self, db: AsyncSession, game_id: int, user_id: int) -> dict:
        game = await game_service.get_game(db, game_id)
        yes, no = await self.tally(db, game_id)
        result = await db.execute(
            select(CustomGameVote.vote).where(
                CustomGameVote.game_id == game_id, CustomGameVote.user_id == user_id
            )
        )
        my_vote = result.scalar_one_or_none()
        return {
            "vote_status": game.vote_status or lifecycle.VOTE_NONE,
            "vote_opened_at": game.vote_opened_at,
            "vote_ends_at": game.vote_ends_at,
            "yes_count": yes,
            "no_count": no,
            "total": yes + no,
            "my_vote": my_vote,
            "expired": game.vote_ends_at is not None and utcnow() > game.vote_ends_at,
        }

    @staticmethod
    async def cast(db: AsyncSession, game_id: int, actor: Actor, vote: int) -> int:
        """Record (or change) the caller's single vote. Returns the stored value."""
        vote = 1 if vote == 1 else 0
        game = await lifecycle.lock_game(db, game_id)
        if game.vote_status != lifecycle.VOTE_OPEN:
            raise InvalidState("Vote is not open")
        if game.vote_ends_at is not None and utcnow() > game.vote_ends_at:
            raise VoteEnded("Vote has ended; waiting for an admin to close it")

        result = await db.execute(
            select(CustomGameVote).where(
                CustomGameVote.game_id == game_id, CustomGameVote.user_id == actor.id
            )
        )
        ballot = result.scalar_one_or_none()
        if ballot is None:
            db.add(CustomGameVote(game_id=game_id, user_id=actor.id, vote=vote))
        else:
            ballot.vote = vote
        await db.flush()
        return vote

    async def close(
        self,
        db: AsyncSession,
        admin: Actor,
        game_id: int,
        min_yes: int | None = None,
        total_stages: int | None = None,
    ) -> VoteJudgement:
        """Close the vote, judge it and, on a pass, launch the run."""
        game = await lifecycle.lock_game(db, game_id)
        if game.vote_status != lifecycle.VOTE_OPEN:
            raise InvalidState("Vote is not open")

        min_yes = clamp(min_yes or 1, 1)
        total_stages = clamp(
            total_stages or settings.DEFAULT_TOTAL_STAGES, 1, settings.MAX_TOTAL_STAGES
        )

        yes, no = await self.tally(db, game_id)
        passed = vote_passes(yes, no, min_yes)
        logger.info(f"Game {game_id}: vote closed yes={yes} no={no} min_yes={min_yes} passed={passed}")

        if not passed:
            await lifecycle.transition(db, game, "vote_failed", vote_status=lifecycle.VOTE_CLOSED_FAIL)
            return VoteJudgement(passed=False, yes=yes, no=no)

        launch_map = await map_service.launch_map(db, game)
        snapshot = copy.deepcopy(launch_map.map_data) if launch_map else copy.deepcopy(EMPTY_MAP)

        await lifecycle.transition(db, game, "vote_passed", vote_status=lifecycle.VOTE_CLOSED_PASS)
        run = await run_service.create_run(db, game, admin, total_stages, snapshot, yes=yes, no=no)

        await announcement_service.post(
            db,
            GAME_START,
            f"Game start: custom game #{game.id}",
            f"\"{game.title}\" passed the vote and is now running!",
            {"game_id": game.id, "run_id": run.id, "yes": yes, "no": no},
        )
        return VoteJudgement(passed=True, yes=yes, no=no, run_id=run.id)


vote_service = VoteService()
