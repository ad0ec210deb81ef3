"""Game lifecycle engine - the CustomGame status state machine.

Every status change goes through ``transition`` on a row obtained from
``lock_game`` so the precondition check and the write happen under the same
row lock. A refused transition raises ``InvalidState`` before anything is
written.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import InvalidState, NotFound
from app.core.utils import utcnow
from app.models.custom_game import CustomGame

logger = logging.getLogger(__name__)

# Game statuses
IDEA_PENDING = "idea_pending"
IDEA_APPROVED = "idea_approved"
IDEA_REJECTED = "idea_rejected"
MAP_PENDING = "map_pending"
MAP_REJECTED = "map_rejected"
READY_FOR_START = "ready_for_start"
START_PENDING = "start_pending"
START_REJECTED = "start_rejected"
READY_FOR_VOTE = "ready_for_vote"
RUNNING = "running"
VOTE_FAILED = "vote_failed"
ENDED = "ended"

TERMINAL_STATUSES = frozenset({IDEA_REJECTED, START_REJECTED, VOTE_FAILED, ENDED})

# Population vote statuses
VOTE_NONE = "none"
VOTE_OPEN = "open"
VOTE_CLOSED_PASS = "closed_pass"
VOTE_CLOSED_FAIL = "closed_fail"

VOTE_OPENABLE = frozenset({READY_FOR_VOTE, READY_FOR_START})

# event -> (allowed source statuses, target status)
TRANSITIONS: dict[str, tuple[frozenset[str], str]] = {
    "idea_approved": (frozenset({IDEA_PENDING}), IDEA_APPROVED),
    "idea_rejected": (frozenset({IDEA_PENDING}), IDEA_REJECTED),
    "map_submitted": (frozenset({IDEA_APPROVED, READY_FOR_START, MAP_REJECTED}), MAP_PENDING),
    "map_approved": (frozenset({MAP_PENDING}), READY_FOR_START),
    "map_rejected": (frozenset({MAP_PENDING}), MAP_REJECTED),
    "start_requested": (frozenset({READY_FOR_START}), START_PENDING),
    "start_approved": (frozenset({START_PENDING}), READY_FOR_VOTE),
    "start_rejected": (frozenset({START_PENDING}), START_REJECTED),
    "vote_passed": (VOTE_OPENABLE, RUNNING),
    "vote_failed": (VOTE_OPENABLE, VOTE_FAILED),
    "run_ended": (frozenset({RUNNING}), ENDED),
}

# Author-driven events that must wait until an open population vote is closed
_BLOCKED_WHILE_VOTING = frozenset({"map_submitted", "start_requested"})


async def lock_game(db: AsyncSession, game_id: int) -> CustomGame:
    """Load a game with a row lock, refreshing any stale in-session copy."""
    result = await db.execute(
        select(CustomGame)
        .where(CustomGame.id == game_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    game = result.scalar_one_or_none()
    if game is None:
        raise NotFound("Game not found")
    return game


def can_transition(game: CustomGame, event: str) -> bool:
    sources, _ = TRANSITIONS[event]
    if game.status not in sources:
        return False
    if event in _BLOCKED_WHILE_VOTING and game.vote_status == VOTE_OPEN:
        return False
    return True


async def transition(db: AsyncSession, game: CustomGame, event: str, **values) -> str:
    """Apply ``event`` to a locked game, plus any extra column ``values``."""
    if not can_transition(game, event):
        if event in _BLOCKED_WHILE_VOTING and game.vote_status == VOTE_OPEN:
            raise InvalidState("Population vote in progress")
        raise InvalidState(f"Game status '{game.status}' does not allow {event.replace('_', ' ')}")

    _, target = TRANSITIONS[event]
    previous = game.status
    game.status = target
    for field, value in values.items():
        setattr(game, field, value)
    game.updated_at = utcnow()
    await db.flush()

    logger.info(f"Game {game.id}: {previous} -> {target} ({event})")
    return target
