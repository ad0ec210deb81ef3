"""Population vote endpoints - open, inspect, cast, close and judge."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_actor, require_admin
from app.core.actor import Actor
from app.db.database import get_db
from app.schemas.custom_game import (
    VoteCastRequest,
    VoteCastResponse,
    VoteCloseRequest,
    VoteCloseResponse,
    VoteOpenRequest,
    VoteOpenResponse,
    VoteStatusResponse,
)
from app.services.vote_service import vote_service

router = APIRouter()


@router.post("/{game_id}/vote/open", response_model=VoteOpenResponse)
async def open_vote(
    game_id: int,
    data: VoteOpenRequest,
    admin: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    game = await vote_service.open(db, game_id, data.duration_minutes)
    return VoteOpenResponse(vote_ends_at=game.vote_ends_at)


@router.get("/{game_id}/vote/status", response_model=VoteStatusResponse)
async def vote_status(
    game_id: int, actor: Actor = Depends(get_current_actor), db: AsyncSession = Depends(get_db)
):
    return VoteStatusResponse(**await vote_service.status(db, game_id, actor.id))


@router.post("/{game_id}/vote/cast", response_model=VoteCastResponse)
async def cast_vote(
    game_id: int,
    data: VoteCastRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    vote = await vote_service.cast(db, game_id, actor, data.vote)
    return VoteCastResponse(vote=vote)


@router.post("/{game_id}/vote/close-and-judge", response_model=VoteCloseResponse)
async def close_vote(
    game_id: int,
    data: VoteCloseRequest,
    admin: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Close the vote; a pass launches the run immediately."""
    judgement = await vote_service.close(db, admin, game_id, data.min_yes, data.total_stages)
    return VoteCloseResponse(
        message="vote closed & game started" if judgement.passed else "vote closed",
        passed=judgement.passed,
        yes=judgement.yes,
        no=judgement.no,
        run_id=judgement.run_id,
    )
