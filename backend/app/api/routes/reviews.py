"""Admin review endpoints - quorum thresholds, review pools and review votes."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import require_admin
from app.core import lifecycle
from app.core.actor import Actor
from app.db.database import get_db
from app.schemas.custom_game import (
    GameOut,
    MapOut,
    ReviewDecision,
    ReviewRecordOut,
    ReviewResponse,
    ReviewRuleOut,
    ReviewRuleUpdate,
)
from app.services.game_service import ReviewResult, game_service
from app.services.map_service import map_service
from app.services.review_service import review_service

router = APIRouter()


def _review_to_response(result: ReviewResult) -> ReviewResponse:
    outcome = result.outcome
    return ReviewResponse(
        message=result.message,
        pending=result.pending,
        task_id=outcome.task_id,
        done=outcome.done,
        status=outcome.status,
        approve_count=outcome.approve_count,
        reject_count=outcome.reject_count,
        required=outcome.required,
        game_status=result.game_status,
        map_status=result.map_status,
    )


# --- Quorum thresholds ---

@router.get("/review-rules", response_model=list[ReviewRuleOut])
async def list_review_rules(
    admin: Actor = Depends(require_admin), db: AsyncSession = Depends(get_db)
):
    return await review_service.get_rules(db)


@router.put("/review-rules/{module_key}", response_model=ReviewRuleOut)
async def set_review_rule(
    module_key: str,
    data: ReviewRuleUpdate,
    admin: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Set how many admin approvals a module needs (at least 1)."""
    return await review_service.set_required_approvals(db, module_key, data.required_approvals)


# --- Review pools ---

@router.get("/review/ideas/pending", response_model=list[GameOut])
async def pending_ideas(admin: Actor = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return await game_service.list_by_status(db, lifecycle.IDEA_PENDING)


@router.get("/review/maps/pending", response_model=list[MapOut])
async def pending_maps(admin: Actor = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return await map_service.list_pending(db)


@router.get("/review/start/pending", response_model=list[GameOut])
async def pending_starts(admin: Actor = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return await game_service.list_by_status(db, lifecycle.START_PENDING)


@router.get("/review/history/{game_id}", response_model=list[ReviewRecordOut])
async def review_history(
    game_id: int, admin: Actor = Depends(require_admin), db: AsyncSession = Depends(get_db)
):
    await game_service.get_game(db, game_id)
    return await game_service.review_history(db, game_id)


# --- Review votes ---

@router.post("/review/idea/{game_id}", response_model=ReviewResponse)
async def review_idea(
    game_id: int,
    data: ReviewDecision,
    admin: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    result = await game_service.review_idea(db, admin, game_id, data.approve, data.comment)
    return _review_to_response(result)


@router.post("/review/map/{map_id}", response_model=ReviewResponse)
async def review_map(
    map_id: int,
    data: ReviewDecision,
    admin: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    result = await game_service.review_map(db, admin, map_id, data.approve, data.comment)
    return _review_to_response(result)


@router.post("/review/start/{game_id}", response_model=ReviewResponse)
async def review_start(
    game_id: int,
    data: ReviewDecision,
    admin: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Start review; approval only unlocks the population vote."""
    result = await game_service.review_start(db, admin, game_id, data.approve, data.comment)
    return _review_to_response(result)
