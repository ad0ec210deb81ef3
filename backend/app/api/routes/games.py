"""Custom game endpoints - proposals, map submissions, start requests and stats."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_actor
from app.core.actor import Actor
from app.db.database import get_db
from app.schemas.custom_game import (
    GameOut,
    IdeaCreate,
    IdeaCreateResponse,
    MapOut,
    MapSubmit,
    MapSubmitResponse,
    MessageResponse,
)
from app.schemas.run import PlayerStatsResponse
from app.services.game_service import game_service
from app.services.map_service import map_service
from app.services.run_service import run_service

router = APIRouter()


@router.post("/", response_model=IdeaCreateResponse, status_code=201)
async def create_idea(
    data: IdeaCreate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Propose a new custom game; it starts in idea review."""
    game = await game_service.create_idea(db, actor, data.title, data.idea_text)
    return IdeaCreateResponse(id=game.id)


@router.get("/mine", response_model=list[GameOut])
async def list_my_games(actor: Actor = Depends(get_current_actor), db: AsyncSession = Depends(get_db)):
    return await game_service.list_mine(db, actor)


@router.get("/stats/{user_id}", response_model=PlayerStatsResponse)
async def get_player_stats(
    user_id: int, actor: Actor = Depends(get_current_actor), db: AsyncSession = Depends(get_db)
):
    """Lifetime custom game totals; zeros for players who never finished a run."""
    stats = await run_service.get_player_stats(db, user_id)
    if stats is None:
        return PlayerStatsResponse(user_id=user_id)
    return PlayerStatsResponse(
        user_id=stats.user_id,
        total_points=stats.total_points,
        total_runs=stats.total_runs,
        total_wins=stats.total_wins,
        updated_at=stats.updated_at,
    )


@router.get("/{game_id}", response_model=GameOut)
async def get_game(game_id: int, actor: Actor = Depends(get_current_actor), db: AsyncSession = Depends(get_db)):
    return await game_service.get_game(db, game_id)


@router.post("/{game_id}/map", response_model=MapSubmitResponse)
async def submit_map(
    game_id: int,
    data: MapSubmit,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Submit the next map version (creator only)."""
    game_map = await map_service.submit(db, actor, game_id, data.map_data)
    return MapSubmitResponse(map_id=game_map.id, version=game_map.version)


@router.get("/{game_id}/map/latest", response_model=MapOut)
async def latest_map(game_id: int, actor: Actor = Depends(get_current_actor), db: AsyncSession = Depends(get_db)):
    """Newest map version, whatever its review status."""
    return await map_service.latest(db, game_id)


@router.post("/{game_id}/start-request", response_model=MessageResponse)
async def request_start(
    game_id: int, actor: Actor = Depends(get_current_actor), db: AsyncSession = Depends(get_db)
):
    await game_service.request_start(db, actor, game_id)
    return MessageResponse(message="start request submitted")
