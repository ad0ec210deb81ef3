"""Run endpoints - joining, acting, controller commands and settlement."""

from dataclasses import asdict

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_actor
from app.core.actor import Actor
from app.db.database import get_db
from app.schemas.run import (
    ActionRequest,
    ActionResponse,
    ActiveRunResponse,
    JoinResponse,
    MapPatchRequest,
    OkResponse,
    RankEntry,
    RunStateResponse,
    ScoreGrantRequest,
    ScoreGrantResponse,
    SettlementResponse,
    StageAdvanceResponse,
    StageConfigRequest,
)
from app.services.run_service import Settlement, run_service

router = APIRouter()


def _settlement_to_response(settlement: Settlement) -> SettlementResponse:
    return SettlementResponse(
        run_id=settlement.run_id,
        ended_at=settlement.ended_at,
        rank=[RankEntry(**asdict(entry)) for entry in settlement.rank],
    )


@router.get("/{game_id}/run/active", response_model=ActiveRunResponse)
async def active_run(game_id: int, actor: Actor = Depends(get_current_actor), db: AsyncSession = Depends(get_db)):
    run = await run_service.get_active_run(db, game_id)
    if run is None:
        return ActiveRunResponse(has_active=False)
    return ActiveRunResponse(has_active=True, run_id=run.id)


@router.post("/{game_id}/run/join", response_model=JoinResponse)
async def join_run(game_id: int, actor: Actor = Depends(get_current_actor), db: AsyncSession = Depends(get_db)):
    run = await run_service.join(db, actor, game_id)
    return JoinResponse(run_id=run.id)


@router.get("/{game_id}/run/state", response_model=RunStateResponse)
async def run_state(game_id: int, actor: Actor = Depends(get_current_actor), db: AsyncSession = Depends(get_db)):
    """Everything a run screen needs: stages, map, players, recent events, own stats."""
    return RunStateResponse.model_validate(
        await run_service.get_state(db, actor, game_id), from_attributes=True
    )


@router.post("/{game_id}/run/action", response_model=ActionResponse)
async def submit_action(
    game_id: int,
    data: ActionRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    player, message = await run_service.act(db, actor, game_id, data.action_type, data.payload)
    return ActionResponse(
        message=message, score=player.score, hp=player.hp, energy=player.energy, alive=player.alive
    )


@router.get("/{game_id}/run/rank", response_model=list[RankEntry])
async def run_rank(game_id: int, actor: Actor = Depends(get_current_actor), db: AsyncSession = Depends(get_db)):
    ranking = await run_service.get_ranking(db, game_id)
    return [RankEntry(**asdict(entry)) for entry in ranking]


@router.post("/{game_id}/run/stages/config", response_model=OkResponse)
async def configure_stages(
    game_id: int,
    data: StageConfigRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    await run_service.configure_stages(db, actor, game_id, data.total_stages, data.stages)
    return OkResponse()


@router.post("/{game_id}/run/stages/next", response_model=StageAdvanceResponse)
async def advance_stage(game_id: int, actor: Actor = Depends(get_current_actor), db: AsyncSession = Depends(get_db)):
    current_stage = await run_service.advance_stage(db, actor, game_id)
    return StageAdvanceResponse(current_stage=current_stage)


@router.post("/{game_id}/run/map/update", response_model=OkResponse)
async def patch_run_map(
    game_id: int,
    data: MapPatchRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    await run_service.patch_map(db, actor, game_id, data.map_patch)
    return OkResponse()


@router.post("/{game_id}/run/score/grant", response_model=ScoreGrantResponse)
async def grant_score(
    game_id: int,
    data: ScoreGrantRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    target = await run_service.grant_score(
        db, actor, game_id, data.user_id, data.points, data.reason, data.stage
    )
    return ScoreGrantResponse(target_user_id=target.user_id, score=target.score)


@router.post("/{game_id}/run/end", response_model=SettlementResponse)
async def end_run(game_id: int, actor: Actor = Depends(get_current_actor), db: AsyncSession = Depends(get_db)):
    """End the run and settle its ranking into lifetime stats."""
    settlement = await run_service.end_run(db, actor, game_id)
    return _settlement_to_response(settlement)


@router.get("/{game_id}/run/end", response_model=SettlementResponse)
async def get_settlement(game_id: int, actor: Actor = Depends(get_current_actor), db: AsyncSession = Depends(get_db)):
    settlement = await run_service.get_settlement(db, game_id)
    return _settlement_to_response(settlement)
