"""Run-related Pydantic schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class ActionRule(BaseModel):
    """Effect of one action type, loaded from the YAML action table."""
    score_delta: int = 0
    energy_cost: int = 0
    hp_delta: int = 0
    message: str = "{name} performed {action}"


class ActionTable(BaseModel):
    actions: dict[str, ActionRule] = Field(default_factory=dict)
    default: ActionRule = Field(default_factory=lambda: ActionRule(energy_cost=3))


class StageConfig(BaseModel):
    index: int
    name: str
    desc: str = ""


class ActiveRunResponse(BaseModel):
    has_active: bool
    run_id: int | None = None


class JoinResponse(BaseModel):
    message: str = "joined"
    run_id: int


class RunPlayerOut(BaseModel):
    user_id: int
    name: str
    hp: int
    energy: int
    score: int
    alive: bool

    model_config = {"from_attributes": True}


class RunEventOut(BaseModel):
    id: int
    type: str
    message: str
    actor_user_id: int | None
    payload: dict = {}
    ts: datetime


class RunStateResponse(BaseModel):
    run_id: int
    game_id: int
    status: str
    current_stage: int
    total_stages: int
    stage_name: str
    stage_desc: str
    stage_configs: list[StageConfig]
    map_config: dict
    players: list[RunPlayerOut]
    events: list[RunEventOut]
    my_score: int
    my_hp: int
    my_energy: int
    is_joined: bool
    can_control: bool
    creator_user_id: int


class ActionRequest(BaseModel):
    action_type: str = ""
    payload: Any = None


class ActionResponse(BaseModel):
    message: str
    score: int
    hp: int
    energy: int
    alive: bool


class StageConfigRequest(BaseModel):
    total_stages: int = 1
    stages: Any = None  # list of {"name", "desc"}; anything else means "no names"


class StageAdvanceResponse(BaseModel):
    message: str = "ok"
    current_stage: int


class MapPatchRequest(BaseModel):
    map_patch: Any = None


class ScoreGrantRequest(BaseModel):
    user_id: int = 0
    points: int = 0
    reason: str = "Stage reward"
    stage: int = 1


class ScoreGrantResponse(BaseModel):
    message: str = "ok"
    target_user_id: int
    score: int


class RankEntry(BaseModel):
    user_id: int
    name: str
    score: int
    rank: int


class SettlementResponse(BaseModel):
    run_id: int
    ended_at: datetime | None
    result: str = "settled"
    rank: list[RankEntry]


class PlayerStatsResponse(BaseModel):
    user_id: int
    total_points: int = 0
    total_runs: int = 0
    total_wins: int = 0
    updated_at: datetime | None = None


class OkResponse(BaseModel):
    message: str = "ok"
