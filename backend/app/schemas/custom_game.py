"""Custom game and review Pydantic schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


# --- Review rules ---

class ReviewRuleOut(BaseModel):
    module_key: str
    required_approvals: int
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class ReviewRuleUpdate(BaseModel):
    required_approvals: int = 1


# --- Games ---

class IdeaCreate(BaseModel):
    title: str = Field(default="", max_length=200)
    idea_text: str = ""


class IdeaCreateResponse(BaseModel):
    id: int
    message: str = "created"


class GameOut(BaseModel):
    id: int
    title: str
    idea_text: str
    status: str
    creator_user_id: int
    vote_status: str
    vote_opened_at: datetime | None
    vote_ends_at: datetime | None
    current_map_id: int | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


# --- Reviews ---

class ReviewDecision(BaseModel):
    approve: bool = False
    comment: str = ""


class ReviewResponse(BaseModel):
    message: str
    pending: bool
    task_id: int
    done: bool
    status: str  # quorum task status
    approve_count: int
    reject_count: int
    required: int
    game_status: str
    map_status: str | None = None


class ReviewRecordOut(BaseModel):
    id: int
    game_id: int
    map_id: int | None
    review_type: str
    status: str
    reviewer_user_id: int
    comment: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


# --- Maps ---

class MapSubmit(BaseModel):
    map_data: Any = None  # JSON object, or its encoded text


class MapSubmitResponse(BaseModel):
    map_id: int
    version: int
    message: str = "map submitted"


class MapOut(BaseModel):
    id: int
    game_id: int
    version: int
    map_data: dict
    status: str
    creator_user_id: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


# --- Population vote ---

class VoteOpenRequest(BaseModel):
    duration_minutes: int | None = None  # unset: settings.DEFAULT_VOTE_MINUTES


class VoteOpenResponse(BaseModel):
    message: str = "vote opened"
    vote_ends_at: datetime


class VoteCastRequest(BaseModel):
    vote: int = 0


class VoteCastResponse(BaseModel):
    message: str = "vote cast"
    vote: int


class VoteStatusResponse(BaseModel):
    vote_status: str
    vote_opened_at: datetime | None
    vote_ends_at: datetime | None
    yes_count: int
    no_count: int
    total: int
    my_vote: int | None
    expired: bool


class VoteCloseRequest(BaseModel):
    min_yes: int = 1
    total_stages: int | None = None  # unset: settings.DEFAULT_TOTAL_STAGES


class VoteCloseResponse(BaseModel):
    message: str
    passed: bool
    yes: int
    no: int
    run_id: int | None = None


class MessageResponse(BaseModel):
    message: str
