"""Announcement Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel


class AnnouncementOut(BaseModel):
    id: int
    type: str
    title: str
    content: str
    payload: dict
    created_at: datetime

    model_config = {"from_attributes": True}


class AnnouncementList(BaseModel):
    rows: list[AnnouncementOut]
