"""Announcement endpoints - polling feed of global notices."""

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.database import get_db
from app.schemas.announcement import AnnouncementList
from app.services.announcement_service import announcement_service

router = APIRouter()


@router.get("/", response_model=AnnouncementList)
async def list_announcements(
    response: Response, since_id: int = 0, limit: int = 10, db: AsyncSession = Depends(get_db)
):
    """Announcements after ``since_id``, or the latest ``limit`` (max 30)."""
    response.headers["Cache-Control"] = "no-store"
    rows = await announcement_service.recent(db, since_id, limit)
    return AnnouncementList(rows=rows)
