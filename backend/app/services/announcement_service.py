"""Announcement service - persists global notices and fans them out over Redis."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.utils import clamp
from app.db.redis import queue_publish
from app.models.announcement import Announcement

logger = logging.getLogger(__name__)

VOTE_OPEN = "vote_open"
GAME_START = "game_start"


def announcement_to_dict(announcement: Announcement) -> dict:
    return {
        "id": announcement.id,
        "type": announcement.type,
        "title": announcement.title,
        "content": announcement.content,
        "payload": announcement.payload or {},
        "created_at": announcement.created_at.isoformat() if announcement.created_at else None,
    }


class AnnouncementService:
    @staticmethod
    async def post(
        db: AsyncSession,
        announcement_type: str,
        title: str,
        content: str,
        payload: dict | None = None,
    ) -> Announcement:
        """Store an announcement and queue it for live listeners.

        The Redis publish happens once the session commits, so listeners
        never see an announcement whose transaction rolled back.
        """
        announcement = Announcement(
            type=announcement_type, title=title, content=content, payload=payload or {}
        )
        db.add(announcement)
        await db.flush()

        queue_publish(db, settings.ANNOUNCEMENT_CHANNEL, announcement_to_dict(announcement))
        logger.info(f"Announcement {announcement.id} ({announcement_type}) posted")
        return announcement

    @staticmethod
    async def recent(db: AsyncSession, since_id: int = 0, limit: int = 10) -> list[Announcement]:
        """Announcements newer than ``since_id``, or the latest ``limit`` ones, oldest first."""
        since_id = max(0, since_id)
        limit = clamp(limit, 1, 30)

        if since_id > 0:
            result = await db.execute(
                select(Announcement)
                .where(Announcement.id > since_id)
                .order_by(Announcement.id.asc())
                .limit(limit)
            )
            return list(result.scalars().all())

        result = await db.execute(
            select(Announcement).order_by(Announcement.id.desc()).limit(limit)
        )
        rows = list(result.scalars().all())
        rows.reverse()  # chronological order
        return rows


announcement_service = AnnouncementService()
