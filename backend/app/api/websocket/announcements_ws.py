"""WebSocket endpoint relaying global announcements from Redis pub/sub."""

import asyncio
import json
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from app.config import settings
from app.db.database import get_session_factory
from app.db.redis import get_redis_client
from app.services.announcement_service import announcement_service, announcement_to_dict

logger = logging.getLogger(__name__)

router = APIRouter()


async def _relay(websocket: WebSocket, pubsub) -> None:
    async for message in pubsub.listen():
        if message.get("type") != "message":
            continue
        data = json.loads(message["data"])
        await websocket.send_text(
            json.dumps({"type": "announcement", "data": data}, ensure_ascii=False)
        )


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    # Client frames carry nothing; reading them is what surfaces the close
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.debug("Announcement listener disconnected")


@router.websocket("/ws/announcements")
async def announcements_websocket(websocket: WebSocket, session_factory=Depends(get_session_factory)):
    """Live announcement feed.

    Protocol:
    - Server sends: {"type": "history", "rows": [...]} once, on connect
    - Server sends: {"type": "announcement", "data": {...}} per new announcement
    - Client frames are read and ignored; closing the socket ends the relay
    """
    await websocket.accept()

    async with session_factory() as db:
        recent = await announcement_service.recent(db)
    await websocket.send_text(json.dumps(
        {"type": "history", "rows": [announcement_to_dict(a) for a in recent]},
        ensure_ascii=False,
        default=str,
    ))

    pubsub = get_redis_client().pubsub()
    await pubsub.subscribe(settings.ANNOUNCEMENT_CHANNEL)
    relay = asyncio.create_task(_relay(websocket, pubsub))
    watcher = asyncio.create_task(_wait_for_disconnect(websocket))
    try:
        await asyncio.wait({relay, watcher}, return_when=asyncio.FIRST_COMPLETED)
        if relay.done() and not relay.cancelled():
            error = relay.exception()
            if error is not None and not isinstance(error, WebSocketDisconnect):
                logger.warning(f"Announcement relay stopped: {error}")
    finally:
        for task in (relay, watcher):
            task.cancel()
        await asyncio.gather(relay, watcher, return_exceptions=True)
        await pubsub.unsubscribe(settings.ANNOUNCEMENT_CHANNEL)
        await pubsub.aclose()
