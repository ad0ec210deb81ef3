"""Redis async client used to fan announcements out to live listeners."""

import json
import logging

import redis.asyncio as redis

from app.config import settings

logger = logging.getLogger(__name__)

redis_client: redis.Redis | None = None

# Key in ``Session.info`` holding messages that wait for the transaction to commit
PENDING_PUBLISH_KEY = "pending_publish"


def get_redis_client() -> redis.Redis:
    """Get or create the Redis client singleton (lazy init)."""
    global redis_client
    if redis_client is None:
        redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    return redis_client


async def close_redis() -> None:
    """Close the Redis connection if open."""
    global redis_client
    if redis_client is not None:
        await redis_client.close()
        redis_client = None


async def publish_json(channel: str, message: dict) -> int:
    """Publish a JSON message on a channel. Returns the number of receivers."""
    client = get_redis_client()
    return await client.publish(channel, json.dumps(message, ensure_ascii=False, default=str))


def queue_publish(session, channel: str, message: dict) -> None:
    """Hold ``message`` on the session until its transaction commits."""
    session.info.setdefault(PENDING_PUBLISH_KEY, []).append((channel, message))


def discard_pending(session) -> None:
    session.info.pop(PENDING_PUBLISH_KEY, None)


async def publish_pending(session) -> int:
    """Publish everything queued on a committed session.

    A Redis failure is logged and skipped; the committed rows still stand.
    Returns the number of messages taken off the queue.
    """
    pending = session.info.pop(PENDING_PUBLISH_KEY, [])
    for channel, message in pending:
        try:
            await publish_json(channel, message)
        except Exception as e:
            logger.warning(f"Failed to publish on {channel}: {e}")
    return len(pending)
