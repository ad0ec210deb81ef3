"""Shared test fixtures - uses async SQLite for isolated testing."""

import asyncio
import threading

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.actor import Actor
from app.db import redis as redis_module
from app.db.database import Base, get_db, get_session_factory
from app.db.redis import discard_pending, publish_pending

# In-memory SQLite for tests (no Docker needed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///file::memory:?cache=shared&uri=true"

test_engine = create_async_engine(TEST_DATABASE_URL, echo=False)
test_session_factory = async_sessionmaker(
    test_engine, class_=AsyncSession, expire_on_commit=False
)


async def _override_get_db():
    async with test_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            discard_pending(session)
            await session.rollback()
            raise
        await publish_pending(session)


class RecordingPubSub:
    """Subscription handed out by ``RecordingRedis.pubsub``.

    Delivers the subscribe confirmations, then every message in ``backlog``,
    then blocks like an idle channel. ``closed`` is a thread event because the
    WebSocket test client runs the app in its own thread.
    """

    def __init__(self, backlog: list[str]):
        self.backlog = backlog
        self.channels: list[str] = []
        self.closed = threading.Event()

    async def subscribe(self, *channels: str) -> None:
        self.channels.extend(channels)

    async def unsubscribe(self, *channels: str) -> None:
        for channel in channels:
            self.channels.remove(channel)

    async def aclose(self) -> None:
        self.closed.set()

    async def listen(self):
        for channel in list(self.channels):
            yield {"type": "subscribe", "channel": channel, "data": 1}
        for message in self.backlog:
            yield {"type": "message", "channel": self.channels[0], "data": message}
        await asyncio.Event().wait()


class RecordingRedis:
    """Stands in for the Redis client; records every publish."""

    def __init__(self):
        self.published: list[tuple[str, str]] = []
        self.backlog: list[str] = []
        self.subscriptions: list[RecordingPubSub] = []
        self.fail = False

    async def publish(self, channel: str, message: str) -> int:
        if self.fail:
            raise ConnectionError("redis unavailable")
        self.published.append((channel, message))
        return 1

    def pubsub(self) -> RecordingPubSub:
        subscription = RecordingPubSub(self.backlog)
        self.subscriptions.append(subscription)
        return subscription

    async def close(self) -> None:
        pass


@pytest.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after."""
    # Import all models so Base.metadata knows about them
    import app.models  # noqa: F401

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def fake_redis():
    """Route announcement publishing to an in-memory recorder."""
    recorder = RecordingRedis()
    redis_module.redis_client = recorder
    yield recorder
    redis_module.redis_client = None


@pytest.fixture
async def db():
    """Direct async DB session for service-level tests."""
    async with test_session_factory() as session:
        yield session
        await session.commit()


@pytest.fixture
async def client():
    """Async HTTP test client with test DB override."""
    from app.main import app

    app.dependency_overrides[get_db] = _override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def session_factory():
    """The test session factory, for tests that need more than one session."""
    return test_session_factory


@pytest.fixture
def ws_client():
    """Sync Starlette client for WebSocket endpoints, on the test DB."""
    from fastapi.testclient import TestClient

    from app.main import app

    app.dependency_overrides[get_session_factory] = lambda: test_session_factory
    yield TestClient(app)
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Identities
# ---------------------------------------------------------------------------


@pytest.fixture
def creator():
    return Actor(id=1, name="Creator")


@pytest.fixture
def admin_a():
    return Actor(id=101, name="AdminA", is_admin=True)


@pytest.fixture
def admin_b():
    return Actor(id=102, name="AdminB", is_admin=True)


def auth_headers(user_id: int, name: str = "", admin: bool = False) -> dict:
    headers = {"X-User-Id": str(user_id)}
    if name:
        headers["X-User-Name"] = name
    if admin:
        headers["X-User-Admin"] = "1"
    return headers


@pytest.fixture
def headers():
    """Build identity headers: ``headers(user_id, name="", admin=False)``."""
    return auth_headers


# ---------------------------------------------------------------------------
# Lifecycle shortcuts
# ---------------------------------------------------------------------------


@pytest.fixture
async def single_approval(db):
    """Drop every review threshold to 1 so one admin decides each gate."""
    from app.models.review import REVIEW_MODULES
    from app.services.review_service import review_service

    for module_key in REVIEW_MODULES:
        await review_service.set_required_approvals(db, module_key, 1)


@pytest.fixture
async def game_ready_for_vote(db, creator, admin_a, single_approval):
    """A game that passed idea, map and start review."""
    from app.services.game_service import game_service
    from app.services.map_service import map_service

    game = await game_service.create_idea(db, creator, "Treasure Hunt", "Find the gold")
    await game_service.review_idea(db, admin_a, game.id, approve=True)
    game_map = await map_service.submit(db, creator, game.id, {"points": [{"x": 1, "y": 2}]})
    await game_service.review_map(db, admin_a, game_map.id, approve=True)
    await game_service.request_start(db, creator, game.id)
    await game_service.review_start(db, admin_a, game.id, approve=True)
    return game


@pytest.fixture
async def running_game(db, game_ready_for_vote, admin_a):
    """A game whose population vote passed; returns ``(game, run_id)``."""
    from app.services.vote_service import vote_service

    game = game_ready_for_vote
    await vote_service.open(db, game.id, 10)
    await vote_service.cast(db, game.id, Actor(id=201, name="Voter"), 1)
    judgement = await vote_service.close(db, admin_a, game.id, min_yes=1, total_stages=3)
    return game, judgement.run_id
