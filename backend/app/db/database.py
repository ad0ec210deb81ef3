"""Async SQLAlchemy engine, session factory and declarative base."""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from app.config import settings
from app.db.redis import discard_pending, publish_pending

engine = create_async_engine(
    settings.DATABASE_URL,
    echo=False,
    pool_pre_ping=True,
)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session (and one transaction) per request.

    Messages queued with ``queue_publish`` go out only after the commit.
    """
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            discard_pending(session)
            await session.rollback()
            raise
        await publish_pending(session)


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """FastAPI dependency for handlers that open their own short sessions."""
    return async_session
