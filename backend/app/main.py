"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app import models  # noqa: F401
from app.config import settings
from app.core.errors import CustomGameError
from app.db.database import engine, Base, async_session
from app.db.redis import close_redis
from app.services.review_service import review_service

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: create tables (dev only; use Alembic in production)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with async_session() as db:
        await review_service.ensure_default_rules(db)
        await db.commit()
    logger.info(f"Custom game backend started ({settings.APP_ENV})")
    yield
    # Shutdown: close connections
    await engine.dispose()
    await close_redis()


app = FastAPI(
    title="Custom Game API",
    description="Backend API for player-proposed custom games: reviews, votes, runs and settlement",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # TODO: restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(CustomGameError)
async def custom_game_error_handler(request: Request, exc: CustomGameError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


# --- Routes ---
from app.api.routes import announcements, games, reviews, runs, votes  # noqa: E402
from app.api.websocket import announcements_ws  # noqa: E402

# Admin paths first so "/admin/..." never reaches the "/{game_id}" routes
app.include_router(reviews.router, prefix="/api/custom-games/admin", tags=["review"])
app.include_router(games.router, prefix="/api/custom-games", tags=["custom-games"])
app.include_router(votes.router, prefix="/api/custom-games", tags=["vote"])
app.include_router(runs.router, prefix="/api/custom-games", tags=["run"])
app.include_router(announcements.router, prefix="/api/announcements", tags=["announcements"])
app.include_router(announcements_ws.router, tags=["websocket"])


@app.get("/health")
async def health_check():
    return {"status": "ok"}
