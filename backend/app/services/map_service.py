"""Map ledger - append-only, versioned map submissions per custom game."""

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import lifecycle
from app.core.actor import Actor
from app.core.errors import Forbidden, NotFound, ValidationError
from app.core.utils import parse_json, utcnow
from app.models.custom_game import MAP_APPROVED, MAP_PENDING, CustomGame, CustomGameMap
from app.models.review import MODULE_MAP
from app.services.review_service import review_service

logger = logging.getLogger(__name__)

# Snapshot used when a game launches without any approved map
EMPTY_MAP = {"points": [], "rules": {}}


class MapService:
    @staticmethod
    async def get_map(db: AsyncSession, map_id: int) -> CustomGameMap:
        result = await db.execute(select(CustomGameMap).where(CustomGameMap.id == map_id))
        game_map = result.scalar_one_or_none()
        if game_map is None:
            raise NotFound("Map not found")
        return game_map

    @staticmethod
    async def next_version(db: AsyncSession, game_id: int) -> int:
        result = await db.execute(
            select(func.coalesce(func.max(CustomGameMap.version), 0)).where(
                CustomGameMap.game_id == game_id
            )
        )
        return int(result.scalar_one()) + 1

    async def submit(
        self, db: AsyncSession, actor: Actor, game_id: int, map_data
    ) -> CustomGameMap:
        """Append a new map version and open its review task."""
        game = await lifecycle.lock_game(db, game_id)
        if game.creator_user_id != actor.id:
            raise Forbidden("Only the creator can submit a map")

        # Undecodable text degrades to an empty map; decoded non-objects are refused
        data = parse_json(map_data, {})
        if not isinstance(data, dict):
            raise ValidationError("map_data must be a JSON object")

        # Checked up front so a refused submission never burns a version number
        await lifecycle.transition(db, game, "map_submitted")

        version = await self.next_version(db, game_id)
        game_map = CustomGameMap(
            game_id=game_id,
            version=version,
            map_data=data,
            status=MAP_PENDING,
            creator_user_id=actor.id,
        )
        db.add(game_map)
        await db.flush()

        await review_service.ensure_task(
            db,
            MODULE_MAP,
            "map",
            game_map.id,
            creator_user_id=actor.id,
            payload={"game_id": game_id, "version": version},
        )
        logger.info(f"Game {game_id}: map v{version} submitted (map {game_map.id})")
        return game_map

    @staticmethod
    async def latest(db: AsyncSession, game_id: int) -> CustomGameMap:
        """Highest (version, id) for the game, whatever its review status."""
        result = await db.execute(
            select(CustomGameMap)
            .where(CustomGameMap.game_id == game_id)
            .order_by(CustomGameMap.version.desc(), CustomGameMap.id.desc())
            .limit(1)
        )
        game_map = result.scalar_one_or_none()
        if game_map is None:
            raise NotFound("Map not found")
        return game_map

    @staticmethod
    async def latest_approved(db: AsyncSession, game_id: int) -> CustomGameMap | None:
        result = await db.execute(
            select(CustomGameMap)
            .where(CustomGameMap.game_id == game_id, CustomGameMap.status == MAP_APPROVED)
            .order_by(CustomGameMap.version.desc(), CustomGameMap.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def launch_map(self, db: AsyncSession, game: CustomGame) -> CustomGameMap | None:
        """The map a run is launched from: current map, else newest approved."""
        if game.current_map_id:
            result = await db.execute(
                select(CustomGameMap).where(CustomGameMap.id == game.current_map_id)
            )
            game_map = result.scalar_one_or_none()
            if game_map is not None:
                return game_map
        return await self.latest_approved(db, game.id)

    @staticmethod
    async def set_status(db: AsyncSession, game_map: CustomGameMap, status: str) -> None:
        game_map.status = status
        game_map.updated_at = utcnow()
        await db.flush()

    @staticmethod
    async def list_pending(db: AsyncSession) -> list[CustomGameMap]:
        result = await db.execute(
            select(CustomGameMap)
            .where(CustomGameMap.status == MAP_PENDING)
            .order_by(CustomGameMap.id.asc())
        )
        return list(result.scalars().all())


map_service = MapService()
