"""Tests for the map submission ledger."""

import pytest

from app.core.errors import NotFound, ValidationError
from app.models.custom_game import MAP_APPROVED, MAP_REJECTED
from app.models.review import MODULE_MAP, TASK_PENDING
from app.services.game_service import game_service
from app.services.map_service import EMPTY_MAP, map_service
from app.services.review_service import review_service


@pytest.fixture
async def approved_idea(db, creator, admin_a, single_approval):
    game = await game_service.create_idea(db, creator, "Archipelago")
    await game_service.review_idea(db, admin_a, game.id, approve=True)
    return game


async def test_versions_are_monotonic_across_rejections(db, creator, admin_a, approved_idea):
    versions = []
    for _ in range(3):
        game_map = await map_service.submit(db, creator, approved_idea.id, {"v": len(versions)})
        versions.append(game_map.version)
        if len(versions) < 3:
            await game_service.review_map(db, admin_a, game_map.id, approve=False)

    assert versions == [1, 2, 3]

    latest = await map_service.latest(db, approved_idea.id)
    assert latest.version == 3
    assert latest.map_data == {"v": 2}


async def test_submit_opens_review_task(db, creator, approved_idea):
    game_map = await map_service.submit(db, creator, approved_idea.id, {"points": []})
    task = await review_service.get_task(db, MODULE_MAP, "map", game_map.id)
    assert task is not None
    assert task.status == TASK_PENDING
    assert task.payload == {"game_id": approved_idea.id, "version": 1}


async def test_map_data_decoding(db, creator, admin_a, approved_idea):
    from_string = await map_service.submit(db, creator, approved_idea.id, '{"rules": {"fog": true}}')
    assert from_string.map_data == {"rules": {"fog": True}}
    await game_service.review_map(db, admin_a, from_string.id, approve=False)

    garbage = await map_service.submit(db, creator, approved_idea.id, "not json")
    assert garbage.map_data == {}
    await game_service.review_map(db, admin_a, garbage.id, approve=False)

    for wrong_shape in ([1, 2, 3], "[1, 2, 3]", "42"):
        with pytest.raises(ValidationError):
            await map_service.submit(db, creator, approved_idea.id, wrong_shape)

    # A refused payload leaves no version behind
    accepted = await map_service.submit(db, creator, approved_idea.id, {"points": []})
    assert accepted.version == garbage.version + 1


async def test_latest_without_maps(db, approved_idea):
    with pytest.raises(NotFound):
        await map_service.latest(db, approved_idea.id)


async def test_launch_map_prefers_current_map(db, creator, admin_a, approved_idea):
    first = await map_service.submit(db, creator, approved_idea.id, {"name": "first"})
    await game_service.review_map(db, admin_a, first.id, approve=True)

    game = await game_service.get_game(db, approved_idea.id)
    launch = await map_service.launch_map(db, game)
    assert launch.id == first.id
    assert launch.status == MAP_APPROVED


async def test_launch_map_none_without_approval(db, creator, admin_a, approved_idea):
    game_map = await map_service.submit(db, creator, approved_idea.id, {})
    await game_service.review_map(db, admin_a, game_map.id, approve=False)
    assert game_map.status == MAP_REJECTED

    game = await game_service.get_game(db, approved_idea.id)
    assert await map_service.launch_map(db, game) is None
    assert EMPTY_MAP == {"points": [], "rules": {}}


async def test_list_pending(db, creator, approved_idea):
    game_map = await map_service.submit(db, creator, approved_idea.id, {})
    pending = await map_service.list_pending(db)
    assert [m.id for m in pending] == [game_map.id]
