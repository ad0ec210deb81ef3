"""Route tests - the full custom game pipeline over HTTP."""

from datetime import datetime, timedelta

import pytest

from app.config import settings

CREATOR = 1
ADMIN_A = 101
ADMIN_B = 102
PLAYERS = (11, 12, 13)

BASE = "/api/custom-games"


@pytest.fixture
def as_user(headers):
    return lambda user_id, name="": headers(user_id, name=name)


@pytest.fixture
def as_admin(headers):
    return lambda user_id=ADMIN_A: headers(user_id, name=f"Admin{user_id}", admin=True)


async def _set_threshold(client, as_admin, module_key, required):
    resp = await client.put(
        f"{BASE}/admin/review-rules/{module_key}",
        json={"required_approvals": required},
        headers=as_admin(),
    )
    assert resp.status_code == 200
    return resp.json()


async def _game_ready_for_vote(client, as_user, as_admin):
    for module_key in ("custom_idea", "custom_map", "custom_start"):
        await _set_threshold(client, as_admin, module_key, 1)

    resp = await client.post(
        f"{BASE}/", json={"title": "Sky Race", "idea_text": "Fly"}, headers=as_user(CREATOR)
    )
    game_id = resp.json()["id"]
    await client.post(f"{BASE}/admin/review/idea/{game_id}", json={"approve": True}, headers=as_admin())

    resp = await client.post(
        f"{BASE}/{game_id}/map", json={"map_data": {"points": [[0, 0]]}}, headers=as_user(CREATOR)
    )
    map_id = resp.json()["map_id"]
    await client.post(f"{BASE}/admin/review/map/{map_id}", json={"approve": True}, headers=as_admin())

    await client.post(f"{BASE}/{game_id}/start-request", headers=as_user(CREATOR))
    resp = await client.post(f"{BASE}/admin/review/start/{game_id}", json={"approve": True}, headers=as_admin())
    assert resp.json()["game_status"] == "ready_for_vote"
    return game_id


# ---------------------------------------------------------------------------
# Identity and errors
# ---------------------------------------------------------------------------


async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


async def test_missing_identity(client):
    resp = await client.get(f"{BASE}/mine")
    assert resp.status_code == 401

    resp = await client.get(f"{BASE}/mine", headers={"X-User-Id": "abc"})
    assert resp.status_code == 401


async def test_admin_only(client, as_user):
    resp = await client.get(f"{BASE}/admin/review-rules", headers=as_user(CREATOR))
    assert resp.status_code == 403


async def test_domain_errors_have_code(client, as_user):
    resp = await client.get(f"{BASE}/999", headers=as_user(CREATOR))
    assert resp.status_code == 404
    assert resp.json() == {"detail": "Game not found", "code": "NotFound"}

    resp = await client.post(f"{BASE}/", json={"title": "  "}, headers=as_user(CREATOR))
    assert resp.status_code == 422
    assert resp.json()["code"] == "ValidationError"


async def test_unknown_module_key(client, as_admin):
    resp = await client.put(
        f"{BASE}/admin/review-rules/custom_other", json={"required_approvals": 2}, headers=as_admin()
    )
    assert resp.status_code == 422


# ---------------------------------------------------------------------------
# Reviews
# ---------------------------------------------------------------------------


async def test_review_rules(client, as_admin):
    resp = await client.get(f"{BASE}/admin/review-rules", headers=as_admin())
    assert resp.status_code == 200
    assert {r["module_key"] for r in resp.json()} == {"custom_idea", "custom_map", "custom_start"}

    rule = await _set_threshold(client, as_admin, "custom_idea", -3)
    assert rule["required_approvals"] == 1


async def test_idea_quorum_over_http(client, as_user, as_admin):
    resp = await client.post(f"{BASE}/", json={"title": "Castle"}, headers=as_user(CREATOR))
    assert resp.status_code == 201
    game_id = resp.json()["id"]

    resp = await client.get(f"{BASE}/admin/review/ideas/pending", headers=as_admin())
    assert [g["id"] for g in resp.json()] == [game_id]

    first = await client.post(
        f"{BASE}/admin/review/idea/{game_id}", json={"approve": True}, headers=as_admin(ADMIN_A)
    )
    body = first.json()
    assert body["pending"] is True
    assert body["done"] is False
    assert body["approve_count"] == 1
    assert body["required"] == 2

    second = await client.post(
        f"{BASE}/admin/review/idea/{game_id}", json={"approve": True}, headers=as_admin(ADMIN_B)
    )
    body = second.json()
    assert body["done"] is True
    assert body["status"] == "approved"
    assert body["game_status"] == "idea_approved"

    resp = await client.get(f"{BASE}/admin/review/history/{game_id}", headers=as_admin())
    assert [r["reviewer_user_id"] for r in resp.json()] == [ADMIN_A, ADMIN_B]


async def test_self_review_forbidden(client, as_admin):
    resp = await client.post(f"{BASE}/", json={"title": "Mine"}, headers=as_admin(ADMIN_A))
    game_id = resp.json()["id"]

    resp = await client.post(
        f"{BASE}/admin/review/idea/{game_id}", json={"approve": True}, headers=as_admin(ADMIN_A)
    )
    assert resp.status_code == 403
    assert resp.json()["code"] == "SelfReview"


async def test_map_latest_and_mine(client, as_user, as_admin):
    await _set_threshold(client, as_admin, "custom_idea", 1)
    resp = await client.post(f"{BASE}/", json={"title": "Maps"}, headers=as_user(CREATOR))
    game_id = resp.json()["id"]

    resp = await client.post(f"{BASE}/{game_id}/map", json={"map_data": {}}, headers=as_user(CREATOR))
    assert resp.status_code == 409

    await client.post(f"{BASE}/admin/review/idea/{game_id}", json={"approve": True}, headers=as_admin())
    resp = await client.post(
        f"{BASE}/{game_id}/map", json={"map_data": '{"size": 8}'}, headers=as_user(CREATOR)
    )
    assert resp.json()["version"] == 1

    resp = await client.get(f"{BASE}/{game_id}/map/latest", headers=as_user(PLAYERS[0]))
    assert resp.json()["map_data"] == {"size": 8}
    assert resp.json()["status"] == "pending"

    resp = await client.get(f"{BASE}/admin/review/maps/pending", headers=as_admin())
    assert len(resp.json()) == 1

    resp = await client.get(f"{BASE}/mine", headers=as_user(CREATOR))
    assert [g["status"] for g in resp.json()] == ["map_pending"]


# ---------------------------------------------------------------------------
# Vote, run and settlement
# ---------------------------------------------------------------------------


async def test_full_pipeline(client, as_user, as_admin, fake_redis):
    game_id = await _game_ready_for_vote(client, as_user, as_admin)

    resp = await client.get(f"{BASE}/admin/review/start/pending", headers=as_admin())
    assert resp.json() == []

    # Population vote
    resp = await client.post(f"{BASE}/{game_id}/vote/open", json={"duration_minutes": 5}, headers=as_admin())
    assert resp.status_code == 200
    assert resp.json()["vote_ends_at"]

    for user_id in PLAYERS:
        resp = await client.post(f"{BASE}/{game_id}/vote/cast", json={"vote": 1}, headers=as_user(user_id))
        assert resp.status_code == 200

    resp = await client.get(f"{BASE}/{game_id}/vote/status", headers=as_user(PLAYERS[0]))
    status = resp.json()
    assert status["yes_count"] == 3
    assert status["my_vote"] == 1
    assert status["expired"] is False

    resp = await client.post(
        f"{BASE}/{game_id}/vote/close-and-judge", json={"min_yes": 2, "total_stages": 3}, headers=as_admin()
    )
    judged = resp.json()
    assert judged["passed"] is True
    run_id = judged["run_id"]

    resp = await client.get(f"{BASE}/{game_id}/run/active", headers=as_user(PLAYERS[0]))
    assert resp.json() == {"has_active": True, "run_id": run_id}

    # Players join and act
    for user_id, name in zip(PLAYERS, ("Ann", "Ben", "Cid")):
        resp = await client.post(f"{BASE}/{game_id}/run/join", headers=as_user(user_id, name))
        assert resp.json()["run_id"] == run_id

    resp = await client.post(
        f"{BASE}/{game_id}/run/action", json={"action_type": "collect"}, headers=as_user(PLAYERS[0])
    )
    assert resp.json() == {
        "message": "Ann gathered resources (+2 pts)", "score": 2, "hp": 100, "energy": 92, "alive": True,
    }

    resp = await client.post(
        f"{BASE}/{game_id}/run/action", json={"action_type": "explore"}, headers=as_user(999)
    )
    assert resp.status_code == 403

    # Controller commands
    resp = await client.post(f"{BASE}/{game_id}/run/stages/next", headers=as_user(PLAYERS[0]))
    assert resp.status_code == 403

    resp = await client.post(
        f"{BASE}/{game_id}/run/stages/config",
        json={"total_stages": 2, "stages": [{"name": "Warmup"}, {"name": "Finale"}]},
        headers=as_user(CREATOR),
    )
    assert resp.status_code == 200

    resp = await client.post(f"{BASE}/{game_id}/run/stages/next", headers=as_user(CREATOR))
    assert resp.json()["current_stage"] == 2
    resp = await client.post(f"{BASE}/{game_id}/run/stages/next", headers=as_user(CREATOR))
    assert resp.status_code == 409
    assert resp.json()["code"] == "AlreadyFinal"

    resp = await client.post(
        f"{BASE}/{game_id}/run/map/update", json={"map_patch": {"weather": "storm"}}, headers=as_admin()
    )
    assert resp.status_code == 200

    for user_id, points in zip(PLAYERS, (48, 30, 10)):
        resp = await client.post(
            f"{BASE}/{game_id}/run/score/grant",
            json={"user_id": user_id, "points": points, "reason": "Finale", "stage": 2},
            headers=as_admin(),
        )
        assert resp.status_code == 200

    resp = await client.get(f"{BASE}/{game_id}/run/state", headers=as_user(PLAYERS[1]))
    state = resp.json()
    assert state["stage_name"] == "Finale"
    assert state["map_config"] == {"points": [[0, 0]], "weather": "storm"}
    assert state["my_score"] == 30
    assert [p["score"] for p in state["players"]] == [50, 30, 10]
    assert state["can_control"] is False

    resp = await client.get(f"{BASE}/{game_id}/run/end", headers=as_user(PLAYERS[0]))
    assert resp.status_code == 409

    # Settlement
    resp = await client.post(f"{BASE}/{game_id}/run/end", headers=as_admin())
    settlement = resp.json()
    assert settlement["result"] == "settled"
    assert [(r["user_id"], r["rank"]) for r in settlement["rank"]] == [(11, 1), (12, 2), (13, 3)]

    resp = await client.post(f"{BASE}/{game_id}/run/end", headers=as_admin())
    assert resp.status_code == 409
    assert resp.json()["code"] == "AlreadyEnded"

    resp = await client.get(f"{BASE}/{game_id}/run/end", headers=as_user(PLAYERS[2]))
    assert resp.json()["rank"] == settlement["rank"]

    resp = await client.get(f"{BASE}/stats/{PLAYERS[0]}", headers=as_user(PLAYERS[0]))
    assert resp.json()["total_points"] == 50
    assert resp.json()["total_runs"] == 1
    assert resp.json()["total_wins"] == 1

    resp = await client.get(f"{BASE}/stats/4242", headers=as_user(PLAYERS[0]))
    assert resp.json()["total_runs"] == 0

    resp = await client.get(f"{BASE}/{game_id}", headers=as_user(CREATOR))
    assert resp.json()["status"] == "ended"

    # Announcements
    resp = await client.get("/api/announcements/")
    assert [a["type"] for a in resp.json()["rows"]] == ["vote_open", "game_start"]
    assert len(fake_redis.published) == 2


async def test_failed_vote(client, as_user, as_admin):
    game_id = await _game_ready_for_vote(client, as_user, as_admin)
    await client.post(f"{BASE}/{game_id}/vote/open", json={"duration_minutes": 5}, headers=as_admin())
    await client.post(f"{BASE}/{game_id}/vote/cast", json={"vote": 1}, headers=as_user(PLAYERS[0]))
    await client.post(f"{BASE}/{game_id}/vote/cast", json={"vote": 0}, headers=as_user(PLAYERS[1]))

    resp = await client.post(
        f"{BASE}/{game_id}/vote/close-and-judge", json={"min_yes": 1}, headers=as_admin()
    )
    assert resp.json() == {"message": "vote closed", "passed": False, "yes": 1, "no": 1, "run_id": None}

    resp = await client.get(f"{BASE}/{game_id}/run/active", headers=as_user(PLAYERS[0]))
    assert resp.json() == {"has_active": False, "run_id": None}

    resp = await client.post(f"{BASE}/{game_id}/vote/cast", json={"vote": 1}, headers=as_user(PLAYERS[2]))
    assert resp.status_code == 409


async def test_vote_defaults_follow_settings(client, as_user, as_admin, monkeypatch):
    monkeypatch.setattr(settings, "DEFAULT_VOTE_MINUTES", 25)
    monkeypatch.setattr(settings, "DEFAULT_TOTAL_STAGES", 4)
    game_id = await _game_ready_for_vote(client, as_user, as_admin)

    resp = await client.post(f"{BASE}/{game_id}/vote/open", json={}, headers=as_admin())
    assert resp.status_code == 200
    status = (await client.get(f"{BASE}/{game_id}/vote/status", headers=as_user(PLAYERS[0]))).json()
    opened = datetime.fromisoformat(status["vote_opened_at"])
    ends = datetime.fromisoformat(status["vote_ends_at"])
    assert ends - opened == timedelta(minutes=25)

    await client.post(f"{BASE}/{game_id}/vote/cast", json={"vote": 1}, headers=as_user(PLAYERS[0]))
    resp = await client.post(f"{BASE}/{game_id}/vote/close-and-judge", json={}, headers=as_admin())
    assert resp.json()["passed"] is True

    state = (await client.get(f"{BASE}/{game_id}/run/state", headers=as_user(CREATOR))).json()
    assert state["total_stages"] == 4
