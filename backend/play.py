#!/usr/bin/env python3
"""CLI script that walks one custom game through its whole lifecycle over HTTP.

Usage:
    python play.py                          # against http://localhost:8000
    python play.py http://staging:8000      # against another server

Steps:
    idea -> idea review -> map -> map review -> start request -> start review
    -> population vote -> run (join, actions, stages, scores) -> settlement

Needs a running server (uvicorn app.main:app). Review thresholds are set to 1
so a single admin can drive every gate.
"""

import sys

import requests

BASE_URL = "http://localhost:8000"

CREATOR_ID = 1
ADMIN_ID = 900
PLAYERS = [(11, "Ann"), (12, "Ben"), (13, "Cid")]

# --- ANSI Colors ---
DIVIDER = "\033[90m" + "─" * 50 + "\033[0m"
RESET = "\033[0m"
DIM = "\033[90m"
BOLD = "\033[1m"
YELLOW = "\033[93m"
GREEN = "\033[92m"
RED = "\033[91m"


class StepFailed(Exception):
    pass


def headers(user_id: int, name: str = "", admin: bool = False) -> dict:
    h = {"X-User-Id": str(user_id)}
    if name:
        h["X-User-Name"] = name
    if admin:
        h["X-User-Admin"] = "1"
    return h


ADMIN = headers(ADMIN_ID, "Admin", admin=True)
CREATOR = headers(CREATOR_ID, "Creator")


def call(method: str, path: str, who: dict, body: dict | None = None) -> dict:
    url = f"{BASE_URL}/api/custom-games{path}"
    try:
        resp = requests.request(method, url, headers=who, json=body, timeout=10)
    except requests.exceptions.RequestException as e:
        raise StepFailed(f"{method} {path}: {e}")
    if resp.status_code >= 400:
        raise StepFailed(f"{method} {path} -> {resp.status_code} {resp.text}")
    return resp.json()


def section(title: str):
    print()
    print(f"{BOLD}" + "=" * 50 + f"{RESET}")
    print(f"{BOLD}  {title}{RESET}")
    print(f"{BOLD}" + "=" * 50 + f"{RESET}")


def step(text: str, detail: str = ""):
    print(f"  {GREEN}✓{RESET} {text}")
    if detail:
        print(f"    {DIM}{detail}{RESET}")


# =============================================================
# Part 1: Reviews
# =============================================================

def review_pipeline() -> int:
    section("Review pipeline")

    for module_key in ("custom_idea", "custom_map", "custom_start"):
        call("PUT", f"/admin/review-rules/{module_key}", ADMIN, {"required_approvals": 1})
    step("review thresholds set to 1")

    game_id = call("POST", "/", CREATOR, {
        "title": "Frozen Pass",
        "idea_text": "Cross the mountain pass before the storm hits.",
    })["id"]
    step(f"idea submitted as game #{game_id}")

    result = call("POST", f"/admin/review/idea/{game_id}", ADMIN, {"approve": True, "comment": "fun"})
    step("idea reviewed", result["message"])

    map_data = {"points": [{"x": 0, "y": 0}, {"x": 4, "y": 7}], "rules": {"storm_turn": 5}}
    submitted = call("POST", f"/{game_id}/map", CREATOR, {"map_data": map_data})
    step(f"map v{submitted['version']} submitted")

    result = call("POST", f"/admin/review/map/{submitted['map_id']}", ADMIN, {"approve": True})
    step("map reviewed", result["message"])

    call("POST", f"/{game_id}/start-request", CREATOR)
    result = call("POST", f"/admin/review/start/{game_id}", ADMIN, {"approve": True})
    step("start reviewed", f"game status: {result['game_status']}")
    return game_id


# =============================================================
# Part 2: Population vote
# =============================================================

def population_vote(game_id: int) -> int | None:
    section("Population vote")

    opened = call("POST", f"/{game_id}/vote/open", ADMIN, {"duration_minutes": 5})
    step("vote opened", f"closes at {opened['vote_ends_at']}")

    for user_id, name in PLAYERS:
        vote = 0 if name == "Cid" else 1
        call("POST", f"/{game_id}/vote/cast", headers(user_id, name), {"vote": vote})
        step(f"{name} voted {'yes' if vote else 'no'}")

    judged = call("POST", f"/{game_id}/vote/close-and-judge", ADMIN, {"min_yes": 2, "total_stages": 2})
    color = GREEN if judged["passed"] else RED
    print(f"  {color}{judged['message']}{RESET} (yes {judged['yes']} / no {judged['no']})")
    return judged["run_id"]


# =============================================================
# Part 3: Run and settlement
# =============================================================

def play_run(game_id: int):
    section("Run")

    for user_id, name in PLAYERS:
        call("POST", f"/{game_id}/run/join", headers(user_id, name))
    step("all players joined")

    call("POST", f"/{game_id}/run/stages/config", CREATOR, {
        "total_stages": 2,
        "stages": [{"name": "Foothills"}, {"name": "Summit", "desc": "Storm incoming"}],
    })

    for action_type, (user_id, name) in zip(("attack", "collect", "explore"), PLAYERS):
        result = call("POST", f"/{game_id}/run/action", headers(user_id, name), {"action_type": action_type})
        print(f"  {YELLOW}{result['message']}{RESET}  {DIM}energy {result['energy']}{RESET}")

    stage = call("POST", f"/{game_id}/run/stages/next", CREATOR)["current_stage"]
    call("POST", f"/{game_id}/run/map/update", CREATOR, {"map_patch": {"weather": "storm"}})
    step(f"advanced to stage {stage}, storm rolled in")

    call("POST", f"/{game_id}/run/score/grant", ADMIN, {
        "user_id": PLAYERS[1][0], "points": 10, "reason": "Reached the summit", "stage": stage,
    })
    step(f"{PLAYERS[1][1]} granted 10 points")

    state = call("GET", f"/{game_id}/run/state", CREATOR)
    print(DIVIDER)
    print(f"  {BOLD}{state['stage_name']}{RESET} ({state['current_stage']}/{state['total_stages']})")
    for event in state["events"][-5:]:
        print(f"  {DIM}{event['message']}{RESET}")
    print(DIVIDER)

    settlement = call("POST", f"/{game_id}/run/end", CREATOR)
    section("Settlement")
    for entry in settlement["rank"]:
        print(f"  #{entry['rank']}  {entry['name']:<8} {entry['score']:>4} pts")

    for user_id, name in PLAYERS:
        stats = call("GET", f"/stats/{user_id}", CREATOR)
        print(f"  {DIM}{name}: {stats['total_points']} pts over {stats['total_runs']} runs, "
              f"{stats['total_wins']} wins{RESET}")


def main():
    global BASE_URL
    if len(sys.argv) > 1:
        BASE_URL = sys.argv[1].rstrip("/")

    try:
        game_id = review_pipeline()
        run_id = population_vote(game_id)
        if run_id is None:
            print(f"\n{YELLOW}The vote failed; no run to play.{RESET}")
            return
        play_run(game_id)
    except StepFailed as e:
        print(f"\n{RED}[error] {e}{RESET}")
        sys.exit(1)
    print()


if __name__ == "__main__":
    main()
