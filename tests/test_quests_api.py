from __future__ import annotations

from uuid import uuid4


ADMIN = {"X-Admin-Token": "test-admin"}


def _new_user(api_client, auth_headers) -> tuple[str, dict[str, str]]:
    user_id = f"user_{uuid4().hex[:12]}"
    headers = auth_headers(user_id)
    resp = api_client.post(
        "/api/profile", headers=headers, json={"username": f"u_{uuid4().hex[:12]}"}
    )
    assert resp.status_code == 200
    assert resp.json()["xp"] == 0
    assert resp.json()["level"] == 1
    return user_id, headers


def _ops_quest(api_client, **overrides) -> dict:
    body = {
        "title": "Harbor Walk",
        "base_xp_reward": 100,
        "steps": [{"description": "Reach the pier", "requires_check_in": True, "step_xp_reward": 25}],
        "rewards": [{"badge_id": "badge_test_explorer"}],
    }
    body.update(overrides)
    resp = api_client.post("/api/ops/quests", headers=ADMIN, json=body)
    assert resp.status_code == 200, resp.text
    return resp.json()


def test_quest_lifecycle_over_http(api_client, auth_headers) -> None:
    _, headers = _new_user(api_client, auth_headers)
    quest = _ops_quest(api_client)
    quest_id = quest["id"]
    (step_id,) = quest["step_ids"]

    accept = api_client.post(f"/api/quests/{quest_id}/accept", headers=headers)
    assert accept.status_code == 200
    assert accept.json()["current_step"] == 1

    again = api_client.post(f"/api/quests/{quest_id}/accept", headers=headers)
    assert again.status_code == 409
    assert again.json()["detail"] == "quest_already_accepted"

    no_check_in = api_client.post(
        f"/api/quests/{quest_id}/steps/{step_id}/submit",
        headers=headers,
        json={"proof_ref": "proof://pier.jpg"},
    )
    assert no_check_in.status_code == 400
    assert no_check_in.json()["detail"] == "check_in_required"

    ok = api_client.post(
        f"/api/quests/{quest_id}/steps/{step_id}/submit",
        headers=headers,
        json={"proof_ref": "proof://pier.jpg", "check_in": {"lat": 59.91, "lng": 10.75}},
    )
    assert ok.status_code == 200
    out = ok.json()
    assert out["completed"] is True
    assert out["xp_awarded"] == 125
    assert out["completion_reward"]["badges_granted"] == ["badge_test_explorer"]
    assert ok.headers.get("X-Request-Id")

    state = api_client.get(f"/api/quests/{quest_id}/state", headers=headers)
    assert state.status_code == 200
    assert state.json()["is_completed"] is True

    subs = api_client.get(f"/api/quests/{quest_id}/submissions", headers=headers)
    assert subs.status_code == 200
    assert subs.json()[0]["check_in"] == {"lat": 59.91, "lng": 10.75}

    mine = api_client.get("/api/quests/mine", headers=headers)
    assert [q["state"]["quest_id"] for q in mine.json()] == [quest_id]

    me = api_client.get("/api/profile/me", headers=headers)
    assert me.status_code == 200
    profile = me.json()
    assert profile["xp"] == 125
    assert profile["level"] == 2
    assert profile["xp_into_level"] == 25
    assert [b["id"] for b in profile["badges"]] == ["badge_test_explorer"]

    activity = api_client.get(
        "/api/profile/me/activity", headers=headers, params={"type": "quest_completed"}
    )
    assert [e["type"] for e in activity.json()["items"]] == ["quest_completed"]


def test_unknown_quest_and_missing_auth(api_client, auth_headers) -> None:
    _, headers = _new_user(api_client, auth_headers)

    missing = api_client.post("/api/quests/q_does_not_exist/accept", headers=headers)
    assert missing.status_code == 404
    assert missing.json()["detail"] == "quest_not_found"

    state = api_client.get("/api/quests/q_does_not_exist/state", headers=headers)
    assert state.status_code == 404

    anon = api_client.post("/api/quests/q_does_not_exist/accept")
    assert anon.status_code == 401


def test_ops_endpoints_require_admin_token(api_client) -> None:
    resp = api_client.post(
        "/api/ops/badges", json={"title": "Nope"}, headers={"X-Admin-Token": "wrong"}
    )
    assert resp.status_code == 401


def test_ops_rejects_badge_and_title_reward(api_client) -> None:
    resp = api_client.post(
        "/api/ops/quests",
        headers=ADMIN,
        json={
            "title": "Invalid",
            "steps": [{"description": "x"}],
            "rewards": [{"badge_id": "badge_test_explorer", "title_id": "title_test_pathfinder"}],
        },
    )
    assert resp.status_code == 400
    assert resp.json()["detail"] == "reward_badge_and_title"


def test_ops_quest_cannot_be_replaced_once_accepted(api_client, auth_headers) -> None:
    _, headers = _new_user(api_client, auth_headers)
    quest = _ops_quest(api_client, rewards=[])
    assert api_client.post(f"/api/quests/{quest['id']}/accept", headers=headers).status_code == 200

    resp = api_client.post(
        "/api/ops/quests",
        headers=ADMIN,
        json={"id": quest["id"], "title": "Changed", "steps": [{"description": "y"}]},
    )
    assert resp.status_code == 409
    assert resp.json()["detail"] == "quest_in_progress"


def test_friend_synergy_over_http(api_client, auth_headers) -> None:
    alice_id, alice = _new_user(api_client, auth_headers)
    bob_id, bob = _new_user(api_client, auth_headers)

    req = api_client.post(f"/api/friends/{bob_id}/request", headers=alice)
    assert req.status_code == 200
    assert req.json()["status"] == "pending"

    incoming = api_client.get("/api/friends", headers=bob).json()["incoming"]
    assert [f["user_id"] for f in incoming] == [alice_id]

    acc = api_client.post(f"/api/friends/{alice_id}/accept", headers=bob)
    assert acc.status_code == 200
    assert acc.json()["status"] == "accepted"

    quest = _ops_quest(
        api_client,
        steps=[{"description": "Meet at the cafe", "step_xp_reward": 10}],
        rewards=[],
    )
    step_id = quest["step_ids"][0]
    results = []
    for headers in (alice, bob):
        api_client.post(f"/api/quests/{quest['id']}/accept", headers=headers)
        resp = api_client.post(
            f"/api/quests/{quest['id']}/steps/{step_id}/submit",
            headers=headers,
            json={"proof_ref": "proof://cafe.jpg"},
        )
        assert resp.status_code == 200
        results.append(resp.json()["completion_reward"])

    assert results[0]["xp_awarded"] == 100
    assert results[1]["xp_awarded"] == 110
    assert results[1]["synergy_applied"] is True


def test_cannot_friend_self(api_client, auth_headers) -> None:
    user_id, headers = _new_user(api_client, auth_headers)
    resp = api_client.post(f"/api/friends/{user_id}/request", headers=headers)
    assert resp.status_code == 400
    assert resp.json()["detail"] == "cannot_friend_self"


def test_achievement_unlock_over_http(api_client, auth_headers) -> None:
    user_id, headers = _new_user(api_client, auth_headers)

    created = api_client.post(
        "/api/ops/achievements",
        headers=ADMIN,
        json={"name": "Early Bird", "xp_amount": 150},
    )
    assert created.status_code == 200
    ach_id = created.json()["id"]

    first = api_client.post(
        f"/api/ops/achievements/{ach_id}/unlock", headers=ADMIN, json={"user_id": user_id}
    )
    assert first.status_code == 200
    assert first.json()["unlocked"] is True
    assert first.json()["level"] == 2

    second = api_client.post(
        f"/api/ops/achievements/{ach_id}/unlock", headers=ADMIN, json={"user_id": user_id}
    )
    assert second.status_code == 200
    assert second.json()["unlocked"] is False

    assert api_client.get("/api/profile/me", headers=headers).json()["xp"] == 150


def test_achievement_with_two_rewards_is_rejected(api_client) -> None:
    resp = api_client.post(
        "/api/ops/achievements",
        headers=ADMIN,
        json={"name": "Greedy", "xp_amount": 10, "title_id": "title_test_pathfinder"},
    )
    assert resp.status_code == 400
    assert resp.json()["detail"] == "reward_achievement_single"


def test_health_ready_and_metrics(api_client) -> None:
    assert api_client.get("/api/health").json() == {"status": "ok"}
    assert api_client.get("/api/ready").json()["status"] == "ok"

    metrics = api_client.get("/api/metrics")
    assert metrics.status_code == 200
    assert "questline_http_requests_total" in metrics.text


def test_locked_store_maps_to_503(api_client, auth_headers, monkeypatch) -> None:
    import sqlite3

    from sqlalchemy.exc import OperationalError

    import questline_api.award_engine as award_engine
    import questline_api.routers.friends as friends

    def _locked(*args, **kwargs):
        raise OperationalError("UPDATE profiles", {}, sqlite3.OperationalError("database is locked"))

    user_id, headers = _new_user(api_client, auth_headers)
    other_id, _ = _new_user(api_client, auth_headers)
    ach_id = api_client.post(
        "/api/ops/achievements", headers=ADMIN, json={"name": "Locked", "xp_amount": 5}
    ).json()["id"]

    monkeypatch.setattr(award_engine, "apply_rewards", _locked)
    unlock = api_client.post(
        f"/api/ops/achievements/{ach_id}/unlock", headers=ADMIN, json={"user_id": user_id}
    )
    assert unlock.status_code == 503
    assert unlock.json() == {"detail": "store_busy"}

    monkeypatch.setattr(friends, "_pair", _locked)
    req = api_client.post(
        f"/api/friends/{other_id}/request", headers={**headers, "X-Request-Id": "req_locked"}
    )
    assert req.status_code == 503
    assert req.json() == {"detail": "store_busy"}
    assert req.headers["X-Request-Id"] == "req_locked"
