from __future__ import annotations

import threading

import pytest


def _pair_rows(user_a: str, user_b: str) -> list:
    from sqlalchemy import select

    from questline_api.db import SessionLocal
    from questline_api.models import Friendship, friendship_pair_key

    with SessionLocal() as session:
        return list(
            session.scalars(
                select(Friendship).where(
                    Friendship.pair_key == friendship_pair_key(user_a, user_b)
                )
            ).all()
        )


def test_pair_key_ignores_direction() -> None:
    from questline_api.models import friendship_pair_key

    assert friendship_pair_key("user_b", "user_a") == friendship_pair_key("user_a", "user_b")
    assert friendship_pair_key("user_a", "user_b") == "user_a|user_b"


def test_reverse_row_for_same_pair_is_rejected(make_profile, make_friends) -> None:
    from sqlalchemy.exc import IntegrityError

    a = make_profile()
    b = make_profile()
    make_friends(a, b, status="pending")

    with pytest.raises(IntegrityError):
        make_friends(b, a, status="pending")

    assert [(f.user_id, f.friend_id) for f in _pair_rows(a, b)] == [(a, b)]


def test_crossing_requests_over_http_accept_once(api_client, auth_headers, make_profile) -> None:
    a = make_profile()
    b = make_profile()

    first = api_client.post(f"/api/friends/{b}/request", headers=auth_headers(a))
    assert first.status_code == 200
    assert first.json()["status"] == "pending"

    crossing = api_client.post(f"/api/friends/{a}/request", headers=auth_headers(b))
    assert crossing.status_code == 200
    assert crossing.json()["status"] == "accepted"
    assert crossing.json()["user_id"] == a

    rows = _pair_rows(a, b)
    assert [(f.user_id, f.friend_id, f.status) for f in rows] == [(a, b, "accepted")]

    accepted = api_client.get("/api/friends", headers=auth_headers(b)).json()["accepted"]
    assert [f["id"] for f in accepted] == [rows[0].id]


def test_concurrent_crossing_requests_leave_one_row(make_profile) -> None:
    from questline_api.db import SessionLocal
    from questline_api.errors import QuestlineError
    from questline_api.routers.friends import request_friend

    a = make_profile()
    b = make_profile()
    start = threading.Barrier(2, timeout=10)
    outcomes: list[str] = []
    lock = threading.Lock()

    def _request(viewer: str, target: str) -> None:
        start.wait()
        with SessionLocal() as session:
            try:
                out = request_friend(None, target, viewer_user_id=viewer, db=session)
                result = out.status
            except QuestlineError as exc:
                result = exc.code
        with lock:
            outcomes.append(result)

    threads = [
        threading.Thread(target=_request, args=(a, b)),
        threading.Thread(target=_request, args=(b, a)),
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert sorted(outcomes) == ["accepted", "pending"]
    rows = _pair_rows(a, b)
    assert len(rows) == 1
    assert rows[0].status == "accepted"


def test_blocked_pair_refuses_requests_both_ways(api_client, auth_headers, make_profile) -> None:
    a = make_profile()
    b = make_profile()

    blocked = api_client.post(f"/api/friends/{b}/block", headers=auth_headers(a))
    assert blocked.status_code == 200
    assert blocked.json()["status"] == "blocked"

    resp = api_client.post(f"/api/friends/{a}/request", headers=auth_headers(b))
    assert resp.status_code == 409
    assert resp.json()["detail"] == "friendship_blocked"
    assert len(_pair_rows(a, b)) == 1
