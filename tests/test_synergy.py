from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest


T0 = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)


def _complete(user_id: str, quest_id: str, step_id: str, *, at: datetime):
    from questline_api.db import SessionLocal
    from questline_api.quest_tracker import accept_quest, submit_step

    with SessionLocal() as session:
        accept_quest(session, user_id=user_id, quest_id=quest_id, now=at - timedelta(minutes=5))
        res = submit_step(
            session,
            user_id=user_id,
            quest_id=quest_id,
            step_id=step_id,
            proof_ref="proof://photo.jpg",
            now=at,
        )
        assert res.completed is True
        assert res.completion_reward is not None
        return res.completion_reward


@pytest.mark.parametrize(
    ("gap_sec", "expected_xp", "bonus"),
    [(250, 110, True), (300, 110, True), (400, 100, False)],
)
def test_friend_completion_window(
    make_profile, make_quest, make_friends, gap_sec: int, expected_xp: int, bonus: bool
) -> None:
    alice = make_profile()
    bob = make_profile()
    make_friends(alice, bob)
    quest_id, (step_id,) = make_quest(base_xp=100, steps=[(False, 25)])

    first = _complete(alice, quest_id, step_id, at=T0)
    assert first.xp_awarded == 100
    assert first.synergy_applied is False

    later = _complete(bob, quest_id, step_id, at=T0 + timedelta(seconds=gap_sec))
    assert later.xp_awarded == expected_xp
    assert later.synergy_applied is bonus


@pytest.mark.parametrize("status", ["pending", "blocked"])
def test_non_accepted_friendship_earns_no_bonus(
    make_profile, make_quest, make_friends, status: str
) -> None:
    alice = make_profile()
    bob = make_profile()
    make_friends(alice, bob, status=status)
    quest_id, (step_id,) = make_quest(base_xp=100)

    _complete(alice, quest_id, step_id, at=T0)
    later = _complete(bob, quest_id, step_id, at=T0 + timedelta(seconds=60))
    assert later.xp_awarded == 100
    assert later.synergy_applied is False


def test_friendship_direction_does_not_matter(make_profile, make_quest, make_friends) -> None:
    alice = make_profile()
    bob = make_profile()
    # Bob sent the request; Alice completes second.
    make_friends(bob, alice)
    quest_id, (step_id,) = make_quest(base_xp=100)

    _complete(bob, quest_id, step_id, at=T0)
    later = _complete(alice, quest_id, step_id, at=T0 + timedelta(seconds=10))
    assert later.xp_awarded == 110


def test_stranger_completion_earns_no_bonus(make_profile, make_quest) -> None:
    alice = make_profile()
    stranger = make_profile()
    quest_id, (step_id,) = make_quest(base_xp=100)

    _complete(stranger, quest_id, step_id, at=T0)
    later = _complete(alice, quest_id, step_id, at=T0 + timedelta(seconds=10))
    assert later.xp_awarded == 100


def test_adjusted_xp_truncates() -> None:
    from questline_api.synergy import synergy_adjusted_xp

    assert synergy_adjusted_xp(100, bonus_pct=10) == 110
    assert synergy_adjusted_xp(99, bonus_pct=10) == 108
    assert synergy_adjusted_xp(0, bonus_pct=10) == 0
