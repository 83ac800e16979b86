from __future__ import annotations

import pytest

from questline_api.errors import ValidationError
from questline_api.rewards import (
    BadgeReward,
    TitleReward,
    XpOnly,
    make_reward,
    reward_xp,
)


def test_badge_and_title_together_is_rejected() -> None:
    with pytest.raises(ValidationError) as exc:
        make_reward(source_kind="quest", badge_id="b1", title_id="t1")
    assert exc.value.code == "reward_badge_and_title"


def test_quest_reward_variants() -> None:
    assert make_reward(source_kind="quest", xp_amount=40) == XpOnly(amount=40)
    assert make_reward(source_kind="quest", badge_id="b1", xp_amount=10) == BadgeReward(
        badge_id="b1", xp_amount=10
    )
    assert make_reward(source_kind="quest", title_id="t1") == TitleReward(title_id="t1")


def test_achievement_reward_sets_exactly_one_field() -> None:
    with pytest.raises(ValidationError) as exc:
        make_reward(source_kind="achievement", badge_id="b1", xp_amount=5)
    assert exc.value.code == "reward_achievement_single"

    with pytest.raises(ValidationError):
        make_reward(source_kind="achievement")

    assert make_reward(source_kind="achievement", title_id="t1") == TitleReward(title_id="t1")


def test_empty_and_negative_rewards_are_rejected() -> None:
    with pytest.raises(ValidationError) as empty:
        make_reward(source_kind="quest")
    assert empty.value.code == "reward_empty"

    with pytest.raises(ValidationError) as negative:
        make_reward(source_kind="quest", xp_amount=-1)
    assert negative.value.code == "reward_xp_negative"


def test_reward_xp() -> None:
    assert reward_xp(XpOnly(amount=30)) == 30
    assert reward_xp(BadgeReward(badge_id="b1")) == 0
    assert reward_xp(TitleReward(title_id="t1", xp_amount=15)) == 15
