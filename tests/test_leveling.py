from __future__ import annotations

from questline_api.leveling import level_for_xp, level_progress, xp_for_level


def test_level_thresholds() -> None:
    assert level_for_xp(0) == 1
    assert level_for_xp(99) == 1
    assert level_for_xp(100) == 2
    assert level_for_xp(125) == 2
    assert level_for_xp(399) == 2
    assert level_for_xp(400) == 3
    assert level_for_xp(900) == 4


def test_level_is_non_decreasing() -> None:
    prev = level_for_xp(0)
    for xp in range(0, 5000, 7):
        cur = level_for_xp(xp)
        assert cur >= prev
        prev = cur


def test_xp_for_level_matches_thresholds() -> None:
    for level in range(1, 12):
        floor_xp = xp_for_level(level)
        assert level_for_xp(floor_xp) == level
        if floor_xp > 0:
            assert level_for_xp(floor_xp - 1) == level - 1


def test_level_progress() -> None:
    assert level_progress(0) == (1, 0, 100)
    assert level_progress(125) == (2, 25, 300)
    assert level_progress(400) == (3, 0, 500)
