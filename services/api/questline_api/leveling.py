from __future__ import annotations

import math


XP_PER_LEVEL_UNIT = 100


def level_for_xp(xp: int) -> int:
    """
    Level tiers grow quadratically: 0-99 XP is level 1, 100-399 level 2,
    400-899 level 3, and so on. The ratio is floored before the square root.
    """
    units = max(0, int(xp)) // XP_PER_LEVEL_UNIT
    return math.isqrt(units) + 1


def xp_for_level(level: int) -> int:
    lvl = max(1, int(level))
    return (lvl - 1) ** 2 * XP_PER_LEVEL_UNIT


def level_progress(xp: int) -> tuple[int, int, int]:
    """Returns (level, xp earned inside the level, xp the level spans)."""
    xp_i = max(0, int(xp))
    level = level_for_xp(xp_i)
    floor_xp = xp_for_level(level)
    span = xp_for_level(level + 1) - floor_xp
    return level, xp_i - floor_xp, span
