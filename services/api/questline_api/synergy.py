from __future__ import annotations

from datetime import UTC, datetime, timedelta

from sqlalchemy import and_, exists, or_, select
from sqlalchemy.orm import Session

from questline_api.core.config import Settings
from questline_api.models import Friendship, UserQuest


def _as_aware_utc(dt: datetime) -> datetime:
    if getattr(dt, "tzinfo", None) is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def has_synergy_bonus(
    session: Session,
    *,
    user_id: str,
    quest_id: str,
    completed_at: datetime,
    window_sec: int | None = None,
) -> bool:
    """
    True when an accepted friend completed the same quest within the window
    (inclusive) of completed_at. Read-only; runs on the caller's session so it
    sees the same snapshot as the completion it supports.
    """
    window = int(window_sec if window_sec is not None else Settings().synergy_window_sec)
    at = _as_aware_utc(completed_at)
    lo = at - timedelta(seconds=window)
    hi = at + timedelta(seconds=window)

    uid = str(user_id)
    befriended = and_(
        Friendship.status == "accepted",
        or_(
            and_(Friendship.user_id == uid, Friendship.friend_id == UserQuest.user_id),
            and_(Friendship.friend_id == uid, Friendship.user_id == UserQuest.user_id),
        ),
    )
    stmt = select(
        exists()
        .where(UserQuest.quest_id == str(quest_id))
        .where(UserQuest.user_id != uid)
        .where(UserQuest.is_completed.is_(True))
        .where(UserQuest.completed_at.is_not(None))
        .where(UserQuest.completed_at >= lo)
        .where(UserQuest.completed_at <= hi)
        .where(exists().where(befriended))
    )
    return bool(session.execute(stmt).scalar())


def synergy_adjusted_xp(base_xp: int, *, bonus_pct: int | None = None) -> int:
    pct = int(bonus_pct if bonus_pct is not None else Settings().synergy_bonus_pct)
    # Integer arithmetic keeps truncation exact (100 -> 110, 99 -> 108).
    return (max(0, int(base_xp)) * (100 + pct)) // 100
