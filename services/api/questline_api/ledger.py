from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from questline_api.errors import NotFoundError
from questline_api.models import Badge, Title, UserBadge, UserTitle


def _insert_once(session: Session, row: UserBadge | UserTitle) -> bool:
    # A concurrent grant for the same pair may win the insert; the unique key
    # turns that into a no-op rather than an error.
    try:
        with session.begin_nested():
            session.add(row)
            session.flush()
    except IntegrityError:
        return False
    return True


def grant_badge(
    session: Session,
    *,
    user_id: str,
    badge_id: str,
    now: datetime | None = None,
    source: str = "",
) -> bool:
    """Returns True when a new grant was written, False if it already existed."""
    now_dt = now or datetime.now(UTC)
    if session.get(Badge, str(badge_id)) is None:
        raise NotFoundError("badge_not_found", f"unknown badge {badge_id!r}")
    existing = session.get(UserBadge, {"user_id": str(user_id), "badge_id": str(badge_id)})
    if existing is not None:
        return False
    return _insert_once(
        session,
        UserBadge(
            user_id=str(user_id),
            badge_id=str(badge_id),
            is_equipped=False,
            earned_at=now_dt,
            source=str(source)[:120],
        ),
    )


def grant_title(
    session: Session,
    *,
    user_id: str,
    title_id: str,
    now: datetime | None = None,
    source: str = "",
) -> bool:
    """Returns True when a new grant was written, False if it already existed."""
    now_dt = now or datetime.now(UTC)
    if session.get(Title, str(title_id)) is None:
        raise NotFoundError("title_not_found", f"unknown title {title_id!r}")
    existing = session.get(UserTitle, {"user_id": str(user_id), "title_id": str(title_id)})
    if existing is not None:
        return False
    return _insert_once(
        session,
        UserTitle(
            user_id=str(user_id),
            title_id=str(title_id),
            is_equipped=False,
            earned_at=now_dt,
            source=str(source)[:120],
        ),
    )


def list_user_badges(session: Session, *, user_id: str) -> list[tuple[UserBadge, Badge]]:
    rows = session.execute(
        select(UserBadge, Badge)
        .join(Badge, Badge.id == UserBadge.badge_id)
        .where(UserBadge.user_id == str(user_id))
        .order_by(UserBadge.earned_at.asc(), UserBadge.badge_id.asc())
    ).all()
    return [(ub, b) for ub, b in rows]


def list_user_titles(session: Session, *, user_id: str) -> list[tuple[UserTitle, Title]]:
    rows = session.execute(
        select(UserTitle, Title)
        .join(Title, Title.id == UserTitle.title_id)
        .where(UserTitle.user_id == str(user_id))
        .order_by(UserTitle.earned_at.asc(), UserTitle.title_id.asc())
    ).all()
    return [(ut, t) for ut, t in rows]
