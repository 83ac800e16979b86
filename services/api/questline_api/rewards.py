from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Literal, Union
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from questline_api.errors import ValidationError
from questline_api.models import RewardDefinition


RewardSourceKind = Literal["quest", "achievement"]


@dataclass(frozen=True)
class XpOnly:
    amount: int


@dataclass(frozen=True)
class BadgeReward:
    badge_id: str
    xp_amount: int | None = None


@dataclass(frozen=True)
class TitleReward:
    title_id: str
    xp_amount: int | None = None


Reward = Union[XpOnly, BadgeReward, TitleReward]


def _check_xp(value: int | None) -> int | None:
    if value is None:
        return None
    try:
        amount = int(value)
    except (TypeError, ValueError) as e:
        raise ValidationError("reward_xp_invalid", f"xp amount {value!r}") from e
    if amount < 0:
        raise ValidationError("reward_xp_negative", f"xp amount {amount} < 0")
    return amount


def make_reward(
    *,
    source_kind: RewardSourceKind,
    xp_amount: int | None = None,
    badge_id: str | None = None,
    title_id: str | None = None,
) -> Reward:
    """
    Build a reward variant from loose fields.

    A quest reward may carry XP plus at most one collectible. An achievement
    reward is exactly one of XP, badge or title.
    """
    if source_kind not in ("quest", "achievement"):
        raise ValidationError("reward_source_invalid", f"source kind {source_kind!r}")
    xp = _check_xp(xp_amount)
    badge = str(badge_id).strip() if badge_id else None
    title = str(title_id).strip() if title_id else None

    if badge and title:
        raise ValidationError("reward_badge_and_title", "a reward grants a badge or a title, not both")
    if source_kind == "achievement":
        set_count = sum(1 for v in (xp, badge, title) if v is not None)
        if set_count != 1:
            raise ValidationError(
                "reward_achievement_single",
                "an achievement reward sets exactly one of xp, badge, title",
            )
    if badge:
        return BadgeReward(badge_id=badge, xp_amount=xp)
    if title:
        return TitleReward(title_id=title, xp_amount=xp)
    if xp is None:
        raise ValidationError("reward_empty", "a reward must grant something")
    return XpOnly(amount=xp)


def definition_from_row(row: RewardDefinition) -> Reward:
    return make_reward(
        source_kind=row.source_kind,  # type: ignore[arg-type]
        xp_amount=row.xp_amount,
        badge_id=row.badge_id,
        title_id=row.title_id,
    )


def reward_xp(reward: Reward) -> int:
    if isinstance(reward, XpOnly):
        return int(reward.amount)
    return int(reward.xp_amount or 0)


def load_definitions(
    session: Session, *, source_kind: RewardSourceKind, source_id: str
) -> list[Reward]:
    rows = session.scalars(
        select(RewardDefinition)
        .where(RewardDefinition.source_kind == str(source_kind))
        .where(RewardDefinition.source_id == str(source_id))
        .order_by(RewardDefinition.created_at.asc(), RewardDefinition.id.asc())
    ).all()
    return [definition_from_row(r) for r in rows]


def add_definition(
    session: Session,
    *,
    source_kind: RewardSourceKind,
    source_id: str,
    reward: Reward,
    now: datetime | None = None,
) -> RewardDefinition:
    now_dt = now or datetime.now(UTC)
    row = RewardDefinition(
        id=f"rd_{uuid4().hex}",
        source_kind=str(source_kind),
        source_id=str(source_id),
        xp_amount=None,
        badge_id=None,
        title_id=None,
        created_at=now_dt,
    )
    if isinstance(reward, XpOnly):
        row.xp_amount = int(reward.amount)
    elif isinstance(reward, BadgeReward):
        row.badge_id = reward.badge_id
        row.xp_amount = reward.xp_amount
    else:
        row.title_id = reward.title_id
        row.xp_amount = reward.xp_amount
    # Re-validate against the source's rules (e.g. achievement rows are single-valued).
    definition_from_row(row)
    session.add(row)
    return row
