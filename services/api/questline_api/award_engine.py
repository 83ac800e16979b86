from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Literal

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from questline_api.db import atomic
from questline_api.errors import NotFoundError, StoreBusyError
from questline_api.eventlog import log_event
from questline_api.ledger import grant_badge, grant_title
from questline_api.leveling import level_for_xp
from questline_api.metrics import inc_counter
from questline_api.models import (
    Achievement,
    Profile,
    Quest,
    QuestStep,
    UserAchievement,
)
from questline_api.rewards import (
    BadgeReward,
    Reward,
    TitleReward,
    XpOnly,
    load_definitions,
    reward_xp,
)
from questline_api.synergy import has_synergy_bonus, synergy_adjusted_xp


SourceKind = Literal["StepCompletion", "QuestCompletion", "AchievementUnlock"]


@dataclass(frozen=True)
class RewardSummary:
    source_kind: SourceKind
    source_id: str
    xp_awarded: int
    xp_total: int
    level: int
    level_up: bool
    synergy_applied: bool = False
    badges_granted: list[str] = field(default_factory=list)
    titles_granted: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class XpDelta:
    xp_total: int
    level: int
    level_before: int


def apply_xp_delta(
    session: Session, *, user_id: str, delta: int, now: datetime
) -> XpDelta:
    """
    The only write path for Profile.xp/level. The increment happens in the store
    (no read-then-write), and the level is recomputed from the returned total
    inside the same transaction.
    """
    uid = str(user_id)
    if int(delta) < 0:
        raise ValueError("xp delta must not be negative")

    if int(delta) == 0:
        xp_now = session.execute(
            select(Profile.xp).where(Profile.user_id == uid)
        ).scalar_one_or_none()
        if xp_now is None:
            raise NotFoundError("profile_not_found", f"no profile for {uid!r}")
        level = level_for_xp(int(xp_now))
        return XpDelta(xp_total=int(xp_now), level=level, level_before=level)

    xp_total = session.execute(
        update(Profile)
        .where(Profile.user_id == uid)
        .values(xp=Profile.xp + int(delta), updated_at=now)
        .returning(Profile.xp)
    ).scalar_one_or_none()
    if xp_total is None:
        raise NotFoundError("profile_not_found", f"no profile for {uid!r}")

    level = level_for_xp(int(xp_total))
    session.execute(
        update(Profile).where(Profile.user_id == uid).values(level=level)
    )
    return XpDelta(
        xp_total=int(xp_total),
        level=level,
        level_before=level_for_xp(int(xp_total) - int(delta)),
    )


def _definitions_for(
    session: Session, *, source_kind: SourceKind, source_id: str
) -> tuple[list[Reward], Quest | None]:
    """Returns the reward list and, for quest completions, the quest whose base XP is boostable."""
    if source_kind == "StepCompletion":
        step = session.get(QuestStep, str(source_id))
        if step is None:
            raise NotFoundError("step_not_found", f"unknown step {source_id!r}")
        return [XpOnly(amount=int(step.step_xp_reward or 0))], None

    if source_kind == "QuestCompletion":
        quest = session.get(Quest, str(source_id))
        if quest is None:
            raise NotFoundError("quest_not_found", f"unknown quest {source_id!r}")
        defs = load_definitions(session, source_kind="quest", source_id=str(quest.id))
        return defs, quest

    if session.get(Achievement, str(source_id)) is None:
        raise NotFoundError("achievement_not_found", f"unknown achievement {source_id!r}")
    return load_definitions(session, source_kind="achievement", source_id=str(source_id)), None


def apply_rewards(
    session: Session,
    *,
    user_id: str,
    source_id: str,
    source_kind: SourceKind,
    now: datetime | None = None,
) -> RewardSummary:
    """
    Grant every reward attached to one source inside a SAVEPOINT: badges, titles,
    then a single XP delta with level recomputation. A failure anywhere rolls the
    SAVEPOINT back, so no partial grant survives. The caller owns the outer
    transaction.
    """
    now_dt = now or datetime.now(UTC)
    uid = str(user_id)
    source = f"{source_kind}:{source_id}"

    with session.begin_nested():
        rewards, quest = _definitions_for(
            session, source_kind=source_kind, source_id=source_id
        )

        badges_granted: list[str] = []
        titles_granted: list[str] = []
        xp_delta = 0
        for reward in rewards:
            if isinstance(reward, BadgeReward):
                if grant_badge(
                    session, user_id=uid, badge_id=reward.badge_id, now=now_dt, source=source
                ):
                    badges_granted.append(reward.badge_id)
            elif isinstance(reward, TitleReward):
                if grant_title(
                    session, user_id=uid, title_id=reward.title_id, now=now_dt, source=source
                ):
                    titles_granted.append(reward.title_id)
            xp_delta += reward_xp(reward)

        synergy = False
        if quest is not None:
            base_xp = int(quest.base_xp_reward or 0)
            synergy = has_synergy_bonus(
                session, user_id=uid, quest_id=str(quest.id), completed_at=now_dt
            )
            xp_delta += synergy_adjusted_xp(base_xp) if synergy else base_xp

        applied = apply_xp_delta(session, user_id=uid, delta=xp_delta, now=now_dt)

        summary = RewardSummary(
            source_kind=source_kind,
            source_id=str(source_id),
            xp_awarded=int(xp_delta),
            xp_total=applied.xp_total,
            level=applied.level,
            level_up=applied.level > applied.level_before,
            synergy_applied=synergy,
            badges_granted=badges_granted,
            titles_granted=titles_granted,
        )

        log_event(
            session,
            type="reward_applied",
            user_id=uid,
            payload={
                "source_kind": source_kind,
                "source_id": str(source_id),
                "xp_awarded": summary.xp_awarded,
                "xp_total": summary.xp_total,
                "synergy_applied": synergy,
            },
            now=now_dt,
        )
        if summary.level_up:
            log_event(
                session,
                type="level_up",
                user_id=uid,
                payload={"level": summary.level, "xp_total": summary.xp_total, "source": source},
                now=now_dt,
            )
        for bid in badges_granted:
            log_event(
                session,
                type="badge_granted",
                user_id=uid,
                payload={"badge_id": bid, "source": source},
                now=now_dt,
            )
        for tid in titles_granted:
            log_event(
                session,
                type="title_granted",
                user_id=uid,
                payload={"title_id": tid, "source": source},
                now=now_dt,
            )
        session.flush()

    inc_counter("questline_rewards_applied_total", source_kind=source_kind)
    if synergy:
        inc_counter("questline_synergy_bonus_total")
    return summary


def unlock_achievement(
    session: Session,
    *,
    user_id: str,
    achievement_id: str,
    now: datetime | None = None,
) -> RewardSummary | None:
    """
    Exactly-once: the first unlock applies the achievement's reward and commits;
    any later call returns None without touching rewards.
    """
    now_dt = now or datetime.now(UTC)
    uid = str(user_id)
    aid = str(achievement_id)

    try:
        with atomic(session):
            if session.get(Profile, uid) is None:
                raise NotFoundError("profile_not_found", f"no profile for {uid!r}")
            if session.get(Achievement, aid) is None:
                raise NotFoundError("achievement_not_found", f"unknown achievement {aid!r}")
            if session.get(UserAchievement, {"user_id": uid, "achievement_id": aid}) is not None:
                return None
            try:
                with session.begin_nested():
                    session.add(
                        UserAchievement(user_id=uid, achievement_id=aid, awarded_at=now_dt)
                    )
                    session.flush()
            except IntegrityError:
                return None

            summary = apply_rewards(
                session,
                user_id=uid,
                source_id=aid,
                source_kind="AchievementUnlock",
                now=now_dt,
            )
            log_event(
                session,
                type="achievement_unlocked",
                user_id=uid,
                payload={"achievement_id": aid, "xp_awarded": summary.xp_awarded},
                now=now_dt,
            )
    except OperationalError as exc:
        session.rollback()
        raise StoreBusyError("store_busy", str(exc.orig)[:200]) from exc
    return summary
