from __future__ import annotations

from datetime import UTC, datetime
from typing import Literal
from uuid import uuid4

from fastapi import APIRouter
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from questline_api.award_engine import unlock_achievement
from questline_api.db import atomic
from questline_api.deps import AdminOnly, DBSession
from questline_api.errors import ConflictError, NotFoundError
from questline_api.models import Achievement, Badge, Title
from questline_api.rewards import BadgeReward, TitleReward, add_definition, make_reward


Rarity = Literal["common", "uncommon", "rare", "epic", "legendary"]


class BadgeIn(BaseModel):
    id: str | None = Field(default=None, max_length=120)
    title: str = Field(min_length=1, max_length=120)
    description: str = Field(default="", max_length=400)
    image_url: str | None = Field(default=None, max_length=2000)
    rarity: Rarity = "common"


class TitleIn(BaseModel):
    id: str | None = Field(default=None, max_length=120)
    title: str = Field(min_length=1, max_length=120)
    description: str = Field(default="", max_length=400)
    rarity: Rarity = "common"


class CatalogItemOut(BaseModel):
    id: str
    title: str
    rarity: Rarity


class AchievementIn(BaseModel):
    id: str | None = Field(default=None, max_length=120)
    name: str = Field(min_length=1, max_length=120)
    description: str = Field(default="", max_length=400)
    xp_amount: int | None = Field(default=None, ge=0, le=100_000)
    badge_id: str | None = Field(default=None, max_length=120)
    title_id: str | None = Field(default=None, max_length=120)


class AchievementOut(BaseModel):
    id: str
    name: str
    reward_id: str


class UnlockIn(BaseModel):
    user_id: str = Field(min_length=1, max_length=120)


class UnlockOut(BaseModel):
    ok: bool = True
    unlocked: bool
    xp_awarded: int = 0
    xp_total: int | None = None
    level: int | None = None
    badges_granted: list[str] = Field(default_factory=list)
    titles_granted: list[str] = Field(default_factory=list)


router = APIRouter(prefix="/api/ops", tags=["ops"], dependencies=[AdminOnly])


@router.post("/badges", response_model=CatalogItemOut)
def upsert_badge(payload: BadgeIn, db: Session = DBSession) -> CatalogItemOut:
    now = datetime.now(UTC)
    with atomic(db):
        bid = str(payload.id or f"badge_{uuid4().hex}")
        b = db.get(Badge, bid) or Badge(id=bid, created_at=now)
        b.title = payload.title
        b.description = payload.description
        b.image_url = payload.image_url
        b.rarity = payload.rarity
        db.add(b)
    return CatalogItemOut(id=bid, title=payload.title, rarity=payload.rarity)


@router.post("/titles", response_model=CatalogItemOut)
def upsert_title(payload: TitleIn, db: Session = DBSession) -> CatalogItemOut:
    now = datetime.now(UTC)
    with atomic(db):
        tid = str(payload.id or f"title_{uuid4().hex}")
        t = db.get(Title, tid) or Title(id=tid, created_at=now)
        t.title = payload.title
        t.description = payload.description
        t.rarity = payload.rarity
        db.add(t)
    return CatalogItemOut(id=tid, title=payload.title, rarity=payload.rarity)


@router.post("/achievements", response_model=AchievementOut)
def create_achievement(payload: AchievementIn, db: Session = DBSession) -> AchievementOut:
    now = datetime.now(UTC)
    reward = make_reward(
        source_kind="achievement",
        xp_amount=payload.xp_amount,
        badge_id=payload.badge_id,
        title_id=payload.title_id,
    )
    with atomic(db):
        if isinstance(reward, BadgeReward) and db.get(Badge, reward.badge_id) is None:
            raise NotFoundError("badge_not_found")
        if isinstance(reward, TitleReward) and db.get(Title, reward.title_id) is None:
            raise NotFoundError("title_not_found")
        aid = str(payload.id or f"ach_{uuid4().hex}")
        if db.get(Achievement, aid) is not None:
            raise ConflictError("achievement_exists")
        db.add(
            Achievement(
                id=aid, name=payload.name, description=payload.description, created_at=now
            )
        )
        row = add_definition(
            db, source_kind="achievement", source_id=aid, reward=reward, now=now
        )
        reward_id = str(row.id)
    return AchievementOut(id=aid, name=payload.name, reward_id=reward_id)


@router.post("/achievements/{achievement_id}/unlock", response_model=UnlockOut)
def unlock(achievement_id: str, payload: UnlockIn, db: Session = DBSession) -> UnlockOut:
    summary = unlock_achievement(
        db, user_id=payload.user_id, achievement_id=achievement_id, now=datetime.now(UTC)
    )
    if summary is None:
        return UnlockOut(unlocked=False)
    return UnlockOut(
        unlocked=True,
        xp_awarded=int(summary.xp_awarded),
        xp_total=int(summary.xp_total),
        level=int(summary.level),
        badges_granted=list(summary.badges_granted),
        titles_granted=list(summary.titles_granted),
    )
