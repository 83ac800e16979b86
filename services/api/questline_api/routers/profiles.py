from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from questline_api.db import atomic
from questline_api.deps import CurrentUserId, DBSession
from questline_api.errors import ConflictError, NotFoundError
from questline_api.eventlog import events_for_user
from questline_api.ledger import list_user_badges, list_user_titles
from questline_api.leveling import level_progress
from questline_api.models import Profile


class ProfileCreateIn(BaseModel):
    username: str = Field(min_length=3, max_length=32, pattern=r"^[A-Za-z0-9_.]+$")
    avatar_url: str | None = Field(default=None, max_length=2000)
    bio: str | None = Field(default=None, max_length=500)


class OwnedItemOut(BaseModel):
    id: str
    title: str
    rarity: str
    is_equipped: bool
    earned_at: datetime


class ProfileOut(BaseModel):
    user_id: str
    username: str
    avatar_url: str | None = None
    bio: str | None = None
    xp: int
    level: int
    xp_into_level: int
    xp_level_span: int
    badges: list[OwnedItemOut] = Field(default_factory=list)
    titles: list[OwnedItemOut] = Field(default_factory=list)


class ActivityOut(BaseModel):
    items: list[dict[str, Any]]


router = APIRouter(prefix="/api/profile", tags=["profile"])


def _profile_out(db: Session, p: Profile) -> ProfileOut:
    level, into, span = level_progress(int(p.xp or 0))
    badges = [
        OwnedItemOut(
            id=str(b.id),
            title=str(b.title),
            rarity=str(b.rarity or "common"),
            is_equipped=bool(ub.is_equipped),
            earned_at=ub.earned_at,
        )
        for ub, b in list_user_badges(db, user_id=str(p.user_id))
    ]
    titles = [
        OwnedItemOut(
            id=str(t.id),
            title=str(t.title),
            rarity=str(t.rarity or "common"),
            is_equipped=bool(ut.is_equipped),
            earned_at=ut.earned_at,
        )
        for ut, t in list_user_titles(db, user_id=str(p.user_id))
    ]
    return ProfileOut(
        user_id=str(p.user_id),
        username=str(p.username),
        avatar_url=p.avatar_url,
        bio=p.bio,
        xp=int(p.xp or 0),
        level=int(p.level or level),
        xp_into_level=into,
        xp_level_span=span,
        badges=badges,
        titles=titles,
    )


@router.post("", response_model=ProfileOut)
def create_profile(
    payload: ProfileCreateIn,
    user_id: str = CurrentUserId,
    db: Session = DBSession,
) -> ProfileOut:
    now = datetime.now(UTC)
    try:
        with atomic(db):
            if db.get(Profile, user_id) is not None:
                raise ConflictError("profile_exists")
            taken = db.scalars(
                select(Profile.user_id).where(Profile.username == payload.username).limit(1)
            ).first()
            if taken is not None:
                raise ConflictError("username_taken")

            p = Profile(
                user_id=user_id,
                username=payload.username,
                avatar_url=payload.avatar_url,
                bio=payload.bio,
                xp=0,
                level=1,
                created_at=now,
                updated_at=now,
            )
            db.add(p)
    except IntegrityError as exc:
        raise ConflictError("profile_exists") from exc
    return _profile_out(db, p)


@router.get("/me", response_model=ProfileOut)
def me(
    user_id: str = CurrentUserId,
    db: Session = DBSession,
) -> ProfileOut:
    p = db.get(Profile, user_id)
    if p is None:
        raise NotFoundError("profile_not_found")
    return _profile_out(db, p)


@router.get("/me/activity", response_model=ActivityOut)
def my_activity(
    type: str | None = Query(default=None, max_length=40),
    limit: int = Query(default=30, ge=1, le=200),
    user_id: str = CurrentUserId,
    db: Session = DBSession,
) -> ActivityOut:
    return ActivityOut(items=events_for_user(db, user_id=user_id, type=type, limit=limit))
