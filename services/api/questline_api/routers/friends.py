from __future__ import annotations

from datetime import UTC, datetime
from typing import Literal
from uuid import uuid4

from fastapi import APIRouter, Request
from pydantic import BaseModel
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from questline_api.db import atomic
from questline_api.deps import CurrentUserId, DBSession
from questline_api.errors import ConflictError, NotFoundError, ValidationError
from questline_api.eventlog import log_event
from questline_api.models import Friendship, Profile, friendship_pair_key


FriendshipStatus = Literal["pending", "accepted", "blocked"]


class FriendshipOut(BaseModel):
    id: str
    user_id: str
    friend_id: str
    status: FriendshipStatus
    created_at: datetime


class FriendsOut(BaseModel):
    accepted: list[FriendshipOut]
    incoming: list[FriendshipOut]
    outgoing: list[FriendshipOut]


router = APIRouter(prefix="/api/friends", tags=["friends"])


def _pair(db: Session, *, a: str, b: str) -> Friendship | None:
    return db.scalars(
        select(Friendship).where(Friendship.pair_key == friendship_pair_key(a, b)).limit(1)
    ).first()


def _out(f: Friendship) -> FriendshipOut:
    return FriendshipOut(
        id=str(f.id),
        user_id=str(f.user_id),
        friend_id=str(f.friend_id),
        status=str(f.status),  # type: ignore[arg-type]
        created_at=f.created_at,
    )


def _require_target(db: Session, *, viewer_user_id: str, user_id: str) -> None:
    if viewer_user_id == user_id:
        raise ValidationError("cannot_friend_self")
    if db.get(Profile, user_id) is None:
        raise NotFoundError("user_not_found")


def _log(db: Session, request: Request, *, type: str, viewer: str, other: str) -> None:
    log_event(db, type=type, user_id=viewer, request=request, payload={"friend_id": other})


@router.get("", response_model=FriendsOut)
def list_friends(
    viewer_user_id: str = CurrentUserId,
    db: Session = DBSession,
) -> FriendsOut:
    rows = db.scalars(
        select(Friendship)
        .where(
            or_(
                Friendship.user_id == viewer_user_id,
                Friendship.friend_id == viewer_user_id,
            )
        )
        .order_by(Friendship.created_at.desc(), Friendship.id.asc())
    ).all()
    accepted = [_out(f) for f in rows if f.status == "accepted"]
    incoming = [
        _out(f) for f in rows if f.status == "pending" and f.friend_id == viewer_user_id
    ]
    outgoing = [
        _out(f) for f in rows if f.status == "pending" and f.user_id == viewer_user_id
    ]
    return FriendsOut(accepted=accepted, incoming=incoming, outgoing=outgoing)


@router.post("/{user_id}/request", response_model=FriendshipOut)
def request_friend(
    request: Request,
    user_id: str,
    viewer_user_id: str = CurrentUserId,
    db: Session = DBSession,
) -> FriendshipOut:
    try:
        with atomic(db):
            _require_target(db, viewer_user_id=viewer_user_id, user_id=user_id)
            f = _pair(db, a=viewer_user_id, b=user_id)
            if f is None:
                f = Friendship(
                    id=f"fr_{uuid4().hex}",
                    user_id=viewer_user_id,
                    friend_id=user_id,
                    pair_key=friendship_pair_key(viewer_user_id, user_id),
                    status="pending",
                    created_at=datetime.now(UTC),
                )
                db.add(f)
                _log(db, request, type="friend_requested", viewer=viewer_user_id, other=user_id)
                db.flush()
            elif f.status == "blocked":
                raise ConflictError("friendship_blocked")
            elif f.status == "pending" and f.friend_id == viewer_user_id:
                # A request crossing an incoming one accepts it.
                f.status = "accepted"
                _log(db, request, type="friend_accepted", viewer=viewer_user_id, other=user_id)
            out = _out(f)
    except IntegrityError as exc:
        raise ConflictError("friendship_exists") from exc
    return out


@router.post("/{user_id}/accept", response_model=FriendshipOut)
def accept_friend(
    request: Request,
    user_id: str,
    viewer_user_id: str = CurrentUserId,
    db: Session = DBSession,
) -> FriendshipOut:
    with atomic(db):
        _require_target(db, viewer_user_id=viewer_user_id, user_id=user_id)
        f = _pair(db, a=viewer_user_id, b=user_id)
        if f is None or f.status == "blocked":
            raise NotFoundError("friend_request_not_found")
        if f.status == "pending":
            if f.user_id != user_id:
                raise NotFoundError("friend_request_not_found")
            f.status = "accepted"
            _log(db, request, type="friend_accepted", viewer=viewer_user_id, other=user_id)
        out = _out(f)
    return out


@router.post("/{user_id}/block", response_model=FriendshipOut)
def block_user(
    request: Request,
    user_id: str,
    viewer_user_id: str = CurrentUserId,
    db: Session = DBSession,
) -> FriendshipOut:
    with atomic(db):
        _require_target(db, viewer_user_id=viewer_user_id, user_id=user_id)
        f = _pair(db, a=viewer_user_id, b=user_id)
        if f is None:
            f = Friendship(
                id=f"fr_{uuid4().hex}",
                user_id=viewer_user_id,
                friend_id=user_id,
                pair_key=friendship_pair_key(viewer_user_id, user_id),
                status="blocked",
                created_at=datetime.now(UTC),
            )
            db.add(f)
        else:
            f.status = "blocked"
        _log(db, request, type="friend_blocked", viewer=viewer_user_id, other=user_id)
        db.flush()
        out = _out(f)
    return out
