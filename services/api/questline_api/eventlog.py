from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

import orjson
from fastapi import Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from questline_api.models import Event


def device_id_from_request(request: Request | None) -> str | None:
    if request is None:
        return None
    value = str(request.headers.get("x-device-id") or "").strip()
    return value[:80] if value else None


def request_id_from_request(request: Request | None) -> str | None:
    if request is None:
        return None
    value = getattr(getattr(request, "state", None), "request_id", None)
    return str(value)[:80] if value else None


def log_event(
    session: Session,
    *,
    type: str,
    user_id: str | None,
    request: Request | None = None,
    payload: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> Event:
    """
    Append a domain event to the session. Nothing is flushed here: the event
    commits or rolls back together with the state change it describes.
    """
    now_dt = now or datetime.now(UTC)
    p: dict[str, Any] = dict(payload or {})

    p.setdefault("v", 1)
    p.setdefault("user_id", user_id)

    dev = device_id_from_request(request)
    if dev:
        p.setdefault("device_id", dev)
    req_id = request_id_from_request(request)
    if req_id:
        p.setdefault("request_id", req_id)
    if request is not None:
        try:
            p.setdefault("path", str(request.url.path))
        except Exception:  # noqa: BLE001
            pass

    ev = Event(
        id=f"ev_{uuid4().hex}",
        user_id=user_id,
        type=str(type),
        payload_json=orjson.dumps(p).decode("utf-8"),
        created_at=now_dt,
    )
    session.add(ev)
    return ev


def events_for_user(
    session: Session, *, user_id: str, type: str | None = None, limit: int = 50
) -> list[dict[str, Any]]:
    q = select(Event).where(Event.user_id == str(user_id))
    if type:
        q = q.where(Event.type == str(type))
    rows = session.scalars(
        q.order_by(Event.created_at.desc(), Event.id.desc()).limit(
            max(1, min(200, int(limit)))
        )
    ).all()
    out: list[dict[str, Any]] = []
    for ev in rows:
        try:
            payload = orjson.loads((ev.payload_json or "{}").encode("utf-8"))
        except Exception:  # noqa: BLE001
            payload = {}
        out.append(
            {
                "id": str(ev.id),
                "type": str(ev.type),
                "payload": payload if isinstance(payload, dict) else {},
                "created_at": ev.created_at,
            }
        )
    return out
