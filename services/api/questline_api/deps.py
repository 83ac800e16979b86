from __future__ import annotations

import jwt
from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from questline_api.core.config import Settings
from questline_api.core.security import subject_from_token
from questline_api.db import SessionLocal


def get_db() -> Session:
    with SessionLocal() as session:
        yield session


def get_current_user_id(authorization: str | None = Header(default=None)) -> str:
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing Authorization header")
    if not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Invalid Authorization header")
    token = authorization.split(" ", 1)[1].strip()
    try:
        return subject_from_token(token)
    except jwt.InvalidTokenError as e:
        raise HTTPException(status_code=401, detail="Invalid token") from e


def require_admin(x_admin_token: str | None = Header(default=None)) -> None:
    settings = Settings()
    expected = str(settings.admin_token or "").strip()
    if not expected:
        raise HTTPException(status_code=401, detail="admin_disabled")
    if str(x_admin_token or "").strip() != expected:
        raise HTTPException(status_code=401, detail="unauthorized")


CurrentUserId = Depends(get_current_user_id)
DBSession = Depends(get_db)
AdminOnly = Depends(require_admin)
