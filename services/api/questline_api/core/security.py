from __future__ import annotations

from datetime import UTC, datetime, timedelta

import jwt

from questline_api.core.config import Settings


ALGORITHM = "HS256"


def issue_token(*, user_id: str, settings: Settings | None = None) -> str:
    """Bearer token for `user_id`, signed with the shared secret. Seeding and tests use it."""
    settings = settings or Settings()
    issued = datetime.now(UTC)
    expires = issued + timedelta(minutes=int(settings.auth_jwt_exp_minutes))
    claims = {
        "iss": settings.auth_jwt_issuer,
        "sub": str(user_id),
        "iat": issued,
        "exp": expires,
    }
    return jwt.encode(claims, settings.auth_jwt_secret, algorithm=ALGORITHM)


def subject_from_token(token: str, *, settings: Settings | None = None) -> str:
    settings = settings or Settings()
    claims = jwt.decode(
        token,
        settings.auth_jwt_secret,
        algorithms=[ALGORITHM],
        issuer=settings.auth_jwt_issuer,
        options={"require": ["sub", "exp"]},
    )
    subject = str(claims.get("sub") or "").strip()
    if not subject:
        raise jwt.InvalidTokenError("empty subject")
    return subject
