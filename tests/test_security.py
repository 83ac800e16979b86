from __future__ import annotations

import jwt
import pytest


def test_issued_token_names_its_user() -> None:
    from questline_api.core.security import issue_token, subject_from_token

    token = issue_token(user_id="user_trailblazer")
    assert subject_from_token(token) == "user_trailblazer"


def test_token_from_another_issuer_is_refused() -> None:
    from questline_api.core.config import Settings
    from questline_api.core.security import issue_token, subject_from_token

    token = issue_token(
        user_id="user_trailblazer", settings=Settings(auth_jwt_issuer="elsewhere")
    )
    with pytest.raises(jwt.InvalidIssuerError):
        subject_from_token(token)


def test_token_without_subject_is_refused() -> None:
    from questline_api.core.config import Settings
    from questline_api.core.security import subject_from_token

    settings = Settings()
    token = jwt.encode(
        {"iss": settings.auth_jwt_issuer, "exp": 4102444800},
        settings.auth_jwt_secret,
        algorithm="HS256",
    )
    with pytest.raises(jwt.InvalidTokenError):
        subject_from_token(token)


def test_bad_bearer_token_is_unauthorized(api_client) -> None:
    resp = api_client.get("/api/profile/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Invalid token"
    assert resp.headers.get("X-Request-Id")
