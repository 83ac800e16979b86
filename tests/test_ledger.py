from __future__ import annotations

import pytest
from sqlalchemy import func, select


def test_grant_badge_twice_yields_one_grant(make_profile) -> None:
    from questline_api.db import SessionLocal
    from questline_api.ledger import grant_badge
    from questline_api.models import UserBadge

    user_id = make_profile()
    with SessionLocal() as session:
        assert grant_badge(session, user_id=user_id, badge_id="badge_test_explorer") is True
        session.commit()
        assert grant_badge(session, user_id=user_id, badge_id="badge_test_explorer") is False
        session.commit()

        count = session.scalar(
            select(func.count()).select_from(UserBadge).where(UserBadge.user_id == user_id)
        )
        assert int(count or 0) == 1


def test_grant_title_is_idempotent_and_listed(make_profile) -> None:
    from questline_api.db import SessionLocal
    from questline_api.ledger import grant_title, list_user_titles

    user_id = make_profile()
    with SessionLocal() as session:
        assert grant_title(session, user_id=user_id, title_id="title_test_pathfinder", source="test")
        assert not grant_title(session, user_id=user_id, title_id="title_test_pathfinder")
        session.commit()

        owned = list_user_titles(session, user_id=user_id)
        assert [t.id for _, t in owned] == ["title_test_pathfinder"]
        assert owned[0][0].source == "test"


def test_unknown_badge_is_not_found(make_profile) -> None:
    from questline_api.db import SessionLocal
    from questline_api.errors import NotFoundError
    from questline_api.ledger import grant_badge

    user_id = make_profile()
    with SessionLocal() as session:
        with pytest.raises(NotFoundError):
            grant_badge(session, user_id=user_id, badge_id="badge_missing")
        session.rollback()
