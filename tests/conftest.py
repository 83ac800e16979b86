from __future__ import annotations

import os
import tempfile
from datetime import UTC, datetime
from pathlib import Path
from uuid import uuid4

import pytest


_TEST_ROOT = Path(tempfile.mkdtemp(prefix="questline_test_"))
_DB_PATH = _TEST_ROOT / "questline_test.db"

os.environ["QUESTLINE_DB_URL"] = f"sqlite:///{_DB_PATH}"
os.environ["QUESTLINE_AUTH_JWT_SECRET"] = "test-secret"
os.environ["QUESTLINE_ADMIN_TOKEN"] = "test-admin"
os.environ["QUESTLINE_SQLITE_BUSY_TIMEOUT_SEC"] = "5"


@pytest.fixture(scope="session")
def seeded_db() -> None:
    from questline_api.db import Base, SessionLocal, engine
    from questline_api.models import Badge, Title

    Base.metadata.create_all(engine)
    now = datetime.now(UTC)

    with SessionLocal() as session:
        if session.get(Badge, "badge_test_explorer") is not None:
            return
        session.add(
            Badge(
                id="badge_test_explorer",
                title="Explorer",
                description="",
                rarity="uncommon",
                created_at=now,
            )
        )
        session.add(
            Title(
                id="title_test_pathfinder",
                title="the Pathfinder",
                description="",
                rarity="rare",
                created_at=now,
            )
        )
        session.commit()


@pytest.fixture()
def make_profile(seeded_db):
    from questline_api.db import SessionLocal
    from questline_api.models import Profile

    def _make(*, xp: int = 0) -> str:
        user_id = f"user_{uuid4().hex[:12]}"
        now = datetime.now(UTC)
        with SessionLocal() as session:
            session.add(
                Profile(
                    user_id=user_id,
                    username=user_id,
                    xp=xp,
                    level=1,
                    created_at=now,
                    updated_at=now,
                )
            )
            session.commit()
        return user_id

    return _make


@pytest.fixture()
def make_quest(seeded_db):
    """Returns a factory: (quest_id, [step ids in order])."""
    from questline_api.db import SessionLocal
    from questline_api.models import Quest, QuestStep
    from questline_api.rewards import add_definition

    def _make(
        *,
        base_xp: int = 100,
        steps: list[tuple[bool, int]] | None = None,
        rewards: list | None = None,
    ) -> tuple[str, list[str]]:
        quest_id = f"q_{uuid4().hex[:12]}"
        now = datetime.now(UTC)
        step_specs = steps if steps is not None else [(False, 25)]
        step_ids: list[str] = []
        with SessionLocal() as session:
            session.add(
                Quest(
                    id=quest_id,
                    title=f"Quest {quest_id}",
                    short_description="",
                    long_description="",
                    is_daily=False,
                    is_geofenced=any(c for c, _ in step_specs),
                    base_xp_reward=base_xp,
                    created_at=now,
                    updated_at=now,
                )
            )
            session.flush()
            for i, (requires_check_in, step_xp) in enumerate(step_specs, start=1):
                sid = f"{quest_id}_s{i}"
                session.add(
                    QuestStep(
                        id=sid,
                        quest_id=quest_id,
                        step_number=i,
                        description=f"step {i}",
                        requires_check_in=requires_check_in,
                        step_xp_reward=step_xp,
                        created_at=now,
                    )
                )
                step_ids.append(sid)
            for reward in rewards or []:
                add_definition(
                    session, source_kind="quest", source_id=quest_id, reward=reward, now=now
                )
            session.commit()
        return quest_id, step_ids

    return _make


@pytest.fixture()
def make_friends(seeded_db):
    from questline_api.db import SessionLocal
    from questline_api.models import Friendship, friendship_pair_key

    def _make(a: str, b: str, *, status: str = "accepted") -> None:
        with SessionLocal() as session:
            session.add(
                Friendship(
                    id=f"fr_{uuid4().hex}",
                    user_id=a,
                    friend_id=b,
                    pair_key=friendship_pair_key(a, b),
                    status=status,
                    created_at=datetime.now(UTC),
                )
            )
            session.commit()

    return _make


@pytest.fixture()
def api_client(seeded_db):
    from fastapi.testclient import TestClient

    from questline_api.main import app

    return TestClient(app)


@pytest.fixture()
def auth_headers():
    from questline_api.core.security import issue_token

    def _headers(user_id: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {issue_token(user_id=user_id)}"}

    return _headers
