from __future__ import annotations

import argparse
from datetime import UTC, datetime

from sqlalchemy import delete, select

from questline_api.db import Base, SessionLocal, engine
from questline_api.models import (
    Achievement,
    Badge,
    Event,
    Friendship,
    Profile,
    Quest,
    QuestStep,
    QuestSubmission,
    RewardDefinition,
    Title,
    UserAchievement,
    UserBadge,
    UserQuest,
    UserTitle,
    friendship_pair_key,
)
from questline_api.rewards import BadgeReward, TitleReward, XpOnly, add_definition


DEMO_PROFILES = [
    ("user_demo", "demo"),
    ("user_alice", "alice"),
    ("user_bob", "bob"),
]

# (badge_id, title, rarity)
SEED_BADGES = [
    ("badge_trailblazer", "Trailblazer", "uncommon"),
    ("badge_night_owl", "Night Owl", "rare"),
]

SEED_TITLES = [
    ("title_wanderer", "the Wanderer", "common"),
]

# (quest_id, title, base_xp, steps[(description, requires_check_in, step_xp)], rewards)
SEED_QUESTS = [
    (
        "q_seed_park_loop",
        "Park Loop",
        100,
        [
            ("Walk to the park entrance", True, 25),
            ("Snap a photo of the fountain", False, 25),
        ],
        [BadgeReward(badge_id="badge_trailblazer", xp_amount=50)],
    ),
    (
        "q_seed_daily_stretch",
        "Daily Stretch",
        40,
        [("Stretch for five minutes", False, 10)],
        [TitleReward(title_id="title_wanderer")],
    ),
]

# (achievement_id, name, reward)
SEED_ACHIEVEMENTS = [
    ("ach_first_steps", "First Steps", XpOnly(amount=75)),
    ("ach_after_dark", "After Dark", BadgeReward(badge_id="badge_night_owl")),
]


def _reset(session) -> None:
    user_ids = [uid for uid, _ in DEMO_PROFILES]
    quest_ids = [qid for qid, *_ in SEED_QUESTS]
    ach_ids = [aid for aid, *_ in SEED_ACHIEVEMENTS]
    session.execute(delete(Event).where(Event.user_id.in_(user_ids)))
    session.execute(delete(QuestSubmission).where(QuestSubmission.user_id.in_(user_ids)))
    session.execute(delete(UserQuest).where(UserQuest.user_id.in_(user_ids)))
    session.execute(delete(UserBadge).where(UserBadge.user_id.in_(user_ids)))
    session.execute(delete(UserTitle).where(UserTitle.user_id.in_(user_ids)))
    session.execute(delete(UserAchievement).where(UserAchievement.user_id.in_(user_ids)))
    session.execute(
        delete(Friendship).where(
            Friendship.user_id.in_(user_ids) | Friendship.friend_id.in_(user_ids)
        )
    )
    session.execute(
        delete(RewardDefinition).where(RewardDefinition.source_id.in_(quest_ids + ach_ids))
    )
    session.execute(delete(QuestStep).where(QuestStep.quest_id.in_(quest_ids)))
    session.execute(delete(Quest).where(Quest.id.in_(quest_ids)))
    session.execute(delete(Achievement).where(Achievement.id.in_(ach_ids)))
    session.execute(delete(Badge).where(Badge.id.in_([b for b, *_ in SEED_BADGES])))
    session.execute(delete(Title).where(Title.id.in_([t for t, *_ in SEED_TITLES])))
    session.execute(delete(Profile).where(Profile.user_id.in_(user_ids)))
    session.commit()


def _ensure_profile(session, *, user_id: str, username: str, now: datetime) -> None:
    if session.get(Profile, user_id) is not None:
        return
    session.add(
        Profile(
            user_id=user_id,
            username=username,
            xp=0,
            level=1,
            created_at=now,
            updated_at=now,
        )
    )


def _ensure_accepted_friends(session, *, a: str, b: str, now: datetime) -> None:
    existing = session.scalars(
        select(Friendship)
        .where(Friendship.pair_key == friendship_pair_key(a, b))
        .limit(1)
    ).first()
    if existing is None:
        session.add(
            Friendship(
                id=f"fr_seed_{a}_{b}",
                user_id=a,
                friend_id=b,
                pair_key=friendship_pair_key(a, b),
                status="accepted",
                created_at=now,
            )
        )


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument(
        "--reset", action="store_true", help="Delete seeded rows and regenerate."
    )
    parser.add_argument(
        "--create-schema",
        action="store_true",
        help="Create tables from the ORM metadata (local SQLite without Alembic).",
    )
    args = parser.parse_args()

    if args.create_schema:
        Base.metadata.create_all(engine)

    now = datetime.now(UTC)
    with SessionLocal() as session:
        if args.reset:
            _reset(session)

        for user_id, username in DEMO_PROFILES:
            _ensure_profile(session, user_id=user_id, username=username, now=now)
        _ensure_accepted_friends(session, a="user_alice", b="user_bob", now=now)

        for badge_id, title, rarity in SEED_BADGES:
            if session.get(Badge, badge_id) is None:
                session.add(
                    Badge(
                        id=badge_id,
                        title=title,
                        description="",
                        rarity=rarity,
                        created_at=now,
                    )
                )
        for title_id, title, rarity in SEED_TITLES:
            if session.get(Title, title_id) is None:
                session.add(
                    Title(
                        id=title_id,
                        title=title,
                        description="",
                        rarity=rarity,
                        created_at=now,
                    )
                )
        session.flush()

        for quest_id, title, base_xp, steps, rewards in SEED_QUESTS:
            if session.get(Quest, quest_id) is not None:
                continue
            session.add(
                Quest(
                    id=quest_id,
                    title=title,
                    short_description="",
                    long_description="",
                    is_daily=quest_id.startswith("q_seed_daily"),
                    is_geofenced=any(check_in for _, check_in, _ in steps),
                    base_xp_reward=base_xp,
                    created_at=now,
                    updated_at=now,
                )
            )
            session.flush()
            for i, (description, check_in, step_xp) in enumerate(steps, start=1):
                session.add(
                    QuestStep(
                        id=f"{quest_id}_s{i}",
                        quest_id=quest_id,
                        step_number=i,
                        description=description,
                        requires_check_in=check_in,
                        step_xp_reward=step_xp,
                        created_at=now,
                    )
                )
            for reward in rewards:
                add_definition(
                    session, source_kind="quest", source_id=quest_id, reward=reward, now=now
                )

        for ach_id, name, reward in SEED_ACHIEVEMENTS:
            if session.get(Achievement, ach_id) is not None:
                continue
            session.add(Achievement(id=ach_id, name=name, description="", created_at=now))
            session.flush()
            add_definition(
                session, source_kind="achievement", source_id=ach_id, reward=reward, now=now
            )

        session.commit()

    print(
        f"seeded {len(DEMO_PROFILES)} profiles, {len(SEED_QUESTS)} quests, "
        f"{len(SEED_ACHIEVEMENTS)} achievements"
    )


if __name__ == "__main__":
    main()
