from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from questline_api.db import Base


FRIENDSHIP_STATUSES = ("pending", "accepted", "blocked")
RARITIES = ("common", "uncommon", "rare", "epic", "legendary")
REWARD_SOURCE_KINDS = ("quest", "achievement")


class Profile(Base):
    __tablename__ = "profiles"

    user_id: Mapped[str] = mapped_column(String, primary_key=True)
    username: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    avatar_url: Mapped[str | None] = mapped_column(String, nullable=True)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    # xp/level are only written by award_engine.apply_xp_delta.
    xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    __table_args__ = (CheckConstraint("xp >= 0", name="ck_profiles_xp_nonnegative"),)


def friendship_pair_key(a: str, b: str) -> str:
    """Order-independent key for a pair of users; unique across both directions."""
    lo, hi = sorted((str(a), str(b)))
    return f"{lo}|{hi}"


class Friendship(Base):
    __tablename__ = "friendships"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[str] = mapped_column(
        String, ForeignKey("profiles.user_id", ondelete="CASCADE"), nullable=False, index=True
    )
    friend_id: Mapped[str] = mapped_column(
        String, ForeignKey("profiles.user_id", ondelete="CASCADE"), nullable=False, index=True
    )
    pair_key: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("pair_key", name="uq_friendships_pair"),
        CheckConstraint(
            "status in ('pending', 'accepted', 'blocked')",
            name="ck_friendships_status",
        ),
    )


class Quest(Base):
    __tablename__ = "quests"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    title: Mapped[str] = mapped_column(String, nullable=False)
    short_description: Mapped[str] = mapped_column(String, nullable=False, default="")
    long_description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    is_daily: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_geofenced: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    base_xp_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )


class QuestStep(Base):
    __tablename__ = "quest_steps"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    quest_id: Mapped[str] = mapped_column(
        String, ForeignKey("quests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    step_number: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    requires_check_in: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    step_xp_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=25)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("quest_id", "step_number", name="uq_quest_steps_quest_number"),
    )


class UserQuest(Base):
    __tablename__ = "user_quests"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[str] = mapped_column(
        String, ForeignKey("profiles.user_id", ondelete="CASCADE"), nullable=False, index=True
    )
    quest_id: Mapped[str] = mapped_column(
        String, ForeignKey("quests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    is_accepted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    accepted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    current_step: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
    last_submission_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("user_id", "quest_id", name="uq_user_quests_user_quest"),
    )


class QuestSubmission(Base):
    __tablename__ = "quest_submissions"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[str] = mapped_column(
        String, ForeignKey("profiles.user_id", ondelete="CASCADE"), nullable=False, index=True
    )
    quest_id: Mapped[str] = mapped_column(
        String, ForeignKey("quests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    step_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("quest_steps.id", ondelete="SET NULL"), nullable=True
    )
    image_url: Mapped[str] = mapped_column(String, nullable=False)
    check_in_lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    check_in_lng: Mapped[float | None] = mapped_column(Float, nullable=True)
    caption: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )


class Badge(Base):
    __tablename__ = "badges"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    title: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str] = mapped_column(String, nullable=False, default="")
    image_url: Mapped[str | None] = mapped_column(String, nullable=True)
    rarity: Mapped[str] = mapped_column(String, nullable=False, default="common")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )


class Title(Base):
    __tablename__ = "titles"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    title: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str] = mapped_column(String, nullable=False, default="")
    rarity: Mapped[str] = mapped_column(String, nullable=False, default="common")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )


class UserBadge(Base):
    __tablename__ = "user_badges"

    user_id: Mapped[str] = mapped_column(
        String, ForeignKey("profiles.user_id", ondelete="CASCADE"), primary_key=True
    )
    badge_id: Mapped[str] = mapped_column(
        String, ForeignKey("badges.id", ondelete="CASCADE"), primary_key=True
    )
    is_equipped: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    earned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    source: Mapped[str] = mapped_column(String, nullable=False)


class UserTitle(Base):
    __tablename__ = "user_titles"

    user_id: Mapped[str] = mapped_column(
        String, ForeignKey("profiles.user_id", ondelete="CASCADE"), primary_key=True
    )
    title_id: Mapped[str] = mapped_column(
        String, ForeignKey("titles.id", ondelete="CASCADE"), primary_key=True
    )
    is_equipped: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    earned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    source: Mapped[str] = mapped_column(String, nullable=False)


class Achievement(Base):
    __tablename__ = "achievements"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str] = mapped_column(String, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )


class UserAchievement(Base):
    __tablename__ = "user_achievements"

    user_id: Mapped[str] = mapped_column(
        String, ForeignKey("profiles.user_id", ondelete="CASCADE"), primary_key=True
    )
    achievement_id: Mapped[str] = mapped_column(
        String, ForeignKey("achievements.id", ondelete="CASCADE"), primary_key=True
    )
    awarded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )


class RewardDefinition(Base):
    """Stored reward row; read back only through rewards.definition_from_row."""

    __tablename__ = "reward_definitions"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    source_kind: Mapped[str] = mapped_column(String, nullable=False)
    source_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    xp_amount: Mapped[int | None] = mapped_column(Integer, nullable=True)
    badge_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("badges.id", ondelete="CASCADE"), nullable=True
    )
    title_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("titles.id", ondelete="CASCADE"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    __table_args__ = (
        CheckConstraint(
            "source_kind in ('quest', 'achievement')",
            name="ck_reward_definitions_source_kind",
        ),
        CheckConstraint(
            "badge_id is null or title_id is null",
            name="ck_reward_definitions_exclusive_item",
        ),
        CheckConstraint(
            "source_kind <> 'achievement' or ("
            "(case when xp_amount is null then 0 else 1 end)"
            " + (case when badge_id is null then 0 else 1 end)"
            " + (case when title_id is null then 0 else 1 end) = 1)",
            name="ck_reward_definitions_achievement_single",
        ),
        CheckConstraint(
            "xp_amount is null or xp_amount >= 0",
            name="ck_reward_definitions_xp_nonnegative",
        ),
    )


class Event(Base):
    __tablename__ = "events"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("profiles.user_id", ondelete="SET NULL"), nullable=True, index=True
    )
    type: Mapped[str] = mapped_column(String, nullable=False, index=True)
    payload_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
