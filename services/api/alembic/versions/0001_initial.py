"""initial schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "profiles",
        sa.Column("user_id", sa.String(), primary_key=True),
        sa.Column("username", sa.String(), unique=True, nullable=False),
        sa.Column("avatar_url", sa.String(), nullable=True),
        sa.Column("bio", sa.Text(), nullable=True),
        sa.Column("xp", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("level", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("xp >= 0", name="ck_profiles_xp_nonnegative"),
    )

    op.create_table(
        "friendships",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column(
            "user_id",
            sa.String(),
            sa.ForeignKey("profiles.user_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "friend_id",
            sa.String(),
            sa.ForeignKey("profiles.user_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("pair_key", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("pair_key", name="uq_friendships_pair"),
        sa.CheckConstraint(
            "status in ('pending', 'accepted', 'blocked')",
            name="ck_friendships_status",
        ),
    )

    op.create_table(
        "quests",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("short_description", sa.String(), nullable=False, server_default=""),
        sa.Column("long_description", sa.Text(), nullable=False, server_default=""),
        sa.Column("is_daily", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "is_geofenced", sa.Boolean(), nullable=False, server_default=sa.text("0")
        ),
        sa.Column("base_xp_reward", sa.Integer(), nullable=False, server_default="100"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "quest_steps",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column(
            "quest_id",
            sa.String(),
            sa.ForeignKey("quests.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("step_number", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column(
            "requires_check_in", sa.Boolean(), nullable=False, server_default=sa.text("0")
        ),
        sa.Column("step_xp_reward", sa.Integer(), nullable=False, server_default="25"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "quest_id", "step_number", name="uq_quest_steps_quest_number"
        ),
    )

    op.create_table(
        "user_quests",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column(
            "user_id",
            sa.String(),
            sa.ForeignKey("profiles.user_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "quest_id",
            sa.String(),
            sa.ForeignKey("quests.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "is_accepted", sa.Boolean(), nullable=False, server_default=sa.text("0")
        ),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("current_step", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "is_completed", sa.Boolean(), nullable=False, server_default=sa.text("0")
        ),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True, index=True),
        sa.Column("last_submission_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("user_id", "quest_id", name="uq_user_quests_user_quest"),
    )

    op.create_table(
        "quest_submissions",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column(
            "user_id",
            sa.String(),
            sa.ForeignKey("profiles.user_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "quest_id",
            sa.String(),
            sa.ForeignKey("quests.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "step_id",
            sa.String(),
            sa.ForeignKey("quest_steps.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("image_url", sa.String(), nullable=False),
        sa.Column("check_in_lat", sa.Float(), nullable=True),
        sa.Column("check_in_lng", sa.Float(), nullable=True),
        sa.Column("caption", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "badges",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=False, server_default=""),
        sa.Column("image_url", sa.String(), nullable=True),
        sa.Column("rarity", sa.String(), nullable=False, server_default="common"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "titles",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=False, server_default=""),
        sa.Column("rarity", sa.String(), nullable=False, server_default="common"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "user_badges",
        sa.Column(
            "user_id",
            sa.String(),
            sa.ForeignKey("profiles.user_id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "badge_id",
            sa.String(),
            sa.ForeignKey("badges.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "is_equipped", sa.Boolean(), nullable=False, server_default=sa.text("0")
        ),
        sa.Column("earned_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("source", sa.String(), nullable=False),
    )

    op.create_table(
        "user_titles",
        sa.Column(
            "user_id",
            sa.String(),
            sa.ForeignKey("profiles.user_id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "title_id",
            sa.String(),
            sa.ForeignKey("titles.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "is_equipped", sa.Boolean(), nullable=False, server_default=sa.text("0")
        ),
        sa.Column("earned_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("source", sa.String(), nullable=False),
    )

    op.create_table(
        "achievements",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "user_achievements",
        sa.Column(
            "user_id",
            sa.String(),
            sa.ForeignKey("profiles.user_id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "achievement_id",
            sa.String(),
            sa.ForeignKey("achievements.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("awarded_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "reward_definitions",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("source_kind", sa.String(), nullable=False),
        sa.Column("source_id", sa.String(), nullable=False, index=True),
        sa.Column("xp_amount", sa.Integer(), nullable=True),
        sa.Column(
            "badge_id",
            sa.String(),
            sa.ForeignKey("badges.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column(
            "title_id",
            sa.String(),
            sa.ForeignKey("titles.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "source_kind in ('quest', 'achievement')",
            name="ck_reward_definitions_source_kind",
        ),
        sa.CheckConstraint(
            "badge_id is null or title_id is null",
            name="ck_reward_definitions_exclusive_item",
        ),
        sa.CheckConstraint(
            "source_kind <> 'achievement' or ("
            "(case when xp_amount is null then 0 else 1 end)"
            " + (case when badge_id is null then 0 else 1 end)"
            " + (case when title_id is null then 0 else 1 end) = 1)",
            name="ck_reward_definitions_achievement_single",
        ),
        sa.CheckConstraint(
            "xp_amount is null or xp_amount >= 0",
            name="ck_reward_definitions_xp_nonnegative",
        ),
    )

    op.create_table(
        "events",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column(
            "user_id",
            sa.String(),
            sa.ForeignKey("profiles.user_id", ondelete="SET NULL"),
            nullable=True,
            index=True,
        ),
        sa.Column("type", sa.String(), nullable=False, index=True),
        sa.Column("payload_json", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("events")
    op.drop_table("reward_definitions")
    op.drop_table("user_achievements")
    op.drop_table("achievements")
    op.drop_table("user_titles")
    op.drop_table("user_badges")
    op.drop_table("titles")
    op.drop_table("badges")
    op.drop_table("quest_submissions")
    op.drop_table("user_quests")
    op.drop_table("quest_steps")
    op.drop_table("quests")
    op.drop_table("friendships")
    op.drop_table("profiles")
