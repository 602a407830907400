"""Create users, catalog, profile and event log tables."""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "20261001_create_gamification_tables"
down_revision = None
branch_labels = None
depends_on = None


def _counter(name: str) -> sa.Column:
    return sa.Column(name, sa.Integer(), nullable=False, server_default="0")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False, unique=True),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "virtual_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("item_code", sa.String(length=64), nullable=False, unique=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=True),
        sa.Column("item_type", sa.String(length=40), nullable=False),
        sa.Column("cost_points", sa.Integer(), nullable=True),
        sa.Column("value_points", sa.Integer(), nullable=False),
        sa.Column("rarity", sa.String(length=20), nullable=False),
        sa.Column("asset_url", sa.String(length=512), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "cost_points IS NULL OR cost_points >= 0",
            name="ck_virtual_items_cost_non_negative",
        ),
    )

    op.create_table(
        "badges",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("badge_code", sa.String(length=64), nullable=False, unique=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=False),
        sa.Column("icon_url", sa.String(length=512), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="ACTIVE"),
        sa.Column("criteria", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "quests",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("quest_code", sa.String(length=64), nullable=False, unique=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=False),
        sa.Column("category", sa.String(length=40), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="ACTIVE"),
        sa.Column("target_personas", sa.JSON(), nullable=False),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completion_criteria", sa.JSON(), nullable=False),
        sa.Column("reward_points", sa.Integer(), nullable=True),
        sa.Column("reward_badge_code", sa.String(length=64), nullable=True),
        sa.Column("reward_item_code", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "reward_points IS NULL OR reward_points >= 0",
            name="ck_quests_reward_points_non_negative",
        ),
    )

    op.create_table(
        "game_profiles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("persona", sa.String(length=40), nullable=False),
        _counter("points_balance"),
        _counter("net_worth"),
        _counter("current_login_streak"),
        _counter("longest_login_streak"),
        sa.Column("last_login_date", sa.Date(), nullable=True),
        _counter("check_ins"),
        _counter("fault_reports"),
        _counter("ai_validations"),
        _counter("black_spot_discoveries"),
        _counter("route_plans"),
        _counter("chatbot_questions"),
        _counter("quizzes_correct"),
        _counter("easter_eggs_redeemed"),
        _counter("items_purchased"),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("points_balance >= 0", name="ck_game_profiles_points_non_negative"),
        sa.CheckConstraint("current_login_streak >= 0", name="ck_game_profiles_streak_non_negative"),
        sa.CheckConstraint("longest_login_streak >= 0", name="ck_game_profiles_longest_non_negative"),
    )

    op.create_table(
        "profile_badges",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "profile_id",
            sa.Integer(),
            sa.ForeignKey("game_profiles.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("badge_code", sa.String(length=64), nullable=False),
        sa.Column("earned_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("profile_id", "badge_code", name="uq_profile_badges_profile_badge"),
    )
    op.create_index("ix_profile_badges_profile_id", "profile_badges", ["profile_id"])

    op.create_table(
        "profile_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "profile_id",
            sa.Integer(),
            sa.ForeignKey("game_profiles.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("item_code", sa.String(length=64), nullable=False),
        sa.Column("source", sa.String(length=20), nullable=False),
        sa.Column("acquired_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("profile_id", "item_code", name="uq_profile_items_profile_item"),
    )
    op.create_index("ix_profile_items_profile_id", "profile_items", ["profile_id"])

    op.create_table(
        "profile_quests",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "profile_id",
            sa.Integer(),
            sa.ForeignKey("game_profiles.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("quest_code", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("profile_id", "quest_code", name="uq_profile_quests_profile_quest"),
    )
    op.create_index("ix_profile_quests_profile_id", "profile_quests", ["profile_id"])

    op.create_table(
        "game_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("session_id", sa.String(length=128), nullable=True),
        sa.Column("kind", sa.String(length=32), nullable=False),
        sa.Column("action_type", sa.String(length=64), nullable=True),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.Column("details", sa.JSON(), nullable=False),
    )
    op.create_index(
        "ix_game_events_user_id_timestamp", "game_events", ["user_id", "timestamp"]
    )


def downgrade() -> None:
    op.drop_index("ix_game_events_user_id_timestamp", table_name="game_events")
    op.drop_table("game_events")
    op.drop_index("ix_profile_quests_profile_id", table_name="profile_quests")
    op.drop_table("profile_quests")
    op.drop_index("ix_profile_items_profile_id", table_name="profile_items")
    op.drop_table("profile_items")
    op.drop_index("ix_profile_badges_profile_id", table_name="profile_badges")
    op.drop_table("profile_badges")
    op.drop_table("game_profiles")
    op.drop_table("quests")
    op.drop_table("badges")
    op.drop_table("virtual_items")
    op.drop_table("users")
