"""Initial schema

Revision ID: 001
Revises: None
Create Date: 2025-03-01 00:00:00.000000+00:00

What:  Creates users, games, templates and the community tables.
How:   Portable column types; board documents and tag lists are JSON,
       stored as JSONB on PostgreSQL.

Rollback: downgrade() drops every table (destructive, all data lost).
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _timestamps(updated: bool = True):
    columns = [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text("CURRENT_TIMESTAMP")),
    ]
    if updated:
        columns.append(
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False,
                      server_default=sa.text("CURRENT_TIMESTAMP")),
        )
    return columns


def _owner(column: str = "user_id", nullable: bool = False, ondelete: str = "CASCADE") -> sa.Column:
    return sa.Column(column, sa.Uuid(), sa.ForeignKey("users.id", ondelete=ondelete), nullable=nullable)


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(320), nullable=False, comment="Lowercased login email"),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("first_name", sa.String(100)),
        sa.Column("last_name", sa.String(100)),
        sa.Column("username", sa.String(50)),
        sa.Column("profile_image", sa.String(500)),
        sa.Column("bio", sa.Text()),
        sa.Column("school", sa.String(200)),
        sa.Column("grade", sa.String(50)),
        sa.Column("subject", sa.String(100)),
        sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("raffle_tickets", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("reset_token_hash", sa.String(64)),
        sa.Column("reset_token_expires_at", sa.DateTime(timezone=True)),
        *_timestamps(),
        sa.UniqueConstraint("username", name="uq_users_username"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_reset_token_hash", "users", ["reset_token_hash"])

    op.create_table(
        "games",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _owner(),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("type", sa.String(20), nullable=False, comment="JEOPARDY, QUIZ or WORD_GAME"),
        sa.Column("data", JSON, nullable=False),
        sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("tags", JSON, nullable=False),
        sa.Column("subject", sa.String(100)),
        sa.Column("grade_level", sa.String(50)),
        sa.Column("difficulty", sa.String(20)),
        sa.Column("language", sa.String(10), nullable=False),
        sa.Column("published_at", sa.DateTime(timezone=True)),
        sa.Column("plays", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("downloads", sa.Integer(), nullable=False, server_default=sa.text("0")),
        *_timestamps(),
    )
    op.create_index("ix_games_user_id", "games", ["user_id"])
    op.create_index("idx_games_public_created", "games", ["is_public", sa.text("created_at DESC")])

    for table, constraint in (
        ("game_favorites", "uq_game_favorites_game_user"),
        ("game_ratings", "uq_game_ratings_game_user"),
    ):
        extra = []
        if table == "game_ratings":
            extra = [
                sa.Column("rating", sa.SmallInteger(), nullable=False),
                sa.Column("review", sa.Text()),
            ]
        op.create_table(
            table,
            sa.Column("id", sa.Uuid(), primary_key=True),
            sa.Column("game_id", sa.Uuid(), sa.ForeignKey("games.id", ondelete="CASCADE"), nullable=False),
            _owner(),
            *extra,
            *_timestamps(updated=table == "game_ratings"),
            sa.UniqueConstraint("game_id", "user_id", name=constraint),
        )
        op.create_index(f"ix_{table}_game_id", table, ["game_id"])
        op.create_index(f"ix_{table}_user_id", table, ["user_id"])

    op.create_table(
        "templates",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _owner(),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("data", JSON, nullable=False),
        sa.Column("preview_image", sa.String(500)),
        sa.Column("tags", JSON, nullable=False),
        sa.Column("difficulty", sa.String(20)),
        sa.Column("grade_level", sa.String(50)),
        sa.Column("subject", sa.String(100)),
        sa.Column("downloads", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_featured", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index("ix_templates_user_id", "templates", ["user_id"])
    op.create_index("idx_templates_marketplace", "templates", ["is_public", "is_featured", "downloads"])

    op.create_table(
        "template_downloads",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("template_id", sa.Uuid(), sa.ForeignKey("templates.id", ondelete="CASCADE"), nullable=False),
        _owner(),
        sa.Column("downloaded_at", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.UniqueConstraint("template_id", "user_id", name="uq_template_downloads_template_user"),
    )
    op.create_index("ix_template_downloads_template_id", "template_downloads", ["template_id"])
    op.create_index("ix_template_downloads_user_id", "template_downloads", ["user_id"])

    op.create_table(
        "tags",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(50), nullable=False, unique=True),
        sa.Column("usage_count", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(updated=False),
    )
    op.create_index("ix_tags_usage_count", "tags", ["usage_count"])

    op.create_table(
        "referral_links",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _owner(),
        sa.Column("code", sa.String(16), nullable=False, unique=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(updated=False),
    )
    op.create_index("ix_referral_links_user_id", "referral_links", ["user_id"])

    op.create_table(
        "referrals",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _owner("referrer_id"),
        _owner("referred_id"),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        *_timestamps(updated=False),
        sa.UniqueConstraint("referred_id", name="uq_referrals_referred_id"),
    )
    op.create_index("ix_referrals_referrer_id", "referrals", ["referrer_id"])

    op.create_table(
        "newsletter_subscribers",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'confirmed'")),
        sa.Column("confirm_token_hash", sa.String(64)),
        sa.Column("confirm_expires_at", sa.DateTime(timezone=True)),
        *_timestamps(),
    )
    op.create_index("ix_newsletter_subscribers_email", "newsletter_subscribers", ["email"], unique=True)
    op.create_index("ix_newsletter_subscribers_confirm_token_hash", "newsletter_subscribers", ["confirm_token_hash"])

    op.create_table(
        "feedback",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("feedback", sa.Text(), nullable=False),
        _owner(nullable=True, ondelete="SET NULL"),
        *_timestamps(updated=False),
    )
    op.create_index("idx_feedback_created_at", "feedback", [sa.text("created_at DESC")])

    op.create_table(
        "support_tickets",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("subject", sa.String(200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'open'")),
        *_timestamps(updated=False),
    )


def downgrade() -> None:
    for table in (
        "support_tickets",
        "feedback",
        "newsletter_subscribers",
        "referrals",
        "referral_links",
        "tags",
        "template_downloads",
        "templates",
        "game_ratings",
        "game_favorites",
        "games",
        "users",
    ):
        op.drop_table(table)
