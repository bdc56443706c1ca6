"""Initial merit schema

Revision ID: 5c2e8d41a7b3
Revises:
Create Date: 2026-10-19 09:12:40.118204

"""
from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '5c2e8d41a7b3'
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create merit_accounts, action_log, guild_config, report_recipients, settings."""

    # --- merit_accounts ---
    op.create_table(
        "merit_accounts",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger, nullable=False),
        sa.Column("guild_id", sa.BigInteger, nullable=False),
        sa.Column("total_points", sa.Integer, nullable=False, server_default="0"),
        sa.Column("weekly_points", sa.Integer, nullable=False, server_default="0"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint("user_id", "guild_id", name="uq_merit_accounts_user_guild"),
    )
    op.create_index("ix_merit_accounts_guild_total", "merit_accounts", ["guild_id", "total_points"])
    op.create_index("ix_merit_accounts_guild_weekly", "merit_accounts", ["guild_id", "weekly_points"])

    # --- action_log ---
    op.create_table(
        "action_log",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("actor_id", sa.BigInteger, nullable=False),
        sa.Column("guild_id", sa.BigInteger, nullable=False),
        sa.Column("action_kind", sa.String(40), nullable=False),
        sa.Column("points", sa.Integer, nullable=False),
        sa.Column("week_number", sa.Integer, nullable=False),
        sa.Column(
            "timestamp",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column("target_id", sa.BigInteger, nullable=True),
        sa.Column("details", sa.Text, nullable=True),
    )
    op.create_index("ix_action_log_guild_time", "action_log", ["guild_id", "timestamp"])
    op.create_index("ix_action_log_actor", "action_log", ["actor_id", "guild_id"])

    # --- guild_config ---
    op.create_table(
        "guild_config",
        sa.Column("guild_id", sa.BigInteger, primary_key=True),
        sa.Column("mod_role_id", sa.BigInteger, nullable=True),
        sa.Column("leaderboard_channel_id", sa.BigInteger, nullable=True),
        sa.Column("welcome_channel_id", sa.BigInteger, nullable=True),
        sa.Column("welcome_title", sa.String(256), nullable=True),
        sa.Column("welcome_content", sa.Text, nullable=True),
        sa.Column("welcome_image", sa.String(500), nullable=True),
        sa.Column("rotation_schedule", sa.String(100), nullable=True),
    )

    # --- report_recipients ---
    op.create_table(
        "report_recipients",
        sa.Column("guild_id", sa.BigInteger, primary_key=True),
        sa.Column("user_id", sa.BigInteger, primary_key=True),
    )

    # --- settings ---
    op.create_table(
        "settings",
        sa.Column("key", sa.String(100), primary_key=True),
        sa.Column("value_json", sa.Text, nullable=False),
        sa.Column("category", sa.String(50), nullable=False, server_default="general"),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )


def downgrade() -> None:
    op.drop_table("settings")
    op.drop_table("report_recipients")
    op.drop_table("guild_config")
    op.drop_index("ix_action_log_actor", table_name="action_log")
    op.drop_index("ix_action_log_guild_time", table_name="action_log")
    op.drop_table("action_log")
    op.drop_index("ix_merit_accounts_guild_weekly", table_name="merit_accounts")
    op.drop_index("ix_merit_accounts_guild_total", table_name="merit_accounts")
    op.drop_table("merit_accounts")
