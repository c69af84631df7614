"""Initial moderation schema

Revision ID: 4c2e9a7b1f30
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "4c2e9a7b1f30"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create the case ledger, policy documents and raid state tables."""
    op.create_table(
        "moderation_cases",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("guild_id", sa.BigInteger, nullable=False),
        sa.Column("case_id", sa.Integer, nullable=False),
        sa.Column("target_user_id", sa.BigInteger, nullable=False),
        sa.Column("target_tag", sa.String(100), nullable=False),
        sa.Column("moderator_user_id", sa.BigInteger, nullable=False),
        sa.Column("moderator_tag", sa.String(100), nullable=False),
        sa.Column("action", sa.String(20), nullable=False),
        sa.Column("reason", sa.Text, nullable=False),
        sa.Column("duration_seconds", sa.Integer, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("guild_id", "case_id", name="uq_moderation_cases_guild_case"),
    )
    op.create_index(
        "ix_moderation_cases_guild_target",
        "moderation_cases",
        ["guild_id", "target_user_id"],
    )

    op.create_table(
        "case_counters",
        sa.Column("guild_id", sa.BigInteger, primary_key=True),
        sa.Column("last_case_id", sa.Integer, nullable=False, server_default="0"),
    )

    op.create_table(
        "guild_policies",
        sa.Column("guild_id", sa.BigInteger, primary_key=True),
        sa.Column("section", sa.String(20), primary_key=True),
        sa.Column(
            "data",
            sa.JSON().with_variant(postgresql.JSONB(), "postgresql"),
            nullable=False,
            server_default=sa.text("'{}'"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )

    op.create_table(
        "active_raids",
        sa.Column("guild_id", sa.BigInteger, primary_key=True),
        sa.Column("started_at", sa.Float, nullable=False),
        sa.Column("handled_count", sa.Integer, nullable=False, server_default="0"),
    )


def downgrade() -> None:
    op.drop_table("active_raids")
    op.drop_table("guild_policies")
    op.drop_table("case_counters")
    op.drop_index("ix_moderation_cases_guild_target", table_name="moderation_cases")
    op.drop_table("moderation_cases")
