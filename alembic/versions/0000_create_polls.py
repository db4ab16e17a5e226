"""Create polls and votes tables

Revision ID: 0000_create_polls
Revises: None
Create Date: 2024-01-01 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "0000_create_polls"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "polls",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("title", sa.TEXT(), nullable=False),
        sa.Column("options", postgresql.JSONB(), nullable=False),
        sa.Column("expires_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.CheckConstraint("length(title) > 0", name="ck_polls_title_not_empty"),
        sa.CheckConstraint(
            "jsonb_array_length(options) >= 2", name="ck_polls_options_min_two"
        ),
    )

    op.create_table(
        "votes",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column(
            "poll_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("polls.id", name="votes_poll_id_fkey", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("option_index", sa.INTEGER(), nullable=False),
        sa.Column("voter_ip", sa.TEXT(), nullable=False),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    )
    op.create_index("idx_votes_poll_id", "votes", ["poll_id"])
    op.create_index("idx_votes_poll_ip", "votes", ["poll_id", "voter_ip"], unique=True)


def downgrade() -> None:
    op.drop_index("idx_votes_poll_ip", table_name="votes")
    op.drop_index("idx_votes_poll_id", table_name="votes")
    op.drop_table("votes")
    op.drop_table("polls")
