"""Create coin selection and coin vote tables

Revision ID: 0001_create_coins
Revises: 0000_create_polls
Create Date: 2025-01-27 11:53:39.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_create_coins"
down_revision = "0000_create_polls"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "coins",
        sa.Column("id", sa.INTEGER(), sa.Identity(always=False), primary_key=True),
        sa.Column("symbol", sa.TEXT(), nullable=False),
        sa.Column("price", sa.TEXT(), nullable=False),
        sa.UniqueConstraint("symbol", name="coins_symbol_key"),
    )

    op.create_table(
        "coin_votes",
        sa.Column("id", sa.INTEGER(), sa.Identity(always=False), primary_key=True),
        sa.Column(
            "coin_symbol",
            sa.TEXT(),
            sa.ForeignKey(
                "coins.symbol", name="coin_votes_coin_symbol_fkey", ondelete="CASCADE"
            ),
            nullable=False,
        ),
        sa.Column("user_id", sa.TEXT(), nullable=False),
        sa.UniqueConstraint(
            "coin_symbol", "user_id", name="coin_votes_coin_symbol_user_id_key"
        ),
    )

    op.create_table(
        "coin_vote_counts",
        sa.Column("id", sa.INTEGER(), sa.Identity(always=False), primary_key=True),
        sa.Column("symbol", sa.TEXT(), nullable=False),
        sa.Column("votes", sa.INTEGER(), nullable=False, server_default="0"),
        sa.UniqueConstraint("symbol", name="coin_vote_counts_symbol_key"),
    )


def downgrade() -> None:
    op.drop_table("coin_vote_counts")
    op.drop_table("coin_votes")
    op.drop_table("coins")
