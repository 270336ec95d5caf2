"""Transactions table keyed by transaction output.

Revision ID: 001_transactions
Revises:
Create Date: 2026-10-19 00:00:00.000000+00:00
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001_transactions"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("txid", sa.String(64), nullable=False),
        sa.Column("vout", sa.Integer(), nullable=False),
        sa.Column("address", sa.String(100), nullable=False),
        sa.Column("category", sa.String(20), nullable=False),
        sa.Column("amount_units", sa.BigInteger(), nullable=False),
        sa.Column("confirmations", sa.Integer(), nullable=False),
        sa.Column("extra", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("txid", "vout", name="uq_transactions_output"),
    )
    op.create_index("idx_transactions_address", "transactions", ["address"])
    op.create_index(
        "idx_transactions_category_confirmations",
        "transactions",
        ["category", "confirmations"],
    )


def downgrade() -> None:
    op.drop_index("idx_transactions_category_confirmations", table_name="transactions")
    op.drop_index("idx_transactions_address", table_name="transactions")
    op.drop_table("transactions")
