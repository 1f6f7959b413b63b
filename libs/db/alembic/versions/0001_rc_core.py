"""Reconciliation transaction store.

Revision ID: 0001_rc_core
Revises: None
Create Date: 2025-03-15
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001_rc_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "rc_transactions",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("execution_date", sa.Date(), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("counterparty_name", sa.Text(), nullable=False, server_default=""),
        sa.Column("communication", sa.Text(), nullable=False, server_default=""),
        sa.Column("counterparty_account", sa.String(), nullable=False, server_default=""),
        sa.Column("account_number", sa.String(), nullable=False, server_default=""),
        sa.Column("dedup_hash", sa.String(), nullable=True),
        sa.Column("sequence_number", sa.String(), nullable=True),
        sa.Column("is_parent", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("parent_id", sa.String(), nullable=True),
        sa.Column("child_index", sa.Integer(), nullable=True),
        sa.Column("child_count", sa.Integer(), nullable=True),
        sa.Column("matched_entities", sa.JSON(), nullable=False),
        sa.Column("category", sa.String(), nullable=True),
        sa.Column("account_code", sa.String(), nullable=True),
        sa.Column("reconciled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint(
            "NOT (is_parent AND parent_id IS NOT NULL)",
            name="ck_rc_tx_parent_xor_child",
        ),
        sa.CheckConstraint(
            "parent_id IS NULL OR (child_index >= 1 AND child_count >= child_index)",
            name="ck_rc_tx_child_numbering",
        ),
    )
    op.create_index("ix_rc_tx_dedup_hash", "rc_transactions", ["dedup_hash"])
    op.create_index("ix_rc_tx_parent_id", "rc_transactions", ["parent_id"])
    op.create_index(
        "ix_rc_tx_account_date", "rc_transactions", ["account_number", "execution_date"]
    )


def downgrade() -> None:
    op.drop_index("ix_rc_tx_account_date", table_name="rc_transactions")
    op.drop_index("ix_rc_tx_parent_id", table_name="rc_transactions")
    op.drop_index("ix_rc_tx_dedup_hash", table_name="rc_transactions")
    op.drop_table("rc_transactions")
