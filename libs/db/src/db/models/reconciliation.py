from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import expression as sa_expr


class Base(DeclarativeBase):
    pass


# ---------------------------
# Core: rc_transactions
# ---------------------------


class RcTransaction(Base):
    __tablename__ = "rc_transactions"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    execution_date: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    counterparty_name: Mapped[str] = mapped_column(Text, nullable=False, server_default="")
    communication: Mapped[str] = mapped_column(Text, nullable=False, server_default="")
    counterparty_account: Mapped[str] = mapped_column(String, nullable=False, server_default="")
    account_number: Mapped[str] = mapped_column(String, nullable=False, server_default="")
    # Not unique: re-imported lines must be storable so they can be detected
    # and discarded by an operator.
    dedup_hash: Mapped[str | None] = mapped_column(String, nullable=True)
    sequence_number: Mapped[str | None] = mapped_column(String, nullable=True)
    is_parent: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=sa_expr.false()
    )
    parent_id: Mapped[str | None] = mapped_column(String, nullable=True)
    child_index: Mapped[int | None] = mapped_column(Integer, nullable=True)
    child_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    # List of {entity_type, entity_id, entity_name, confidence, matched_by, notes}.
    matched_entities: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list
    )
    category: Mapped[str | None] = mapped_column(String, nullable=True)
    account_code: Mapped[str | None] = mapped_column(String, nullable=True)
    reconciled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=sa_expr.false()
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_rc_tx_dedup_hash", "dedup_hash"),
        Index("ix_rc_tx_parent_id", "parent_id"),
        Index("ix_rc_tx_account_date", "account_number", "execution_date"),
        CheckConstraint(
            "NOT (is_parent AND parent_id IS NOT NULL)",
            name="ck_rc_tx_parent_xor_child",
        ),
        CheckConstraint(
            (
                "parent_id IS NULL OR "
                "(child_index >= 1 AND child_count >= child_index)"
            ),
            name="ck_rc_tx_child_numbering",
        ),
    )


__all__ = [
    "Base",
    "RcTransaction",
]
