"""Small record builders shared by the test modules."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from bank_reconciliation.models import MatchedEntity, TransactionRecord

CLUB_ACCOUNT = "BE26 2100 1607 0629"


def tx(
    id: str,
    amount: str | Decimal,
    *,
    on: str = "2025-03-01",
    links: tuple[tuple[str, str], ...] = (),
    **kwargs,
) -> TransactionRecord:
    kwargs.setdefault("account_number", CLUB_ACCOUNT)
    kwargs.setdefault("matched_entities", tuple(MatchedEntity(t, i) for t, i in links))
    return TransactionRecord(
        id=id,
        execution_date=date.fromisoformat(on),
        amount=Decimal(amount),
        **kwargs,
    )
