"""Persistence integration for bank_reconciliation.

The engine itself never touches storage; these functions move
:class:`~bank_reconciliation.models.TransactionRecord` values in and out of
the ``rc_transactions`` table owned by ``libs/db``. Callers provide the
session (usually from ``db.client.session_scope``) and own the commit.

Scope:
- Load records (all, or a given set of ids), ordered by id.
- Insert-or-update records by id.
- Delete records by id (discarding re-imported duplicates, removing the
  children of an undone split).
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from db.models.reconciliation import RcTransaction

from .logging_setup import get_logger
from .models import MatchedEntity, TransactionRecord, normalize_entity_type
from .normalizers import quantize_amount

_logger = get_logger("bank_reconciliation.persistence")


def _entity_from_json(raw: Mapping[str, Any]) -> MatchedEntity:
    etype = str(raw.get("entity_type") or raw.get("type") or "")
    try:
        etype = normalize_entity_type(etype)
    except ValueError:
        # Kept verbatim so a later save does not lose it.
        _logger.warning("unknown entity type %r in stored link", etype)
    confidence = raw.get("confidence")
    return MatchedEntity(
        entity_type=etype,
        entity_id=str(raw.get("entity_id") or raw.get("id") or ""),
        entity_name=raw.get("entity_name"),
        confidence=float(confidence) if confidence is not None else None,
        matched_by="auto" if raw.get("matched_by") == "auto" else "manual",
        notes=raw.get("notes"),
    )


def _entity_to_json(entity: MatchedEntity) -> dict[str, Any]:
    out: dict[str, Any] = {
        "entity_type": entity.entity_type,
        "entity_id": entity.entity_id,
        "matched_by": entity.matched_by,
    }
    if entity.entity_name is not None:
        out["entity_name"] = entity.entity_name
    if entity.confidence is not None:
        out["confidence"] = entity.confidence
    if entity.notes is not None:
        out["notes"] = entity.notes
    return out


def _to_record(row: RcTransaction) -> TransactionRecord:
    return TransactionRecord(
        id=row.id,
        execution_date=row.execution_date,
        amount=quantize_amount(row.amount),
        counterparty_name=row.counterparty_name or "",
        communication=row.communication or "",
        counterparty_account=row.counterparty_account or "",
        account_number=row.account_number or "",
        dedup_hash=row.dedup_hash,
        is_parent=bool(row.is_parent),
        parent_id=row.parent_id,
        child_index=row.child_index,
        child_count=row.child_count,
        matched_entities=tuple(_entity_from_json(e) for e in (row.matched_entities or [])),
        category=row.category,
        account_code=row.account_code,
        sequence_number=row.sequence_number,
        reconciled=bool(row.reconciled),
    )


def _apply(row: RcTransaction, rec: TransactionRecord) -> None:
    row.execution_date = rec.execution_date
    row.amount = quantize_amount(rec.amount)
    row.counterparty_name = rec.counterparty_name
    row.communication = rec.communication
    row.counterparty_account = rec.counterparty_account
    row.account_number = rec.account_number
    row.dedup_hash = rec.dedup_hash
    row.sequence_number = rec.sequence_number
    row.is_parent = rec.is_parent
    row.parent_id = rec.parent_id
    row.child_index = rec.child_index
    row.child_count = rec.child_count
    row.matched_entities = [_entity_to_json(e) for e in rec.matched_entities]
    row.category = rec.category
    row.account_code = rec.account_code
    row.reconciled = rec.reconciled


def load_transactions(
    session: Session, *, ids: Iterable[str] | None = None
) -> list[TransactionRecord]:
    stmt = select(RcTransaction).order_by(RcTransaction.id)
    if ids is not None:
        stmt = stmt.where(RcTransaction.id.in_(list(ids)))
    rows = session.execute(stmt).scalars().all()
    return [_to_record(r) for r in rows]


def get_transaction(session: Session, transaction_id: str) -> TransactionRecord | None:
    row = session.get(RcTransaction, transaction_id)
    return _to_record(row) if row is not None else None


def save_transactions(session: Session, records: Iterable[TransactionRecord]) -> int:
    """Insert or update ``records`` by id; returns the number written.

    Flushes but does not commit.
    """

    written = 0
    for rec in records:
        row = session.get(RcTransaction, rec.id)
        if row is None:
            row = RcTransaction(id=rec.id)
            session.add(row)
        _apply(row, rec)
        written += 1
    session.flush()
    _logger.debug("saved %d transaction(s)", written)
    return written


def delete_transactions(session: Session, ids: Iterable[str]) -> int:
    id_list = list(ids)
    if not id_list:
        return 0
    result = session.execute(delete(RcTransaction).where(RcTransaction.id.in_(id_list)))
    session.flush()
    removed = result.rowcount or 0
    _logger.debug("deleted %d transaction(s)", removed)
    return removed


__all__ = [
    "load_transactions",
    "get_transaction",
    "save_transactions",
    "delete_transactions",
]
