"""Ventilation: splitting one bank movement into allocation lines.

A single payment often covers several things (three members' dues in one
transfer, a supplier invoice spanning two budget codes). Splitting marks the
original record as a *parent* and derives one *child* per allocation. From
then on the parent is excluded from linking and totals; its children stand in
for it, so the financial aggregate is unchanged.

Public surface
--------------
- ``split`` / ``unsplit``: create or remove a ventilation.
- ``validate_allocations`` / ``remaining_amount``: advisory checks for an
  editor; ``split`` itself only enforces positive amounts.
- ``suggest_allocations``: pick a combination of expected amounts that adds
  up to the movement.
- ``find_orphan_children`` / ``repair_orphan_children``: allocation lines left
  without a split parent, and their removal or conversion to plain records.
- ``available_for_linking`` / ``aggregate_amount``: the parent-exclusion rule.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from decimal import Decimal
from itertools import combinations
from typing import Literal

from .errors import AlreadySplit, InvalidAllocation, ReconciliationError
from .logging_setup import get_logger
from .models import AllocationInput, OrphanChildrenReport, SplitResult, TransactionRecord

_logger = get_logger("bank_reconciliation.ventilation")

MAX_DESCRIPTION_LEN = 200
MAX_NOTES_LEN = 500


def _child_hash(parent: TransactionRecord, index: int) -> str | None:
    if parent.dedup_hash is None:
        return None
    return f"{parent.dedup_hash}_child_{index}"


def split(
    transaction: TransactionRecord, allocations: Sequence[AllocationInput]
) -> SplitResult:
    """Split ``transaction`` into one child per allocation.

    Raises
    ------
    AlreadySplit
        ``transaction`` is already a parent, or is itself a child.
    InvalidAllocation
        ``allocations`` is empty or an amount is not strictly positive.
    """

    if transaction.is_parent:
        raise AlreadySplit(transaction.id)
    if transaction.is_child:
        raise AlreadySplit(transaction.id, is_child=True)
    if not allocations:
        raise InvalidAllocation(f"No allocations given for transaction {transaction.id!r}")
    for i, alloc in enumerate(allocations, start=1):
        if alloc.amount <= 0:
            raise InvalidAllocation(
                f"Allocation {i} of {transaction.id!r} must be positive, got {alloc.amount}"
            )

    sign = -1 if transaction.amount < 0 else 1
    total = len(allocations)
    children: list[TransactionRecord] = []
    for i, alloc in enumerate(allocations, start=1):
        child_id = f"{transaction.id}_child_{i}"
        children.append(
            TransactionRecord(
                id=child_id,
                execution_date=transaction.execution_date,
                amount=sign * alloc.amount,
                counterparty_name=alloc.description or transaction.counterparty_name,
                communication=f"{transaction.communication} - line {i}/{total}",
                counterparty_account=transaction.counterparty_account,
                account_number=transaction.account_number,
                dedup_hash=_child_hash(transaction, i),
                parent_id=transaction.id,
                child_index=i,
                child_count=total,
                matched_entities=transaction.matched_entities,
                category=alloc.category or transaction.category,
                account_code=alloc.account_code or transaction.account_code,
                sequence_number=child_id,
                reconciled=transaction.reconciled,
            )
        )

    parent = replace(transaction, is_parent=True)
    _logger.info("split %s into %d allocations", transaction.id, total)
    return SplitResult(parent=parent, children=tuple(children))


def unsplit(
    parent: TransactionRecord, children: Iterable[TransactionRecord] = ()
) -> TransactionRecord:
    """Revert ``parent`` to a plain record.

    ``children`` are only checked to belong to ``parent``; the caller removes
    them from the store.
    """

    if not parent.is_parent:
        raise ReconciliationError(f"Transaction {parent.id!r} is not split")
    for child in children:
        if child.parent_id != parent.id:
            raise ReconciliationError(
                f"Transaction {child.id!r} is not an allocation of {parent.id!r}"
            )
    _logger.info("unsplit %s", parent.id)
    return replace(parent, is_parent=False)


@dataclass(frozen=True, slots=True)
class AllocationValidation:
    ok: bool
    errors: tuple[str, ...] = ()


def remaining_amount(
    transaction: TransactionRecord, allocations: Sequence[AllocationInput]
) -> Decimal:
    """Magnitude still to allocate (negative when over-allocated)."""

    return transaction.abs_amount - sum((a.amount for a in allocations), Decimal("0"))


def validate_allocations(
    transaction: TransactionRecord,
    allocations: Sequence[AllocationInput],
    *,
    tolerance: Decimal = Decimal("0.01"),
) -> AllocationValidation:
    """Editor-side checks for a proposed split.

    Rules
    -----
    - At least two lines.
    - Every amount strictly positive.
    - Description at most 200 characters, notes at most 500.
    - Magnitudes add up to ``|transaction.amount|`` within ``tolerance``.
    """

    errors: list[str] = []
    if len(allocations) < 2:
        errors.append("A split needs at least two lines")
    for i, alloc in enumerate(allocations, start=1):
        if alloc.amount <= 0:
            errors.append(f"Line {i}: amount must be positive")
        if alloc.description and len(alloc.description) > MAX_DESCRIPTION_LEN:
            errors.append(f"Line {i}: description exceeds {MAX_DESCRIPTION_LEN} characters")
        if alloc.notes and len(alloc.notes) > MAX_NOTES_LEN:
            errors.append(f"Line {i}: notes exceed {MAX_NOTES_LEN} characters")
    remaining = remaining_amount(transaction, allocations)
    if abs(remaining) > tolerance:
        errors.append(
            f"Lines total {transaction.abs_amount - remaining:.2f}, "
            f"expected {transaction.abs_amount:.2f}"
        )
    return AllocationValidation(ok=not errors, errors=tuple(errors))


def suggest_allocations(
    transaction: TransactionRecord,
    expected: Sequence[tuple[str, Decimal]],
    *,
    tolerance: Decimal = Decimal("0.01"),
    max_size: int = 5,
) -> list[AllocationInput] | None:
    """First combination of ``expected`` (label, amount) pairs matching the movement.

    Combinations are tried from size 2 up to ``max_size`` in input order, so a
    smaller explanation always wins. Returns ``None`` when nothing fits.
    """

    target = transaction.abs_amount
    items = [(label, abs(Decimal(amount))) for label, amount in expected]
    for size in range(2, min(max_size, len(items)) + 1):
        for combo in combinations(items, size):
            if abs(sum((amt for _, amt in combo), Decimal("0")) - target) <= tolerance:
                _logger.debug(
                    "allocation suggestion for %s: %s",
                    transaction.id,
                    ", ".join(label for label, _ in combo),
                )
                return [AllocationInput(amount=amt, description=label) for label, amt in combo]
    return None


def find_orphan_children(records: Iterable[TransactionRecord]) -> OrphanChildrenReport:
    """Children whose ``parent_id`` names no split parent in ``records``.

    That happens when a parent was deleted, or reverted to a plain record
    while its allocation lines stayed behind.
    """

    records = list(records)
    parents = {r.id for r in records if r.is_parent}
    orphans = [r for r in records if r.is_child and r.parent_id not in parents]
    present = {r.id for r in records}
    missing = sorted({r.parent_id for r in orphans if r.parent_id not in present})
    for rec in orphans:
        _logger.debug("orphan child %s (parent %s)", rec.id, rec.parent_id)
    _logger.info("find_orphan_children: scanned=%d orphans=%d", len(records), len(orphans))
    return OrphanChildrenReport(
        orphans=tuple(orphans),
        missing_parent_ids=tuple(missing),
        total_amount=sum((r.amount for r in orphans), Decimal("0")),
    )


def repair_orphan_children(
    records: Iterable[TransactionRecord],
    *,
    action: Literal["delete", "convert"],
) -> tuple[list[TransactionRecord], list[str]]:
    """Resolve orphan children by deleting them or turning them into plain records.

    Returns ``(converted, delete_ids)``; exactly one of the two is non-empty
    when orphans exist. The caller persists the outcome.
    """

    if action not in ("delete", "convert"):
        raise ValueError(f"Unknown orphan repair action: {action!r}")
    orphans = find_orphan_children(records).orphans
    if action == "delete":
        return [], [r.id for r in orphans]
    converted = [
        replace(r, parent_id=None, child_index=None, child_count=None) for r in orphans
    ]
    return converted, []


def superseded_children(records: Iterable[TransactionRecord]) -> set[str]:
    """Ids of children whose parent is present but no longer split.

    Such a parent counts as a plain movement again, so its stale lines must
    not count a second time.
    """

    records = list(records)
    plain = {r.id for r in records if not r.is_parent}
    return {r.id for r in records if r.is_child and r.parent_id in plain}


def available_for_linking(records: Iterable[TransactionRecord]) -> list[TransactionRecord]:
    return [r for r in records if not r.is_parent]


def aggregate_amount(records: Iterable[TransactionRecord]) -> Decimal:
    records = list(records)
    stale = superseded_children(records)
    return sum(
        (r.amount for r in records if not r.is_parent and r.id not in stale), Decimal("0")
    )


__all__ = [
    "AllocationValidation",
    "split",
    "unsplit",
    "validate_allocations",
    "remaining_amount",
    "suggest_allocations",
    "find_orphan_children",
    "repair_orphan_children",
    "superseded_children",
    "available_for_linking",
    "aggregate_amount",
]
