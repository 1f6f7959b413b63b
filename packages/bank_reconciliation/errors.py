"""Structured error signals raised by the reconciliation engine.

All engine errors derive from :class:`ReconciliationError` (itself a
``ValueError``) so callers can catch invalid-input conditions with either.
Operations that can be satisfied trivially (linking an existing pair,
unlinking a missing one, repairing a clean record) never raise.
"""

from __future__ import annotations


class ReconciliationError(ValueError):
    """Base class for engine errors."""


class InvalidRecord(ReconciliationError):
    """A transaction record violates the parent/child invariants."""


class AlreadySplit(ReconciliationError):
    """``split`` was requested on a record that is already a parent (or a child)."""

    def __init__(self, transaction_id: str, *, is_child: bool = False) -> None:
        self.transaction_id = transaction_id
        self.is_child = is_child
        what = "is a child allocation" if is_child else "is already split"
        super().__init__(f"Transaction {transaction_id!r} {what}")


class InvalidAllocation(ReconciliationError):
    """The allocation list given to ``split`` is empty or holds a non-positive amount."""


__all__ = [
    "ReconciliationError",
    "InvalidRecord",
    "AlreadySplit",
    "InvalidAllocation",
]
