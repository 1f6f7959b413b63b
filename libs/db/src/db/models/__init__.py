"""Shared SQLAlchemy models registry for the workspace database.

Currently holds the transaction store used by ``bank_reconciliation``.
"""

from .reconciliation import Base, RcTransaction

__all__ = [
    "Base",
    "RcTransaction",
]
