"""Fingerprinting and duplicate detection for imported bank lines.

The same statement is routinely imported more than once (overlapping CSV
exports, a re-run of a failed import). Each line gets a SHA-256 fingerprint
over its canonical fields; two records with the same fingerprint are the same
logical bank movement regardless of which batch produced them.

Public surface:
- ``fingerprint``: canonical hash of a record or raw line.
- ``find_duplicates``: groups of records sharing a fingerprint (detect only;
  removal is an operator decision, ``DuplicateGroup.discard`` proposes the
  members after the earliest id).
- ``screen_import``: split an import batch into new lines, re-imports and id
  conflicts.
- ``live_transactions`` / ``total_amount``: the records that count toward
  financial totals for a given current account.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable, Sequence
from dataclasses import replace
from decimal import Decimal

from .logging_setup import get_logger
from .models import DuplicateGroup, ImportScreen, RawBankLine, TransactionRecord
from .normalizers import collapse_ws, format_amount, normalize_account
from .ventilation import superseded_children

_logger = get_logger("bank_reconciliation.dedup")


def fingerprint(record: TransactionRecord | RawBankLine) -> str:
    """Compute a stable SHA-256 fingerprint over canonical fields.

    Fields used: execution date (YYYY-MM-DD), amount (2dp string), communication
    (case-folded, whitespace-collapsed), counterparty account (whitespace
    removed). Counterparty name is not part of the fingerprint.
    """

    payload = {
        "date": record.execution_date.isoformat(),
        "amount": format_amount(Decimal(record.amount)),
        "communication": collapse_ws(record.communication).casefold(),
        "counterparty_account": normalize_account(record.counterparty_account),
    }
    data = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def assign_fingerprint(record: TransactionRecord) -> TransactionRecord:
    """Return ``record`` with ``dedup_hash`` set to its computed fingerprint."""

    fp = fingerprint(record)
    if record.dedup_hash == fp:
        return record
    return replace(record, dedup_hash=fp)


def _effective_hash(record: TransactionRecord) -> str:
    return record.dedup_hash or fingerprint(record)


def _on_account(record: TransactionRecord, current_account: str | None) -> bool:
    if current_account is None:
        return True
    return normalize_account(record.account_number) == normalize_account(current_account)


def find_duplicates(
    records: Iterable[TransactionRecord],
    *,
    current_account: str | None = None,
) -> list[DuplicateGroup]:
    """Partition ``records`` by fingerprint and return groups with 2+ members.

    Parent records are skipped (their children carry derived hashes). When
    ``current_account`` is given only movements on that account are
    considered. Groups are ordered by their earliest id, members by id, so
    repeated runs over the same data report identical groups.
    """

    by_hash: dict[str, list[TransactionRecord]] = {}
    scanned = 0
    for rec in records:
        if rec.is_parent or not _on_account(rec, current_account):
            continue
        scanned += 1
        by_hash.setdefault(_effective_hash(rec), []).append(rec)

    groups: list[DuplicateGroup] = []
    for fp, members in by_hash.items():
        if len(members) < 2:
            continue
        ordered = tuple(sorted(members, key=lambda r: r.id))
        groups.append(DuplicateGroup(fingerprint=fp, records=ordered))
        _logger.debug(
            "duplicate group %s: %d records (keep %s)", fp[:12], len(ordered), ordered[0].id
        )

    groups.sort(key=lambda g: g.keep.id)
    _logger.info(
        "find_duplicates: scanned=%d groups=%d spurious=%d",
        scanned,
        len(groups),
        sum(len(g.discard) for g in groups),
    )
    return groups


def screen_import(
    lines: Sequence[RawBankLine],
    existing: Iterable[TransactionRecord],
    *,
    id_prefix: str = "imp",
) -> ImportScreen:
    """Fingerprint an import batch and flag lines that already exist.

    A line is ``already_present`` when its fingerprint matches a stored record
    or an earlier line of the same batch. A line whose id is already taken by
    a record with another fingerprint is a conflict: writing it would replace
    that record. Lines without an ``id`` receive
    ``"{id_prefix}_{fingerprint[:16]}"``.
    """

    seen: set[str] = set()
    taken: set[str] = set()
    for r in existing:
        seen.add(_effective_hash(r))
        taken.add(r.id)

    new: list[TransactionRecord] = []
    present: list[TransactionRecord] = []
    conflicts: list[TransactionRecord] = []
    for line in lines:
        fp = fingerprint(line)
        rec = line.to_record(record_id=line.id or f"{id_prefix}_{fp[:16]}", dedup_hash=fp)
        if fp in seen:
            present.append(rec)
            _logger.debug("import line %s already present (%s)", rec.id, fp[:12])
            continue
        if rec.id in taken:
            conflicts.append(rec)
            _logger.warning("import line %s reuses a stored id with different content", rec.id)
            continue
        seen.add(fp)
        taken.add(rec.id)
        new.append(rec)

    _logger.info(
        "screen_import: new=%d already_present=%d conflicts=%d",
        len(new),
        len(present),
        len(conflicts),
    )
    return ImportScreen(
        new=tuple(new), already_present=tuple(present), conflicts=tuple(conflicts)
    )


def live_transactions(
    records: Iterable[TransactionRecord],
    *,
    current_account: str,
) -> list[TransactionRecord]:
    """Records that count toward totals for ``current_account``.

    Parents are excluded, as are movements on other accounts and allocation
    lines of a parent that is no longer split; of several records sharing a
    fingerprint only the earliest id survives. Input order is preserved for
    the survivors.
    """

    records = list(records)
    stale = superseded_children(records)
    eligible = [
        r
        for r in records
        if not r.is_parent and r.id not in stale and _on_account(r, current_account)
    ]
    keep: dict[str, str] = {}
    for rec in eligible:
        fp = _effective_hash(rec)
        if fp not in keep or rec.id < keep[fp]:
            keep[fp] = rec.id
    return [r for r in eligible if keep[_effective_hash(r)] == r.id]


def total_amount(records: Iterable[TransactionRecord], *, current_account: str) -> Decimal:
    return sum(
        (r.amount for r in live_transactions(records, current_account=current_account)),
        Decimal("0"),
    )


__all__ = [
    "fingerprint",
    "assign_fingerprint",
    "find_duplicates",
    "screen_import",
    "live_transactions",
    "total_amount",
]
