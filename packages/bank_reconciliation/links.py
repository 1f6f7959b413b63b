"""Link registry between transactions and business entities.

A transaction's links live in a :class:`LinkSet`, a mapping keyed on
``(entity_type, entity_id)``; the ordered ``matched_entities`` tuple on the
record is only its read projection. Duplicate keys therefore cannot be
produced by ``link``. Records written before that guarantee may still carry
duplicates, which ``repair`` and ``scan_links`` clean up (first occurrence
wins).

Every operation returns a new record and leaves its input untouched.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import replace
from typing import Literal, TypeAlias

from .logging_setup import get_logger
from .models import (
    DuplicateLink,
    LinkScanReport,
    MatchedEntity,
    OrphanCleanupReport,
    TransactionRecord,
    normalize_entity_type,
)

_logger = get_logger("bank_reconciliation.links")

LinkKey: TypeAlias = tuple[str, str]


class LinkSet:
    """Insertion-ordered set of links keyed on ``(entity_type, entity_id)``."""

    __slots__ = ("_items",)

    def __init__(self, entities: Iterable[MatchedEntity] = ()) -> None:
        self._items: dict[LinkKey, MatchedEntity] = {}
        for ent in entities:
            self._items.setdefault(ent.key, ent)

    def __contains__(self, key: object) -> bool:
        return key in self._items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[MatchedEntity]:
        return iter(self._items.values())

    def add(self, entity: MatchedEntity) -> bool:
        """Insert ``entity``; return False (and keep the existing one) on a known key."""

        if entity.key in self._items:
            return False
        self._items[entity.key] = entity
        return True

    def discard(self, key: LinkKey) -> bool:
        return self._items.pop(key, None) is not None

    def entities(self) -> tuple[MatchedEntity, ...]:
        return tuple(self._items.values())


def _with_links(transaction: TransactionRecord, links: LinkSet) -> TransactionRecord:
    return replace(transaction, matched_entities=links.entities(), reconciled=len(links) > 0)


def link(
    transaction: TransactionRecord,
    entity_type: str,
    entity_id: str,
    entity_name: str | None = None,
    *,
    confidence: float | None = None,
    matched_by: Literal["manual", "auto"] = "manual",
    notes: str | None = None,
) -> TransactionRecord:
    """Associate ``transaction`` with an entity; a no-op when the key is present."""

    etype = normalize_entity_type(entity_type)
    links = LinkSet(transaction.matched_entities)
    entity = MatchedEntity(
        entity_type=etype,
        entity_id=entity_id,
        entity_name=entity_name,
        confidence=confidence,
        matched_by=matched_by,
        notes=notes,
    )
    if not links.add(entity):
        _logger.debug("link %s -> %s/%s already present", transaction.id, etype, entity_id)
        return transaction
    _logger.debug("linked %s -> %s/%s", transaction.id, etype, entity_id)
    return _with_links(transaction, links)


def unlink(transaction: TransactionRecord, entity_type: str, entity_id: str) -> TransactionRecord:
    """Remove every link to the given entity; a no-op when there is none.

    Unlinking an ``expense`` also drops entries stored under the legacy
    ``demand`` type with the same id.
    """

    etype = normalize_entity_type(entity_type)
    targets = {(etype, entity_id)}
    if etype == "expense":
        targets.add(("demand", entity_id))
    kept = [e for e in transaction.matched_entities if e.key not in targets]
    if len(kept) == len(transaction.matched_entities):
        return transaction
    _logger.debug("unlinked %s -> %s/%s", transaction.id, etype, entity_id)
    return replace(transaction, matched_entities=tuple(kept), reconciled=bool(kept))


def find_duplicate_links(transaction: TransactionRecord) -> list[DuplicateLink]:
    """Keys that occur more than once, with their positions, in first-seen order."""

    positions: dict[LinkKey, list[int]] = {}
    for i, ent in enumerate(transaction.matched_entities):
        positions.setdefault(ent.key, []).append(i)
    return [
        DuplicateLink(entity_type=k[0], entity_id=k[1], indices=tuple(idx))
        for k, idx in positions.items()
        if len(idx) > 1
    ]


def repair(transaction: TransactionRecord) -> TransactionRecord:
    """Collapse duplicate keys, keeping the first occurrence of each.

    A record without duplicates is returned unchanged (the same object).
    """

    links = LinkSet(transaction.matched_entities)
    if len(links) == len(transaction.matched_entities):
        return transaction
    removed = len(transaction.matched_entities) - len(links)
    _logger.info("repaired %s: removed %d duplicate link(s)", transaction.id, removed)
    return replace(transaction, matched_entities=links.entities())


def is_linked_to_other(
    transaction: TransactionRecord, entity_type: str, excluding_entity_id: str | None = None
) -> bool:
    """True if ``transaction`` links to an entity of ``entity_type`` other than the excluded id."""

    etype = normalize_entity_type(entity_type)
    return any(
        e.entity_type == etype and e.entity_id != excluding_entity_id
        for e in transaction.matched_entities
    )


def scan_links(
    transactions: Iterable[TransactionRecord], *, fix: bool = False
) -> tuple[LinkScanReport, list[TransactionRecord]]:
    """Report link statistics over a batch; with ``fix`` also repair duplicates.

    Returns the report and the repaired records (empty unless ``fix``). Each
    record is repaired on its own, so an interrupted batch can simply be
    re-run.
    """

    scanned = with_links = with_multiple = 0
    duplicate_ids: list[str] = []
    repaired: list[TransactionRecord] = []
    for tx in transactions:
        scanned += 1
        n = len(tx.matched_entities)
        if n:
            with_links += 1
        if n > 1:
            with_multiple += 1
        dups = find_duplicate_links(tx)
        if not dups:
            continue
        duplicate_ids.append(tx.id)
        _logger.info(
            "%s has duplicate links: %s",
            tx.id,
            ", ".join(f"{d.entity_type}/{d.entity_id} x{len(d.indices)}" for d in dups),
        )
        if fix:
            repaired.append(repair(tx))

    report = LinkScanReport(
        scanned=scanned,
        with_links=with_links,
        with_multiple_links=with_multiple,
        with_duplicate_keys=len(duplicate_ids),
        repaired=len(repaired),
        duplicate_ids=tuple(duplicate_ids),
    )
    _logger.info(
        "scan_links: scanned=%d with_links=%d multiple=%d duplicates=%d repaired=%d",
        report.scanned,
        report.with_links,
        report.with_multiple_links,
        report.with_duplicate_keys,
        report.repaired,
    )
    return report, repaired


# ---------------------------------------------------------------------------
# Catalog consistency
# ---------------------------------------------------------------------------


def remove_orphan_links(
    transaction: TransactionRecord, existing_ids: Mapping[str, set[str]]
) -> tuple[TransactionRecord, list[MatchedEntity]]:
    """Drop links whose entity no longer exists.

    ``existing_ids`` maps an entity type to the ids currently in the catalog;
    links of a type absent from the mapping are kept as-is. Returns the
    (possibly unchanged) record and the removed links.
    """

    kept: list[MatchedEntity] = []
    removed: list[MatchedEntity] = []
    for ent in transaction.matched_entities:
        try:
            etype = normalize_entity_type(ent.entity_type)
        except ValueError:
            kept.append(ent)
            continue
        known = existing_ids.get(etype)
        if known is not None and ent.entity_id not in known:
            removed.append(ent)
        else:
            kept.append(ent)
    if not removed:
        return transaction, []
    updated = replace(transaction, matched_entities=tuple(kept), reconciled=bool(kept))
    return updated, removed


def clean_orphans(
    transactions: Iterable[TransactionRecord], existing_ids: Mapping[str, set[str]]
) -> tuple[OrphanCleanupReport, list[TransactionRecord]]:
    updated: list[TransactionRecord] = []
    by_type: dict[str, int] = {}
    links_removed = 0
    for tx in transactions:
        new_tx, removed = remove_orphan_links(tx, existing_ids)
        if not removed:
            continue
        updated.append(new_tx)
        links_removed += len(removed)
        for ent in removed:
            etype = normalize_entity_type(ent.entity_type)
            by_type[etype] = by_type.get(etype, 0) + 1
        _logger.info("%s: removed %d orphan link(s)", tx.id, len(removed))

    report = OrphanCleanupReport(
        transactions_updated=len(updated),
        links_removed=links_removed,
        removed_by_type=by_type,
    )
    return report, updated


def repair_reconciled_flags(
    transactions: Iterable[TransactionRecord],
) -> tuple[int, list[TransactionRecord]]:
    """Make ``reconciled`` agree with whether a record has any link.

    Returns the number of records checked and the corrected records.
    """

    checked = 0
    fixed: list[TransactionRecord] = []
    for tx in transactions:
        checked += 1
        expected = bool(tx.matched_entities)
        if tx.reconciled != expected:
            fixed.append(replace(tx, reconciled=expected))
    if fixed:
        _logger.info("repair_reconciled_flags: fixed %d of %d", len(fixed), checked)
    return checked, fixed


__all__ = [
    "LinkSet",
    "link",
    "unlink",
    "find_duplicate_links",
    "repair",
    "is_linked_to_other",
    "scan_links",
    "remove_orphan_links",
    "clean_orphans",
    "repair_reconciled_flags",
]
