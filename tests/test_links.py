from __future__ import annotations

import pytest

from bank_reconciliation.links import (
    LinkSet,
    clean_orphans,
    find_duplicate_links,
    is_linked_to_other,
    link,
    remove_orphan_links,
    repair,
    repair_reconciled_flags,
    scan_links,
    unlink,
)
from bank_reconciliation.models import MatchedEntity
from tests.helpers.builders import tx


def _keys(record):
    return [e.key for e in record.matched_entities]


def test_link_is_idempotent_and_sets_reconciled():
    base = tx("t1", "50")
    once = link(base, "event", "E1", "Sortie Zeeland")
    twice = link(once, "event", "E1", "Sortie Zeeland")
    assert twice is once
    assert _keys(once) == [("event", "E1")]
    assert once.reconciled
    assert not base.reconciled and base.matched_entities == ()


def test_link_keeps_existing_entry_on_known_key():
    first = link(tx("t1", "50"), "event", "E1", "first", confidence=90, matched_by="auto")
    again = link(first, "event", "E1", "second")
    assert again.matched_entities[0].entity_name == "first"
    assert again.matched_entities[0].matched_by == "auto"


def test_link_maps_legacy_type_and_rejects_unknown():
    rec = link(tx("t1", "-20"), "demand", "D1")
    assert _keys(rec) == [("expense", "D1")]
    with pytest.raises(ValueError):
        link(tx("t1", "-20"), "member", "M1")


def test_unlink_missing_is_noop_and_last_unlink_clears_reconciled():
    rec = link(tx("t1", "50"), "inscription", "I1")
    assert unlink(rec, "event", "E9") is rec
    cleared = unlink(rec, "inscription", "I1")
    assert cleared.matched_entities == ()
    assert not cleared.reconciled


def test_unlink_expense_also_drops_legacy_demand_entries():
    rec = tx(
        "t1",
        "-20",
        matched_entities=(
            MatchedEntity("demand", "X1"),
            MatchedEntity("expense", "X1"),
            MatchedEntity("event", "E1"),
        ),
        reconciled=True,
    )
    out = unlink(rec, "expense", "X1")
    assert _keys(out) == [("event", "E1")]
    assert out.reconciled


def test_repair_collapses_duplicates_first_occurrence_wins():
    rec = tx(
        "t1",
        "50",
        matched_entities=(
            MatchedEntity("event", "E1", entity_name="first"),
            MatchedEntity("event", "E1", entity_name="second"),
            MatchedEntity("inscription", "I1"),
        ),
    )
    dups = find_duplicate_links(rec)
    assert len(dups) == 1
    assert (dups[0].entity_type, dups[0].entity_id, dups[0].indices) == ("event", "E1", (0, 1))

    fixed = repair(rec)
    assert _keys(fixed) == [("event", "E1"), ("inscription", "I1")]
    assert fixed.matched_entities[0].entity_name == "first"
    assert repair(fixed) is fixed
    assert find_duplicate_links(fixed) == []


def test_is_linked_to_other():
    rec = tx("t1", "50", links=(("inscription", "I1"), ("event", "E1")))
    assert is_linked_to_other(rec, "inscription")
    assert not is_linked_to_other(rec, "inscription", "I1")
    assert not is_linked_to_other(rec, "expense")


def test_linkset_keeps_first_and_reports_membership():
    links = LinkSet([MatchedEntity("event", "E1", "a"), MatchedEntity("event", "E1", "b")])
    assert len(links) == 1
    assert ("event", "E1") in links
    assert not links.add(MatchedEntity("event", "E1", "c"))
    assert links.discard(("event", "E1"))
    assert links.entities() == ()


def test_scan_links_reports_and_repairs_in_fix_mode():
    clean = tx("a", "10", links=(("event", "E1"),))
    multi = tx("b", "10", links=(("event", "E1"), ("inscription", "I1")))
    dup = tx("c", "10", links=(("event", "E1"), ("event", "E1")))
    none = tx("d", "10")

    report, repaired = scan_links([clean, multi, dup, none])
    assert report.scanned == 4
    assert report.with_links == 3
    assert report.with_multiple_links == 2
    assert report.with_duplicate_keys == 1
    assert report.duplicate_ids == ("c",)
    assert report.repaired == 0 and repaired == []

    report, repaired = scan_links([clean, multi, dup, none], fix=True)
    assert report.repaired == 1
    assert [r.id for r in repaired] == ["c"]
    assert _keys(repaired[0]) == [("event", "E1")]


def test_clean_orphans_counts_removed_links_per_type():
    a = tx("a", "10", links=(("event", "E1"), ("event", "GONE")), reconciled=True)
    b = tx("b", "-5", links=(("expense", "X9"),), reconciled=True)
    c = tx("c", "7", links=(("inscription", "I1"),), reconciled=True)
    existing = {"event": {"E1"}, "expense": {"X1"}}

    updated_a, removed = remove_orphan_links(a, existing)
    assert [e.entity_id for e in removed] == ["GONE"]
    assert _keys(updated_a) == [("event", "E1")]

    report, updated = clean_orphans([a, b, c], existing)
    assert report.transactions_updated == 2
    assert report.links_removed == 2
    assert report.removed_by_type == {"event": 1, "expense": 1}
    by_id = {r.id: r for r in updated}
    assert not by_id["b"].reconciled
    assert "c" not in by_id


def test_repair_reconciled_flags():
    linked = tx("a", "10", links=(("event", "E1"),))
    stale = tx("b", "10", reconciled=True)
    fine = tx("c", "10")
    checked, fixed = repair_reconciled_flags([linked, stale, fine])
    assert checked == 3
    assert [(r.id, r.reconciled) for r in fixed] == [("a", True), ("b", False)]
