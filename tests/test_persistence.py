from __future__ import annotations

from decimal import Decimal
from pathlib import Path

from sqlalchemy import select

from bank_reconciliation.links import link
from bank_reconciliation.models import AllocationInput
from bank_reconciliation.persistence import (
    delete_transactions,
    get_transaction,
    load_transactions,
    save_transactions,
)
from bank_reconciliation.ventilation import split
from db.client import session_scope
from db.models.reconciliation import RcTransaction
from tests.helpers.builders import tx
from tests.helpers.db import bootstrap_sqlite_db


def test_round_trip_preserves_records(tmp_path: Path):
    url = bootstrap_sqlite_db(tmp_path / "store.sqlite3")
    plain = link(
        tx("t1", "-45.50", communication="COTISATION", dedup_hash="h1"),
        "event",
        "E1",
        "Sortie Zeeland",
        confidence=87.5,
        matched_by="auto",
    )
    result = split(
        tx("t2", "-90.00", communication="FACTURE", dedup_hash="h2"),
        [AllocationInput("60"), AllocationInput("30")],
    )
    records = [plain, result.parent, *result.children]

    with session_scope(database_url=url) as session:
        assert save_transactions(session, records) == 4

    with session_scope(database_url=url) as session:
        loaded = load_transactions(session)
    assert loaded == sorted(records, key=lambda r: r.id)
    assert loaded[0].amount == Decimal("-45.50")


def test_save_updates_existing_rows_and_delete_removes(tmp_path: Path):
    url = bootstrap_sqlite_db(tmp_path / "store.sqlite3")
    rec = tx("t1", "10", communication="x")
    with session_scope(database_url=url) as session:
        save_transactions(session, [rec, tx("t2", "20")])
    with session_scope(database_url=url) as session:
        save_transactions(session, [link(rec, "inscription", "I1")])
    with session_scope(database_url=url) as session:
        updated = get_transaction(session, "t1")
        assert updated is not None and updated.reconciled
        assert [r.id for r in load_transactions(session, ids=["t2"])] == ["t2"]
        assert delete_transactions(session, ["t2", "missing"]) == 1
        assert delete_transactions(session, []) == 0
    with session_scope(database_url=url) as session:
        assert [r.id for r in load_transactions(session)] == ["t1"]
        assert get_transaction(session, "t2") is None


def test_legacy_demand_links_load_as_expense(tmp_path: Path):
    url = bootstrap_sqlite_db(tmp_path / "store.sqlite3")
    with session_scope(database_url=url) as session:
        save_transactions(session, [tx("t1", "-20")])
        row = session.execute(select(RcTransaction)).scalar_one()
        row.matched_entities = [{"entity_type": "demand", "entity_id": "D7"}]
    with session_scope(database_url=url) as session:
        (loaded,) = load_transactions(session)
    assert [e.key for e in loaded.matched_entities] == [("expense", "D7")]
