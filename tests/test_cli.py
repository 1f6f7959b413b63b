from __future__ import annotations

import json
from decimal import Decimal
from pathlib import Path

import pytest
from typer.testing import CliRunner

from bank_reconciliation.cli import app
from bank_reconciliation.persistence import load_transactions, save_transactions
from db.client import session_scope
from tests.helpers.builders import CLUB_ACCOUNT, tx
from tests.helpers.db import bootstrap_sqlite_db

runner = CliRunner()


@pytest.fixture()
def store(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> str:
    url = bootstrap_sqlite_db(tmp_path / "store.sqlite3")
    monkeypatch.setenv("DATABASE_URL", url)
    monkeypatch.chdir(tmp_path)
    return url


def _stored(url: str):
    with session_scope(database_url=url) as session:
        return load_transactions(session)


def _seed(url: str, *records) -> None:
    with session_scope(database_url=url) as session:
        save_transactions(session, records)


def test_import_lines_skips_repeats(store: str, tmp_path: Path):
    line = {
        "execution_date": "2025-03-01",
        "amount": "-45,50",
        "communication": "COTISATION",
        "counterparty_name": "CLUB X",
        "account_number": CLUB_ACCOUNT,
    }
    path = tmp_path / "lines.json"
    path.write_text(json.dumps([line, line, {**line, "amount": "-12.00"}]), encoding="utf-8")

    result = runner.invoke(app, ["import-lines", "--json-path", str(path)])
    assert result.exit_code == 0, result.output
    assert "imported=2 already_present=1" in result.output

    again = runner.invoke(app, ["import-lines", "--json-path", str(path)])
    assert "imported=0 already_present=3" in again.output
    assert len(_stored(store)) == 2


def test_import_lines_keeps_stored_record_on_id_conflict(store: str, tmp_path: Path):
    _seed(
        store,
        tx("2025-001", "-90", communication="FACTURE", links=(("event", "E1"),), is_parent=True),
    )
    line = {
        "id": "2025-001",
        "execution_date": "2025-03-01",
        "amount": "-90",
        "communication": "other",
    }
    path = tmp_path / "lines.json"
    path.write_text(json.dumps([line]), encoding="utf-8")

    result = runner.invoke(app, ["import-lines", "--json-path", str(path)])
    assert result.exit_code == 0, result.output
    assert "imported=0 already_present=0 conflicts=1" in result.output
    (rec,) = _stored(store)
    assert rec.is_parent
    assert rec.communication == "FACTURE"
    assert [e.key for e in rec.matched_entities] == [("event", "E1")]


def test_import_lines_rejects_invalid_payload(store: str, tmp_path: Path):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps([{"amount": "1"}]), encoding="utf-8")
    result = runner.invoke(app, ["import-lines", "--json-path", str(path)])
    assert result.exit_code == 1
    assert "invalid bank line" in result.output


def test_find_duplicates_discard_keeps_earliest(store: str):
    _seed(
        store,
        tx("a", "-45.50", communication="COTISATION"),
        tx("b", "-45.50", communication="cotisation"),
        tx("c", "-12", communication="PISCINE"),
    )
    report = runner.invoke(app, ["find-duplicates"])
    assert report.exit_code == 0, report.output
    assert "keep\ta\t" in report.output
    assert "dup\tb\t" in report.output

    result = runner.invoke(app, ["find-duplicates", "--discard", "--yes"])
    assert result.exit_code == 0, result.output
    assert "discarded=1" in result.output
    assert [r.id for r in _stored(store)] == ["a", "c"]


def test_find_duplicates_with_invalid_config_exits_1(store: str, monkeypatch):
    monkeypatch.setenv("RECON_GROUP_TOLERANCE", "lots")
    result = runner.invoke(app, ["find-duplicates"])
    assert result.exit_code == 1
    assert "RECON_GROUP_TOLERANCE" in result.output


def test_scan_links_fix_persists_repair(store: str):
    _seed(store, tx("a", "10", links=(("event", "E1"), ("event", "E1"))))
    result = runner.invoke(app, ["scan-links", "--fix", "--yes"])
    assert result.exit_code == 0, result.output
    assert "duplicates=1" in result.output
    assert "repaired=1" in result.output
    (rec,) = _stored(store)
    assert [e.key for e in rec.matched_entities] == [("event", "E1")]


def test_clean_links_removes_orphans(store: str, tmp_path: Path):
    _seed(store, tx("a", "10", links=(("event", "E1"), ("event", "OLD")), reconciled=True))
    catalog = tmp_path / "catalog.json"
    catalog.write_text(json.dumps({"event": ["E1"]}), encoding="utf-8")
    result = runner.invoke(app, ["clean-links", "--catalog", str(catalog), "--yes"])
    assert result.exit_code == 0, result.output
    assert "orphans_removed=1" in result.output
    (rec,) = _stored(store)
    assert [e.entity_id for e in rec.matched_entities] == ["E1"]


def test_split_then_unsplit(store: str):
    _seed(store, tx("T1", "-45.50", communication="FACTURE"))
    result = runner.invoke(
        app, ["split", "T1", "--amount", "30", "--amount", "15.50", "--description", "Gaz"]
    )
    assert result.exit_code == 0, result.output
    ids = [r.id for r in _stored(store)]
    assert ids == ["T1", "T1_child_1", "T1_child_2"]

    again = runner.invoke(app, ["split", "T1", "--amount", "45.50"])
    assert again.exit_code == 1
    assert "already split" in again.output

    undo = runner.invoke(app, ["unsplit", "T1", "--yes"])
    assert undo.exit_code == 0, undo.output
    (restored,) = _stored(store)
    assert not restored.is_parent


def test_split_unknown_transaction(store: str):
    result = runner.invoke(app, ["split", "nope", "--amount", "1"])
    assert result.exit_code == 1
    assert "not found" in result.output


def test_rank_prints_best_candidate_first(store: str):
    _seed(
        store,
        tx("far", "150"),
        tx("near", "100.01"),
        tx("exact", "100", counterparty_name="Jean Dupont"),
        tx("out", "-100"),
    )
    result = runner.invoke(app, ["rank", "--mode", "inscription", "--amount", "100"])
    assert result.exit_code == 0, result.output
    lines = [line for line in result.stdout.splitlines() if line.strip()]
    assert [line.split("\t")[2] for line in lines] == ["exact", "near", "far"]

    grouped = runner.invoke(app, ["rank", "--mode", "event", "--group"])
    assert grouped.exit_code == 0, grouped.output
    assert "~150.00 (1)" in grouped.output
    assert "~100.00 (3)" in grouped.output


def test_rank_rejects_unknown_mode(store: str):
    result = runner.invoke(app, ["rank", "--mode", "refund"])
    assert result.exit_code == 1


def test_suggest_category_lists_codes(store: str):
    _seed(
        store,
        tx("h1", "45", communication="Cotisation 2024", account_code="7000"),
        tx("new", "45", communication="Cotisation 2025"),
    )
    result = runner.invoke(app, ["suggest-category", "new"])
    assert result.exit_code == 0, result.output
    assert "7000\t1\tkeyword + amount match" in result.output

    missing = runner.invoke(app, ["suggest-category", "ghost"])
    assert missing.exit_code == 1


def test_orphan_children_report_then_convert(store: str):
    _seed(
        store,
        tx("P", "-20"),
        tx("P_child_1", "-10", parent_id="P", child_index=1, child_count=2),
        tx("Q_child_2", "-5", parent_id="Q", child_index=2, child_count=2),
    )
    report = runner.invoke(app, ["orphan-children"])
    assert report.exit_code == 0, report.output
    assert "orphans=2 total=-15.00 missing_parents=1" in report.output

    fixed = runner.invoke(app, ["orphan-children", "--action", "convert", "--yes"])
    assert fixed.exit_code == 0, fixed.output
    assert "converted=2" in fixed.output
    assert all(not r.is_child for r in _stored(store))


def test_orphan_children_delete(store: str):
    _seed(store, tx("Q_child_2", "-5", parent_id="Q", child_index=2, child_count=2))
    result = runner.invoke(app, ["orphan-children", "--action", "delete", "--yes"])
    assert result.exit_code == 0, result.output
    assert "deleted=1" in result.output
    assert _stored(store) == []

    bad = runner.invoke(app, ["orphan-children", "--action", "archive"])
    assert bad.exit_code == 1


def test_split_accepts_thousands_separator(store: str):
    _seed(store, tx("T1", "-1234.56", communication="LOYER"))
    result = runner.invoke(
        app, ["split", "T1", "--amount", "1.000,00", "--amount", "234,56"]
    )
    assert result.exit_code == 0, result.output
    amounts = [r.amount for r in _stored(store) if r.is_child]
    assert amounts == [Decimal("-1000.00"), Decimal("-234.56")]


def test_lookup_by_sequence_or_receipt_name(store: str):
    _seed(
        store,
        tx("T1", "-80", communication="HOTEL", sequence_number="2024-123"),
        tx("T2", "-15", communication="PARKING", sequence_number="2024-124"),
    )
    by_number = runner.invoke(app, ["lookup", "2024-124"])
    assert by_number.exit_code == 0, by_number.output
    assert "T2\t2025-03-01\t-15.00" in by_number.output

    by_file = runner.invoke(app, ["lookup", "2024-123-2_facture_hotel.pdf"])
    assert by_file.exit_code == 0, by_file.output
    assert "HOTEL" in by_file.output

    missing = runner.invoke(app, ["lookup", "2099-1"])
    assert missing.exit_code == 1
    assert "no transaction with sequence 2099-1" in missing.output
