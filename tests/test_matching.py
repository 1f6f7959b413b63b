from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from bank_reconciliation.matching import (
    find_by_sequence,
    match_event,
    match_inscriptions,
    member_name_similarity,
    sequence_from_filename,
)
from bank_reconciliation.models import (
    EventMatchReport,
    EventParticipant,
    InscriptionClaim,
    MatchTriage,
)
from tests.helpers.builders import tx


def test_member_name_similarity_handles_order_and_titles():
    assert member_name_similarity("Jean Dupont", "DUPONT JEAN") == 100.0
    assert member_name_similarity("Mme Marie Martin", "MARTIN MARIE") == 100.0
    assert member_name_similarity("Jean Dupont", "M. Jean Dupont") == 100.0
    assert member_name_similarity("", "DUPONT JEAN") == 0.0


def _transfers():
    return [
        tx("t1", "45", on="2025-03-03", counterparty_name="DUPONT JEAN"),
        tx("t2", "45.30", on="2025-03-01", counterparty_name="M. Jean Dupont"),
        tx("t3", "45", counterparty_name="MARTIN MARIE"),
        tx("t4", "-45", counterparty_name="DUPONT JEAN"),
        tx("t5", "45", counterparty_name="Jean Dupont", links=(("inscription", "I0"),)),
    ]


def test_match_inscriptions_gives_each_transfer_to_one_registration():
    claims = [
        InscriptionClaim("I1", "Jean Dupont", Decimal("45"), registered_on=date(2025, 3, 1)),
        InscriptionClaim("I4", "Jean Dupont", Decimal("45")),
        InscriptionClaim("I2", "Marie Martin", Decimal("45")),
        InscriptionClaim("I3", "Paul Durand", Decimal("45")),
    ]
    matches = match_inscriptions(claims, _transfers())
    assert [(m.inscription_id, m.transaction.id, m.score) for m in matches] == [
        ("I1", "t1", 100),
        ("I4", "t2", 72),
        ("I2", "t3", 90),
    ]
    assert matches[0].date_gap_days == 2
    assert matches[1].date_gap_days is None
    assert matches[1].amount_gap == Decimal("0.30")


def test_match_inscriptions_rejects_amount_beyond_fifty_cents():
    claims = [InscriptionClaim("I1", "Marie Martin", Decimal("40"))]
    assert match_inscriptions(claims, _transfers()) == []


def test_match_inscriptions_does_not_mutate_transactions():
    transfers = _transfers()
    before = list(transfers)
    match_inscriptions([InscriptionClaim("I1", "Jean Dupont", "45")], transfers)
    assert transfers == before
    assert all(not t.reconciled for t in transfers)


def _event_transfers():
    return [
        tx("e1", "50", on="2025-06-01", counterparty_name="ALICE", communication="virement"),
        tx("e2", "45", on="2025-06-10", communication="Sortie Zeeland Bob"),
        tx("e3", "20", on="2025-06-12", communication="zeeland bus"),
        tx("e4", "45", on="2025-09-30", communication="late"),
        tx("e5", "50", on="2025-06-02", links=(("event", "E0"),)),
        tx("e6", "-45", on="2025-06-02", communication="Sortie Zeeland"),
        tx("e7", "12", on="2025-06-02", communication="divers"),
    ]


def test_match_event_bands_participant_payments_and_reports_coverage():
    report = match_event(
        _event_transfers(),
        total_amount=Decimal("140"),
        participants=[
            EventParticipant("Alice", Decimal("50")),
            EventParticipant("Bob", Decimal("45")),
            EventParticipant("Chloe", Decimal("45")),
        ],
        title="Sortie Zeeland",
        location="Oosterschelde",
        start=date(2025, 6, 14),
        end=date(2025, 6, 15),
    )
    triage = report.triage
    assert [c.transaction.id for c in triage.auto] == ["e1", "e2"]
    assert [c.transaction.id for c in triage.suggested] == ["e3"]
    assert triage.unmatched == ()
    assert triage.auto[1].match.reasons == ("payment from Bob", "communication mentions event")
    assert report.linked_amount == Decimal("95")
    assert report.match_rate == pytest.approx(67.857, rel=1e-3)


def test_match_event_exact_total_wins():
    report = match_event(
        [tx("x", "140", communication="Sortie Zeeland")],
        total_amount=Decimal("140"),
        title="Sortie Zeeland",
    )
    (cand,) = report.triage.auto
    assert cand.score == 95.0
    assert cand.match.reasons == ("exact total 140.00", "communication mentions event")
    assert report.match_rate == pytest.approx(100.0)


def test_match_rate_is_zero_without_expected_total():
    empty = MatchTriage(auto=(), suggested=(), unmatched=())
    assert EventMatchReport(empty, Decimal("0"), Decimal("0")).match_rate == 0.0


@pytest.mark.parametrize(
    ("filename", "expected"),
    [
        ("2024-123_facture_hotel.pdf", "2024-123"),
        ("2024-123-2_recu.pdf", "2024-123"),
        ("2025-45_recu.jpg", "2025-45"),
        ("scans/2024-7.pdf", "2024-7"),
        ("facture.pdf", None),
    ],
)
def test_sequence_from_filename(filename, expected):
    assert sequence_from_filename(filename) == expected


def test_find_by_sequence_returns_first_hit():
    records = [
        tx("a", "10", sequence_number="2024-122"),
        tx("b", "20", sequence_number="2024-123"),
        tx("c", "30", sequence_number="2024-123"),
    ]
    assert find_by_sequence(records, "2024-123").id == "b"
    assert find_by_sequence(records, " 2024-122 ").id == "a"
    assert find_by_sequence(records, "2099-1") is None
