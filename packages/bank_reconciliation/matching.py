"""Batch matching of registrations and events against bank movements.

Where :mod:`bank_reconciliation.scoring` ranks candidates for one entity an
operator is looking at, the helpers here work through a whole batch:

- ``match_inscriptions``: pair each unpaid registration with at most one
  incoming transfer, never handing the same transfer to two registrations.
- ``match_event``: find the transfers that pay for an event, either as one
  payment of the total or as individual participant payments, and report
  how much of the expected total they cover.
- ``sequence_from_filename`` / ``find_by_sequence``: locate a movement by the
  bank sequence number quoted at the start of a receipt's file name.

Everything is advisory: results name transactions, nothing is linked.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from datetime import date, timedelta
from decimal import Decimal
from pathlib import PurePath

from .links import is_linked_to_other
from .logging_setup import get_logger
from .models import (
    EventMatchReport,
    EventParticipant,
    InscriptionClaim,
    InscriptionMatch,
    MatchContext,
    MatchScore,
    ScoredCandidate,
    TransactionRecord,
)
from .normalizers import format_amount, normalize_name, normalize_text
from .scoring import classify, eligible_candidates, name_similarity

_logger = get_logger("bank_reconciliation.matching")

INSCRIPTION_NAME_THRESHOLD = 80.0
INSCRIPTION_AMOUNT_TOLERANCE = Decimal("0.50")
INSCRIPTION_DATE_HORIZON_DAYS = 60

EVENT_AMOUNT_TOLERANCE = Decimal("0.01")
EVENT_WINDOW_DAYS = 30
TOTAL_CONFIDENCE = 95.0
PARTICIPANT_CONFIDENCE = 80.0
COMMUNICATION_CONFIDENCE = 70.0

_TITLE_RE = re.compile(r"^(?:m|mme|mr|mrs|monsieur|madame|mlle)\s+")
_SEQUENCE_RE = re.compile(r"^(\d{4}-\d+)(?:-\d+)?")


# ---------------------------------------------------------------------------
# Registrations
# ---------------------------------------------------------------------------


def _person(value: str | None) -> str:
    return _TITLE_RE.sub("", normalize_name(value))


def member_name_similarity(member: str | None, counterparty: str | None) -> float:
    """Name similarity that also tries the counterparty's words reversed.

    Banks print ``"DUPONT JEAN"`` where the registration says
    ``"Jean Dupont"``; courtesy titles are ignored.
    """

    a, b = _person(member), _person(counterparty)
    if not a or not b:
        return 0.0
    flipped = " ".join(reversed(b.split()))
    return max(name_similarity(a, b), name_similarity(a, flipped))


def _inscription_candidate(
    claim: InscriptionClaim, tx: TransactionRecord
) -> InscriptionMatch | None:
    name_score = member_name_similarity(claim.member_name, tx.counterparty_name)
    gap = abs(tx.amount - claim.amount)
    if name_score < INSCRIPTION_NAME_THRESHOLD or gap > INSCRIPTION_AMOUNT_TOLERANCE:
        return None

    days = None
    date_part = 0.0
    if claim.registered_on is not None:
        days = abs((tx.execution_date - claim.registered_on).days)
        date_part = max(0.0, 1 - days / INSCRIPTION_DATE_HORIZON_DAYS)
    amount_part = 1 - float(gap / INSCRIPTION_AMOUNT_TOLERANCE)
    value = 0.6 * name_score / 100 + 0.3 * amount_part + 0.1 * date_part
    return InscriptionMatch(
        inscription_id=claim.id,
        transaction=tx,
        score=round(value * 100),
        name_score=name_score,
        amount_gap=gap,
        date_gap_days=days,
    )


def match_inscriptions(
    inscriptions: Iterable[InscriptionClaim],
    transactions: Iterable[TransactionRecord],
) -> list[InscriptionMatch]:
    """Pair registrations with incoming transfers, one transfer each.

    A transfer qualifies for a registration when the names are at least 80%
    similar and the amounts differ by at most 0.50. Registrations are handled
    in the given order; each takes its highest-scoring transfer among those
    not already taken (first candidate wins a tie). Transfers already linked
    to an inscription, outflows and split parents are never offered.
    """

    pool = eligible_candidates(transactions, MatchContext(mode="inscription"))
    taken: set[str] = set()
    matches: list[InscriptionMatch] = []
    claims = list(inscriptions)
    for claim in claims:
        best: InscriptionMatch | None = None
        for tx in pool:
            if tx.id in taken:
                continue
            cand = _inscription_candidate(claim, tx)
            if cand is not None and (best is None or cand.score > best.score):
                best = cand
        if best is None:
            _logger.debug("no transfer for inscription %s (%s)", claim.id, claim.member_name)
            continue
        taken.add(best.transaction.id)
        matches.append(best)
        _logger.debug(
            "inscription %s -> %s (score %d)", claim.id, best.transaction.id, best.score
        )

    _logger.info(
        "match_inscriptions: inscriptions=%d candidates=%d matched=%d",
        len(claims),
        len(pool),
        len(matches),
    )
    return matches


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


def _event_keywords(*texts: str) -> list[str]:
    words: list[str] = []
    for text in texts:
        words.extend(w for w in normalize_text(text).split() if len(w) > 3)
    return words


def _in_window(tx: TransactionRecord, start: date | None, end: date | None) -> bool:
    if start is None:
        return True
    lo = start - timedelta(days=EVENT_WINDOW_DAYS)
    hi = (end or start) + timedelta(days=EVENT_WINDOW_DAYS)
    return lo <= tx.execution_date <= hi


def match_event(
    transactions: Iterable[TransactionRecord],
    *,
    total_amount: Decimal,
    participants: Sequence[EventParticipant] = (),
    title: str = "",
    location: str = "",
    start: date | None = None,
    end: date | None = None,
    auto_threshold: float = 80.0,
    suggest_threshold: float = 50.0,
) -> EventMatchReport:
    """Score incoming transfers that may pay for an event.

    Three signals, each with a fixed confidence: the transfer equals the
    event total (95), it equals one participant's amount (80), or its
    communication or counterparty mentions a word of the title or location
    longer than three letters (70). A transfer keeps its strongest signal and
    lists every reason. Only inflows within 30 days of the event dates that
    are not already linked to an event are considered.
    """

    total = Decimal(total_amount)
    keywords = _event_keywords(title, location)
    scored: list[ScoredCandidate] = []
    for tx in transactions:
        if tx.is_parent or tx.amount <= 0 or is_linked_to_other(tx, "event"):
            continue
        if not _in_window(tx, start, end):
            continue

        signals: list[tuple[float, str]] = []
        if abs(tx.amount - total) <= EVENT_AMOUNT_TOLERANCE:
            signals.append((TOTAL_CONFIDENCE, f"exact total {format_amount(total)}"))
        payer = next(
            (p for p in participants if abs(p.amount - tx.amount) <= EVENT_AMOUNT_TOLERANCE),
            None,
        )
        if payer is not None:
            signals.append((PARTICIPANT_CONFIDENCE, f"payment from {payer.name}"))
        text = normalize_text(f"{tx.communication} {tx.counterparty_name}")
        if keywords and any(kw in text for kw in keywords):
            signals.append((COMMUNICATION_CONFIDENCE, "communication mentions event"))
        if not signals:
            continue

        signals.sort(key=lambda s: s[0], reverse=True)
        match = MatchScore(score=signals[0][0], reasons=tuple(r for _, r in signals))
        scored.append(ScoredCandidate(tx, match))

    scored.sort(key=lambda c: c.score, reverse=True)
    triage = classify(
        scored, auto_threshold=auto_threshold, suggest_threshold=suggest_threshold
    )
    linked = sum((c.transaction.amount for c in triage.auto), Decimal("0"))
    report = EventMatchReport(triage=triage, total_amount=total, linked_amount=linked)
    _logger.info(
        "match_event: candidates=%d auto=%d linked=%s rate=%.1f%%",
        len(scored),
        len(triage.auto),
        format_amount(linked),
        report.match_rate,
    )
    return report


# ---------------------------------------------------------------------------
# Sequence numbers
# ---------------------------------------------------------------------------


def sequence_from_filename(filename: str) -> str | None:
    """Leading ``YYYY-NNN`` of a receipt file name, without a ``-N`` page suffix.

    ``"2024-123-2_recu.pdf"`` gives ``"2024-123"``; ``"facture.pdf"`` gives
    ``None``.
    """

    m = _SEQUENCE_RE.match(PurePath(filename).name)
    return m.group(1) if m else None


def find_by_sequence(
    records: Iterable[TransactionRecord], sequence: str
) -> TransactionRecord | None:
    wanted = sequence.strip()
    hits = [r for r in records if r.sequence_number == wanted]
    if not hits:
        return None
    if len(hits) > 1:
        _logger.warning(
            "%d transactions carry sequence %s; using %s", len(hits), wanted, hits[0].id
        )
    return hits[0]


__all__ = [
    "member_name_similarity",
    "match_inscriptions",
    "match_event",
    "sequence_from_filename",
    "find_by_sequence",
]
