"""Relevance scoring of candidate transactions against a match context.

An operator linking an event, a member registration or an expense claim to
bank movements sees candidates ordered by how plausible they are. Each
candidate gets three sub-scores (amount, name, date) in 0..100; the combined
score is their weighted mean over the sub-scores the context can evaluate.
In modes with an expected direction the mean is compressed to leave room for
a bonus awarded when money flows that way.

Scoring is advisory. Nothing here links a transaction; ``classify`` only sorts
ranked candidates into confidence bands for display.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date
from decimal import Decimal
from difflib import SequenceMatcher

from .config import ScoringWeights
from .links import is_linked_to_other
from .logging_setup import get_logger
from .models import MatchContext, MatchScore, MatchTriage, ScoredCandidate, TransactionRecord
from .normalizers import normalize_name

_logger = get_logger("bank_reconciliation.scoring")

_HUNDRED = Decimal("100")

# Modes where the money is expected to flow one way.
_DIRECTED_MODES = frozenset({"inscription", "expense"})


# ---------------------------------------------------------------------------
# Sub-scores
# ---------------------------------------------------------------------------


def amount_similarity(candidate: Decimal, target: Decimal) -> float:
    """Score how close ``|candidate|`` is to ``target`` (a magnitude).

    Bands: exact 100, within 1 -> 95, within 5 -> 80, within 10 -> 60.
    Beyond that the relative gap decides: ``50 - 3 * percent`` up to a 10%
    gap, 0 past it.
    """

    diff = abs(abs(candidate) - abs(target))
    if diff == 0:
        return 100.0
    if diff < 1:
        return 95.0
    if diff < 5:
        return 80.0
    if diff < 10:
        return 60.0
    if target == 0:
        return 0.0
    pct = float(diff / abs(target) * _HUNDRED)
    if pct > 10:
        return 0.0
    return max(0.0, 50.0 - 3.0 * pct)


def name_similarity(a: str | None, b: str | None) -> float:
    """Similarity of two free-text names after normalization.

    Exact match scores 100; containment scores ``90 * shorter / longer``;
    otherwise the best of token overlap and ``SequenceMatcher`` ratio, capped
    at 89. The cap only keeps fuzzy matches below 90: a near-identical spelling
    can still outscore a short name contained in a long one.
    """

    na, nb = normalize_name(a), normalize_name(b)
    if not na or not nb:
        return 0.0
    if na == nb:
        return 100.0
    shorter, longer = sorted((na, nb), key=len)
    if shorter in longer:
        return 90.0 * len(shorter) / len(longer)
    ta, tb = set(na.split()), set(nb.split())
    overlap = 80.0 * len(ta & tb) / len(ta | tb)
    ratio = 100.0 * SequenceMatcher(None, na, nb).ratio()
    return min(89.0, max(overlap, ratio))


def date_proximity(d1: date, d2: date) -> float:
    days = abs((d1 - d2).days)
    if days == 0:
        return 100.0
    if days < 7:
        return 90.0
    if days < 14:
        return 75.0
    if days < 30:
        return 50.0
    return float(max(0, 30 - days))


def _amount_reason(s: float) -> str | None:
    if s >= 100:
        return "exact amount"
    if s >= 95:
        return "amount within 1"
    if s >= 60:
        return "close amount"
    if s > 0:
        return "similar amount"
    return None


def _name_reason(s: float) -> str | None:
    if s >= 100:
        return "exact name"
    if s >= 50:
        return "similar name"
    return None


def _date_reason(s: float) -> str | None:
    if s >= 100:
        return "same day"
    if s >= 90:
        return "within a week"
    if s >= 75:
        return "within two weeks"
    if s >= 50:
        return "within a month"
    return None


def _sign_matches(candidate: TransactionRecord, context: MatchContext) -> bool:
    if context.mode == "inscription":
        return candidate.amount > 0
    if context.mode == "expense":
        return candidate.amount < 0
    return False


# ---------------------------------------------------------------------------
# Combined score
# ---------------------------------------------------------------------------


def score(
    candidate: TransactionRecord,
    context: MatchContext,
    weights: ScoringWeights | None = None,
) -> MatchScore:
    """Weighted relevance of ``candidate`` for ``context`` in 0..100.

    Only sub-scores the context can evaluate take part in the mean (no target
    amount means no amount term, and so on). A context with nothing to
    compare scores every candidate 0. In ``inscription`` and ``expense`` modes
    the mean is scaled to ``100 - sign_bonus`` and the bonus is added for
    candidates flowing the expected way, so only an exact, well-directed
    candidate reaches 100 and closer candidates always score higher.
    """

    w = weights or ScoringWeights()
    parts: list[tuple[float, float]] = []
    reasons: list[str] = []

    if context.target_amount is not None:
        s = amount_similarity(candidate.amount, context.target_amount)
        parts.append((w.amount, s))
        if (r := _amount_reason(s)) is not None:
            reasons.append(r)

    if context.target_name:
        s = max(
            name_similarity(candidate.counterparty_name, context.target_name),
            name_similarity(candidate.communication, context.target_name),
        )
        parts.append((w.name, s))
        if (r := _name_reason(s)) is not None:
            reasons.append(r)

    anchor = context.anchor_date
    if anchor is not None:
        s = date_proximity(candidate.execution_date, anchor)
        parts.append((w.date, s))
        if (r := _date_reason(s)) is not None:
            reasons.append(r)

    total_weight = sum(weight for weight, _ in parts)
    if total_weight <= 0:
        return MatchScore(score=0.0)

    value = sum(weight * s for weight, s in parts) / total_weight
    if context.mode in _DIRECTED_MODES:
        # Scale into 0..(100 - bonus); the bonus tops it up to at most 100.
        value = value * (100.0 - w.sign_bonus) / 100.0
        if _sign_matches(candidate, context):
            value += w.sign_bonus
            reasons.append("expected direction")
    return MatchScore(score=value, reasons=tuple(reasons))


def eligible_candidates(
    records: Iterable[TransactionRecord],
    context: MatchContext,
    *,
    exclude_ids: Iterable[str] = (),
) -> list[TransactionRecord]:
    """Filter ``records`` down to what may be offered for ``context.mode``.

    Parents are never offered. Inscriptions take inflows not already linked
    to any inscription; expenses take outflows; events take both directions.
    """

    excluded = set(exclude_ids)
    out: list[TransactionRecord] = []
    for tx in records:
        if tx.is_parent or tx.id in excluded:
            continue
        if context.mode == "inscription":
            if tx.amount <= 0 or is_linked_to_other(tx, "inscription"):
                continue
        elif context.mode == "expense":
            if tx.amount >= 0:
                continue
        out.append(tx)
    return out


def rank(
    candidates: Iterable[TransactionRecord],
    context: MatchContext,
    *,
    weights: ScoringWeights | None = None,
) -> list[ScoredCandidate]:
    """Score and order ``candidates``, best first; ties keep input order."""

    scored = [ScoredCandidate(tx, score(tx, context, weights)) for tx in candidates]
    scored.sort(key=lambda c: c.score, reverse=True)
    _logger.debug("ranked %d candidates for mode=%s", len(scored), context.mode)
    return scored


def group_by_amount(
    candidates: Iterable[TransactionRecord], tolerance: Decimal = Decimal("1")
) -> list[tuple[Decimal, list[TransactionRecord]]]:
    """Bucket candidates whose magnitudes lie within ``tolerance`` of a group.

    Each candidate joins the first existing group whose representative (the
    magnitude of its first member) is within ``tolerance``; otherwise it opens
    a new group. Groups are returned by representative, largest first.
    """

    groups: list[tuple[Decimal, list[TransactionRecord]]] = []
    for tx in candidates:
        amount = tx.abs_amount
        for representative, members in groups:
            if abs(representative - amount) <= tolerance:
                members.append(tx)
                break
        else:
            groups.append((amount, [tx]))
    groups.sort(key=lambda g: g[0], reverse=True)
    return groups


def classify(
    ranked: Sequence[ScoredCandidate],
    *,
    auto_threshold: float = 80.0,
    suggest_threshold: float = 50.0,
) -> MatchTriage:
    auto: list[ScoredCandidate] = []
    suggested: list[ScoredCandidate] = []
    unmatched: list[ScoredCandidate] = []
    for cand in ranked:
        if cand.score >= auto_threshold:
            auto.append(cand)
        elif cand.score >= suggest_threshold:
            suggested.append(cand)
        else:
            unmatched.append(cand)
    return MatchTriage(auto=tuple(auto), suggested=tuple(suggested), unmatched=tuple(unmatched))


__all__ = [
    "amount_similarity",
    "name_similarity",
    "date_proximity",
    "score",
    "eligible_candidates",
    "rank",
    "group_by_amount",
    "classify",
]
