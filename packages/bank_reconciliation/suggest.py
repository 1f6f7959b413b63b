"""Accounting-code suggestions drawn from already-categorized history.

Recurring movements (monthly pool rental, yearly federation fee, member
dues) look alike from one year to the next: same keywords in the
communication, similar amounts, same counterparty. ``suggest`` finds past
transactions resembling a new one and proposes the codes they were booked
under, ranked by how many past entries support each code.

Keyword extraction
------------------
Texts are normalized (accents stripped, case-folded, punctuation removed).
Keywords are words longer than three characters, at most five per text. The
*primary* keyword is the first club-domain term found (``inscription``,
``cotisation``, ``piscine``...), else the first keyword, else ``"unknown"``.

Suggestions are advisory and never modify a record.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from .logging_setup import get_logger
from .models import CategorizationPattern, CategorySuggestion, TransactionRecord
from .normalizers import normalize_name

_logger = get_logger("bank_reconciliation.suggest")

PRIORITY_KEYWORDS: tuple[str, ...] = (
    "inscription",
    "cotisation",
    "sortie",
    "formation",
    "piscine",
    "materiel",
    "calyfiesta",
    "croisette",
    "zeeland",
    "zelande",
    "lifras",
    "febras",
    "subside",
    "assurance",
    "ovh",
)

UNKNOWN_KEYWORD = "unknown"
MAX_KEYWORDS = 5

# Strongest first.
REASONS: tuple[str, ...] = (
    "keyword + amount match",
    "keyword match",
    "keyword overlap",
    "counterparty match",
    "amount match",
)
_STRENGTH = {reason: len(REASONS) - i for i, reason in enumerate(REASONS)}


def extract_keywords(text: str | None) -> list[str]:
    out: list[str] = []
    for word in normalize_name(text).split():
        if len(word) > 3 and word not in out:
            out.append(word)
            if len(out) == MAX_KEYWORDS:
                break
    return out


def primary_keyword(text: str | None) -> str:
    words = normalize_name(text).split()
    for kw in PRIORITY_KEYWORDS:
        if kw in words:
            return kw
    for word in words:
        if len(word) > 3:
            return word
    return UNKNOWN_KEYWORD


def round_amount(amount: Decimal) -> int:
    """Amount bucket: units below 50, tens below 200, fifties above."""

    a = abs(Decimal(amount))
    if a < 50:
        step = Decimal("1")
    elif a < 200:
        step = Decimal("10")
    else:
        step = Decimal("50")
    return int((a / step).quantize(Decimal("1"), rounding=ROUND_HALF_UP) * step)


@dataclass(frozen=True, slots=True)
class _Profile:
    primary: str
    keywords: frozenset[str]
    bucket: int
    counterparty: str
    outflow: bool


def _profile(tx: TransactionRecord) -> _Profile:
    text = f"{tx.communication} {tx.counterparty_name}"
    return _Profile(
        primary=primary_keyword(text),
        keywords=frozenset(extract_keywords(tx.communication))
        | frozenset(extract_keywords(tx.counterparty_name)),
        bucket=round_amount(tx.amount),
        counterparty=normalize_name(tx.counterparty_name),
        outflow=tx.amount < 0,
    )


def _match_reason(target: _Profile, past: _Profile) -> str | None:
    same_primary = target.primary != UNKNOWN_KEYWORD and target.primary == past.primary
    if same_primary and target.bucket == past.bucket:
        return "keyword + amount match"
    if same_primary:
        return "keyword match"
    if target.keywords & past.keywords:
        return "keyword overlap"
    if target.counterparty and past.counterparty and (
        target.counterparty in past.counterparty or past.counterparty in target.counterparty
    ):
        return "counterparty match"
    if target.bucket == past.bucket:
        return "amount match"
    return None


def suggest(
    transaction: TransactionRecord,
    history: Iterable[TransactionRecord],
    *,
    limit: int | None = None,
) -> list[CategorySuggestion]:
    """Codes used by past transactions resembling ``transaction``.

    Only history in the same direction (inflow vs outflow) is considered;
    uncategorized entries, parents and ``transaction`` itself are skipped.
    Each code appears once with the number of supporting entries and the
    strongest reason among them. Ordered by count, then reason strength, then
    code.
    """

    target = _profile(transaction)
    counts: dict[str, int] = {}
    best: dict[str, str] = {}
    categories: dict[str, str | None] = {}

    for past in history:
        if not past.account_code or past.is_parent or past.id == transaction.id:
            continue
        prof = _profile(past)
        if prof.outflow != target.outflow:
            continue
        reason = _match_reason(target, prof)
        if reason is None:
            continue
        code = past.account_code
        counts[code] = counts.get(code, 0) + 1
        if code not in best or _STRENGTH[reason] > _STRENGTH[best[code]]:
            best[code] = reason
        if categories.get(code) is None:
            categories[code] = past.category

    suggestions = [
        CategorySuggestion(
            account_code=code,
            count=counts[code],
            match_reason=best[code],
            category=categories.get(code),
        )
        for code in counts
    ]
    suggestions.sort(key=lambda s: (-s.count, -_STRENGTH[s.match_reason], s.account_code))
    _logger.debug(
        "suggest %s: primary=%s bucket=%d -> %d code(s)",
        transaction.id,
        target.primary,
        target.bucket,
        len(suggestions),
    )
    if limit is not None:
        return suggestions[:limit]
    return suggestions


def learn_patterns(history: Iterable[TransactionRecord]) -> list[CategorizationPattern]:
    """Aggregate categorized history into (keyword, amount bucket, code) patterns."""

    counts: dict[tuple[str, int, str], int] = {}
    categories: dict[tuple[str, int, str], str | None] = {}
    keywords: dict[tuple[str, int, str], list[str]] = {}

    for tx in history:
        if not tx.account_code or tx.is_parent:
            continue
        prof = _profile(tx)
        key = (prof.primary, prof.bucket, tx.account_code)
        counts[key] = counts.get(key, 0) + 1
        if categories.get(key) is None:
            categories[key] = tx.category
        kws = keywords.setdefault(key, [])
        for kw in extract_keywords(tx.communication):
            if kw not in kws and len(kws) < MAX_KEYWORDS:
                kws.append(kw)

    patterns = [
        CategorizationPattern(
            primary_keyword=key[0],
            amount_bucket=key[1],
            account_code=key[2],
            category=categories[key],
            use_count=n,
            keywords=tuple(keywords[key]),
        )
        for key, n in counts.items()
    ]
    patterns.sort(key=lambda p: (-p.use_count, p.primary_keyword, p.amount_bucket, p.account_code))
    return patterns


__all__ = [
    "PRIORITY_KEYWORDS",
    "UNKNOWN_KEYWORD",
    "REASONS",
    "extract_keywords",
    "primary_keyword",
    "round_amount",
    "suggest",
    "learn_patterns",
]
