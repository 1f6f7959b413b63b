"""Data models and DTOs for ``bank_reconciliation``.

Engine-internal records are frozen ``dataclass`` instances: every operation
returns a new record instead of mutating its input, so a half-applied update
cannot be observed. Values that arrive from outside the engine (raw import
lines, a match context built from an entity catalog, tuning weights) are
``pydantic`` models so malformed input fails at the boundary.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Literal, TypeAlias

from pydantic import BaseModel, ConfigDict, field_validator

from .errors import InvalidRecord
from .normalizers import amount_literal

# ---------------------------------------------------------------------------
# Entity links
# ---------------------------------------------------------------------------

EntityType: TypeAlias = Literal["event", "inscription", "expense"]
"""Kinds of business entity a transaction can be linked to."""

ENTITY_TYPES: tuple[str, ...] = ("event", "inscription", "expense")

# Older documents used ``demand`` for expense claims.
_LEGACY_ENTITY_TYPES: dict[str, str] = {"demand": "expense"}

MatchMode = Literal["event", "inscription", "expense"]


def normalize_entity_type(raw: str) -> str:
    """Return the canonical entity type for ``raw`` (maps legacy aliases)."""

    t = raw.strip().lower()
    t = _LEGACY_ENTITY_TYPES.get(t, t)
    if t not in ENTITY_TYPES:
        raise ValueError(f"Unsupported entity type: {raw!r}. Allowed: {list(ENTITY_TYPES)}")
    return t


@dataclass(frozen=True, slots=True)
class MatchedEntity:
    """One association between a transaction and a business entity."""

    entity_type: str
    entity_id: str
    entity_name: str | None = None
    confidence: float | None = None
    matched_by: Literal["manual", "auto"] = "manual"
    notes: str | None = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.entity_type, self.entity_id)


# ---------------------------------------------------------------------------
# Transaction record
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TransactionRecord:
    """One imported bank movement, or one allocation derived from it.

    A record is plain (unsplit), a parent (``is_parent`` and no ``parent_id``)
    or a child (``parent_id`` set, with ``child_index``/``child_count``).
    ``matched_entities`` keeps list order as loaded from the store; it may
    carry duplicate keys for data written before links were guarded, which is
    what :func:`bank_reconciliation.links.repair` cleans up.
    """

    id: str
    execution_date: date
    amount: Decimal
    counterparty_name: str = ""
    communication: str = ""
    counterparty_account: str = ""
    account_number: str = ""
    dedup_hash: str | None = None
    is_parent: bool = False
    parent_id: str | None = None
    child_index: int | None = None
    child_count: int | None = None
    matched_entities: tuple[MatchedEntity, ...] = ()
    category: str | None = None
    account_code: str | None = None
    sequence_number: str | None = None
    reconciled: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, "amount", Decimal(str(self.amount)))
        if not isinstance(self.matched_entities, tuple):
            object.__setattr__(self, "matched_entities", tuple(self.matched_entities))

        if self.is_parent and self.parent_id is not None:
            raise InvalidRecord(f"Transaction {self.id!r} cannot be both parent and child")
        if self.parent_id is None:
            if self.child_index is not None or self.child_count is not None:
                raise InvalidRecord(
                    f"Transaction {self.id!r} has child numbering but no parent_id"
                )
            return
        if self.child_index is None or self.child_count is None:
            raise InvalidRecord(f"Child {self.id!r} requires child_index and child_count")
        if not 1 <= self.child_index <= self.child_count:
            raise InvalidRecord(
                f"Child {self.id!r}: child_index {self.child_index} "
                f"outside 1..{self.child_count}"
            )

    @property
    def is_child(self) -> bool:
        return self.parent_id is not None

    @property
    def abs_amount(self) -> Decimal:
        return abs(self.amount)


# ---------------------------------------------------------------------------
# Ventilation
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class AllocationInput:
    """One requested allocation line of a split.

    ``amount`` is a positive magnitude; the child record takes the parent's
    sign.
    """

    amount: Decimal
    description: str | None = None
    category: str | None = None
    account_code: str | None = None
    notes: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, "amount", Decimal(str(self.amount)))


@dataclass(frozen=True, slots=True)
class SplitResult:
    parent: TransactionRecord
    children: tuple[TransactionRecord, ...]


@dataclass(frozen=True, slots=True)
class OrphanChildrenReport:
    """Allocation lines whose parent is missing or no longer split."""

    orphans: tuple[TransactionRecord, ...] = ()
    missing_parent_ids: tuple[str, ...] = ()
    total_amount: Decimal = Decimal("0")


# ---------------------------------------------------------------------------
# Deduplication
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DuplicateGroup:
    """Records sharing one fingerprint, ordered by ``id``.

    ``keep`` is the earliest id; ``discard`` are the spurious re-imports a
    caller may remove after operator confirmation.
    """

    fingerprint: str
    records: tuple[TransactionRecord, ...]

    @property
    def keep(self) -> TransactionRecord:
        return self.records[0]

    @property
    def discard(self) -> tuple[TransactionRecord, ...]:
        return self.records[1:]


@dataclass(frozen=True, slots=True)
class ImportScreen:
    """Outcome of fingerprinting an import batch against stored records.

    ``conflicts`` are lines carrying the id of a stored (or earlier) record
    whose content differs; they are never written.
    """

    new: tuple[TransactionRecord, ...]
    already_present: tuple[TransactionRecord, ...]
    conflicts: tuple[TransactionRecord, ...] = ()


# ---------------------------------------------------------------------------
# Link registry reports
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DuplicateLink:
    entity_type: str
    entity_id: str
    indices: tuple[int, ...]


@dataclass(frozen=True, slots=True)
class LinkScanReport:
    """Aggregate outcome of scanning a transaction set for duplicate links."""

    scanned: int = 0
    with_links: int = 0
    with_multiple_links: int = 0
    with_duplicate_keys: int = 0
    repaired: int = 0
    duplicate_ids: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class OrphanCleanupReport:
    transactions_updated: int = 0
    links_removed: int = 0
    removed_by_type: dict[str, int] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Relevance scoring
# ---------------------------------------------------------------------------


class MatchContext(BaseModel):
    """What a candidate transaction is compared against.

    Built by the caller from an event, a member registration or an expense
    claim; every field except ``mode`` is optional.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", str_strip_whitespace=True)

    mode: MatchMode
    target_amount: Decimal | None = None
    target_name: str | None = None
    target_date: date | None = None
    event_date: date | None = None

    @field_validator("target_amount")
    @classmethod
    def _non_negative_amount(cls, v: Decimal | None) -> Decimal | None:
        if v is not None and v < 0:
            raise ValueError("target_amount must be a non-negative magnitude")
        return v

    @field_validator("target_name")
    @classmethod
    def _blank_name_is_none(cls, v: str | None) -> str | None:
        return v or None

    @property
    def anchor_date(self) -> date | None:
        return self.event_date or self.target_date


@dataclass(frozen=True, slots=True)
class MatchScore:
    score: float
    reasons: tuple[str, ...] = ()

    @property
    def confidence(self) -> Literal["high", "medium", "low"]:
        if self.score >= 80:
            return "high"
        if self.score >= 50:
            return "medium"
        return "low"


@dataclass(frozen=True, slots=True)
class ScoredCandidate:
    transaction: TransactionRecord
    match: MatchScore

    @property
    def score(self) -> float:
        return self.match.score


@dataclass(frozen=True, slots=True)
class MatchTriage:
    """Ranked candidates split into confidence bands (advisory only)."""

    auto: tuple[ScoredCandidate, ...]
    suggested: tuple[ScoredCandidate, ...]
    unmatched: tuple[ScoredCandidate, ...]


@dataclass(frozen=True, slots=True)
class InscriptionClaim:
    """An unpaid member registration waiting for its bank transfer."""

    id: str
    member_name: str
    amount: Decimal
    registered_on: date | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, "amount", Decimal(str(self.amount)))


@dataclass(frozen=True, slots=True)
class InscriptionMatch:
    """Best transaction found for one registration.

    ``score`` is 0..100; ``date_gap_days`` is ``None`` when the registration
    carries no date.
    """

    inscription_id: str
    transaction: TransactionRecord
    score: int
    name_score: float
    amount_gap: Decimal
    date_gap_days: int | None = None


@dataclass(frozen=True, slots=True)
class EventParticipant:
    name: str
    amount: Decimal

    def __post_init__(self) -> None:
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, "amount", Decimal(str(self.amount)))


@dataclass(frozen=True, slots=True)
class EventMatchReport:
    """Candidates for one event, banded, with the share of the total covered.

    ``linked_amount`` sums the ``auto`` band: what linking every
    high-confidence candidate would account for.
    """

    triage: MatchTriage
    total_amount: Decimal
    linked_amount: Decimal

    @property
    def match_rate(self) -> float:
        if self.total_amount <= 0:
            return 0.0
        return float(self.linked_amount / self.total_amount * 100)


# ---------------------------------------------------------------------------
# Category suggestion
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CategorySuggestion:
    account_code: str
    count: int
    match_reason: str
    category: str | None = None


@dataclass(frozen=True, slots=True)
class CategorizationPattern:
    primary_keyword: str
    amount_bucket: int
    account_code: str
    category: str | None
    use_count: int
    keywords: tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Import boundary
# ---------------------------------------------------------------------------


class RawBankLine(BaseModel):
    """A parsed bank statement line as produced by the import pipeline."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    id: str | None = None
    sequence_number: str | None = None
    execution_date: date
    amount: Decimal
    counterparty_name: str = ""
    counterparty_account: str = ""
    communication: str = ""
    account_number: str = ""

    @field_validator("amount", mode="before")
    @classmethod
    def _coerce_amount(cls, v: object) -> object:
        if isinstance(v, str):
            return amount_literal(v)
        if isinstance(v, float):
            return str(v)
        return v

    @field_validator("counterparty_name", "counterparty_account", "communication",
                     "account_number", mode="before")
    @classmethod
    def _none_to_empty(cls, v: object) -> object:
        return "" if v is None else v

    def to_record(self, *, record_id: str, dedup_hash: str | None = None) -> TransactionRecord:
        return TransactionRecord(
            id=record_id,
            execution_date=self.execution_date,
            amount=self.amount,
            counterparty_name=self.counterparty_name,
            communication=self.communication,
            counterparty_account=self.counterparty_account,
            account_number=self.account_number,
            dedup_hash=dedup_hash,
            sequence_number=self.sequence_number,
        )


__all__ = [
    "ENTITY_TYPES",
    "EntityType",
    "MatchMode",
    "normalize_entity_type",
    "MatchedEntity",
    "TransactionRecord",
    "AllocationInput",
    "SplitResult",
    "OrphanChildrenReport",
    "DuplicateGroup",
    "ImportScreen",
    "DuplicateLink",
    "LinkScanReport",
    "OrphanCleanupReport",
    "MatchContext",
    "MatchScore",
    "ScoredCandidate",
    "MatchTriage",
    "InscriptionClaim",
    "InscriptionMatch",
    "EventParticipant",
    "EventMatchReport",
    "CategorySuggestion",
    "CategorizationPattern",
    "RawBankLine",
]
