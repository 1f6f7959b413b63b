"""Public interface for the ``bank_reconciliation`` package.

This module exposes the engine operations and public models/types as the
stable import surface. There is no runtime logic here, only symbol
re-exports. Storage (``persistence``), the CLI and terminal prompts are
imported from their modules directly.
"""

from .config import EngineConfig, ScoringWeights
from .dedup import (
    assign_fingerprint,
    find_duplicates,
    fingerprint,
    live_transactions,
    screen_import,
    total_amount,
)
from .errors import AlreadySplit, InvalidAllocation, InvalidRecord, ReconciliationError
from .links import (
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
from .matching import (
    find_by_sequence,
    match_event,
    match_inscriptions,
    member_name_similarity,
    sequence_from_filename,
)
from .models import (
    AllocationInput,
    CategorizationPattern,
    CategorySuggestion,
    DuplicateGroup,
    DuplicateLink,
    EventMatchReport,
    EventParticipant,
    ImportScreen,
    InscriptionClaim,
    InscriptionMatch,
    LinkScanReport,
    MatchContext,
    MatchedEntity,
    MatchScore,
    MatchTriage,
    OrphanChildrenReport,
    OrphanCleanupReport,
    RawBankLine,
    ScoredCandidate,
    SplitResult,
    TransactionRecord,
)
from .scoring import (
    amount_similarity,
    classify,
    date_proximity,
    eligible_candidates,
    group_by_amount,
    name_similarity,
    rank,
    score,
)
from .suggest import extract_keywords, learn_patterns, primary_keyword, round_amount, suggest
from .ventilation import (
    AllocationValidation,
    aggregate_amount,
    available_for_linking,
    find_orphan_children,
    remaining_amount,
    repair_orphan_children,
    split,
    suggest_allocations,
    superseded_children,
    unsplit,
    validate_allocations,
)

__all__ = [
    # Dedup
    "fingerprint",
    "assign_fingerprint",
    "find_duplicates",
    "screen_import",
    "live_transactions",
    "total_amount",
    # Ventilation
    "split",
    "unsplit",
    "validate_allocations",
    "remaining_amount",
    "suggest_allocations",
    "available_for_linking",
    "aggregate_amount",
    "find_orphan_children",
    "repair_orphan_children",
    "superseded_children",
    # Links
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
    # Scoring
    "amount_similarity",
    "name_similarity",
    "date_proximity",
    "score",
    "eligible_candidates",
    "rank",
    "group_by_amount",
    "classify",
    # Batch matching
    "member_name_similarity",
    "match_inscriptions",
    "match_event",
    "sequence_from_filename",
    "find_by_sequence",
    # Suggestions
    "extract_keywords",
    "primary_keyword",
    "round_amount",
    "suggest",
    "learn_patterns",
    # Config / errors
    "EngineConfig",
    "ScoringWeights",
    "ReconciliationError",
    "InvalidRecord",
    "AlreadySplit",
    "InvalidAllocation",
    # Models / types
    "TransactionRecord",
    "MatchedEntity",
    "AllocationInput",
    "AllocationValidation",
    "SplitResult",
    "DuplicateGroup",
    "ImportScreen",
    "DuplicateLink",
    "LinkScanReport",
    "OrphanCleanupReport",
    "OrphanChildrenReport",
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
