"""
Module: consolidation_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    consolidation engines.  This is the import surface for
    consolidation_services.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import consolidation_kernel (and sibling engine modules).
    MUST NOT import consolidation_services or consolidation_config.

Invariants enforced:
    - Purity: engines never read the clock; timestamps are passed in.
    - Decimal-only arithmetic: floats are rejected at the value-object
      boundary.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Top-level engine invocations are traced via ``@traced_engine``
    (see ``consolidation_engines.tracer``), emitting
    CONSOLIDATION_ENGINE_TRACE log records with an input fingerprint.
"""

from consolidation_engines.aggregation import (
    AggregatedBalance,
    AggregationResult,
    MemberSum,
    NCIResult,
    TrialBalanceAggregator,
    aggregate,
    allocate_nci,
    elimination_amounts,
    equity_pickup_sum,
    investee_net_income,
    merge,
    sum_member,
    translate_member,
)
from consolidation_engines.elimination import (
    EliminationCandidate,
    EliminationMatcher,
    MatchOutcome,
    RuleWarning,
)
from consolidation_engines.intercompany import (
    IntercompanyMatcher,
    IntercompanyMatchResult,
    IntercompanyPair,
    PairKind,
)
from consolidation_engines.nci import (
    GoodwillAllocation,
    MemberTreatment,
    NCIShare,
    allocate_goodwill,
    check_ownership,
    compute_nci,
    determine_method,
    equity_method_pickup,
    member_treatment,
    requires_line_nci,
    validate_percentage,
)
from consolidation_engines.selector_resolver import resolve, resolve_all
from consolidation_engines.validation import ConsolidationValidator, raise_for_errors

__all__ = [
    "AggregatedBalance",
    "AggregationResult",
    "ConsolidationValidator",
    "EliminationCandidate",
    "EliminationMatcher",
    "GoodwillAllocation",
    "IntercompanyMatchResult",
    "IntercompanyMatcher",
    "IntercompanyPair",
    "MatchOutcome",
    "MemberSum",
    "MemberTreatment",
    "NCIResult",
    "NCIShare",
    "PairKind",
    "RuleWarning",
    "TrialBalanceAggregator",
    "aggregate",
    "allocate_goodwill",
    "allocate_nci",
    "check_ownership",
    "compute_nci",
    "determine_method",
    "elimination_amounts",
    "equity_method_pickup",
    "equity_pickup_sum",
    "investee_net_income",
    "member_treatment",
    "merge",
    "raise_for_errors",
    "requires_line_nci",
    "resolve",
    "resolve_all",
    "sum_member",
    "translate_member",
    "validate_percentage",
]
