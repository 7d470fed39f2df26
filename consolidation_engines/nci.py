"""
consolidation_engines.nci -- Non-controlling interest and ownership calculator.

Responsibility:
    Decide how each member participates in consolidation (full line-by-line,
    single equity-method pickup, or excluded), split line balances between
    owners and non-controlling interests, compute equity-method pickups, and
    split goodwill between the parent and NCI.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Percentages are validated to lie within [0, 100].
    - Exact Decimal arithmetic throughout; nothing here rounds.  Rounding is
      applied once, by the aggregator, at the final consolidated line.
    - A VIE member is fully consolidated only when its VIE determination
      marks the group as primary beneficiary; otherwise it is excluded.

Failure modes:
    - InvalidPercentageError for percentages outside [0, 100].
    - OwnershipMismatchError from check_ownership.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from consolidation_kernel.domain.group import ConsolidationMember, ConsolidationMethod
from consolidation_kernel.exceptions import InvalidPercentageError, OwnershipMismatchError
from consolidation_kernel.logging_config import get_logger

logger = get_logger("engines.nci")

_HUNDRED = Decimal("100")
_ZERO = Decimal("0")


class MemberTreatment(str, Enum):
    """How a member's balances enter the consolidated trial balance."""

    FULL = "full"
    EQUITY_PICKUP = "equity_pickup"
    EXCLUDED = "excluded"


@dataclass(frozen=True, slots=True)
class NCIShare:
    """Owner/NCI split of one balance. ``nci_amount`` is None when no split applies."""

    owner_share: Decimal
    nci_amount: Decimal | None


@dataclass(frozen=True, slots=True)
class GoodwillAllocation:
    parent_share: Decimal
    nci_share: Decimal


def validate_percentage(
    value: Decimal, field: str, company_id: str | None = None,
) -> Decimal:
    """Return ``value`` if it lies within [0, 100], else raise."""
    if not isinstance(value, Decimal) or not value.is_finite() or not _ZERO <= value <= _HUNDRED:
        raise InvalidPercentageError(field, value, company_id)
    return value


def determine_method(
    ownership_percentage: Decimal,
    is_vie_primary_beneficiary: bool = False,
    control_above: Decimal = Decimal("50"),
    significant_influence_from: Decimal = Decimal("20"),
) -> ConsolidationMethod:
    """Expected consolidation method for an ownership level.

    A primary beneficiary of a VIE consolidates regardless of ownership.
    Above ``control_above`` percent the parent controls (full consolidation);
    from ``significant_influence_from`` up to control it has significant
    influence (equity method); below that the investment is carried at cost.
    """
    validate_percentage(ownership_percentage, "ownership_percentage")
    if is_vie_primary_beneficiary:
        return ConsolidationMethod.FULL_CONSOLIDATION
    if ownership_percentage > control_above:
        return ConsolidationMethod.FULL_CONSOLIDATION
    if ownership_percentage >= significant_influence_from:
        return ConsolidationMethod.EQUITY_METHOD
    return ConsolidationMethod.COST_METHOD


def member_treatment(
    member: ConsolidationMember, include_equity_method: bool = True,
) -> MemberTreatment:
    if member.is_fully_consolidated:
        return MemberTreatment.FULL
    if member.consolidation_method is ConsolidationMethod.EQUITY_METHOD and include_equity_method:
        return MemberTreatment.EQUITY_PICKUP
    return MemberTreatment.EXCLUDED


def requires_line_nci(member: ConsolidationMember) -> bool:
    """True when the member's lines are split between owners and NCI."""
    return (
        member.is_fully_consolidated
        and member.non_controlling_interest_percentage > _ZERO
    )


def compute_nci(member: ConsolidationMember, balance: Decimal) -> NCIShare:
    """Split one balance contributed by ``member`` into owner and NCI shares.

    Fully consolidated members (including primary-beneficiary VIEs) use their
    stated NCI percentage.  Other members carry no per-line NCI.
    """
    if not member.is_fully_consolidated:
        return NCIShare(owner_share=balance, nci_amount=None)
    pct = validate_percentage(
        member.non_controlling_interest_percentage,
        "non_controlling_interest_percentage",
        member.company_id,
    )
    nci = balance * pct / _HUNDRED
    return NCIShare(owner_share=balance - nci, nci_amount=nci)


def equity_method_pickup(member: ConsolidationMember, investee_net_income: Decimal) -> Decimal:
    """Investor's share of an equity-method investee's net income."""
    pct = validate_percentage(
        member.ownership_percentage, "ownership_percentage", member.company_id,
    )
    return investee_net_income * pct / _HUNDRED


def allocate_goodwill(member: ConsolidationMember) -> GoodwillAllocation | None:
    """Split recorded goodwill between the parent and NCI.

    Fully consolidated members use the full-goodwill method: goodwill is
    attributed in proportion to ownership and NCI percentages.  For other
    members goodwill is embedded in the parent's investment and NCI gets none.
    Returns None when the member has no goodwill recorded.
    """
    if member.goodwill is None:
        return None
    amount = member.goodwill.amount
    if not member.is_fully_consolidated:
        return GoodwillAllocation(parent_share=amount, nci_share=_ZERO)
    nci_pct = validate_percentage(
        member.non_controlling_interest_percentage,
        "non_controlling_interest_percentage",
        member.company_id,
    )
    nci_share = amount * nci_pct / _HUNDRED
    logger.debug(
        "goodwill_allocated",
        extra={"company_id": member.company_id, "nci_share": nci_share},
    )
    return GoodwillAllocation(parent_share=amount - nci_share, nci_share=nci_share)


def check_ownership(member: ConsolidationMember, tolerance: Decimal = Decimal("0.01")) -> None:
    """Validate a member's percentages.

    Both percentages must lie in [0, 100].  For FullConsolidation members the
    ownership and NCI percentages must sum to 100 within ``tolerance``.

    Raises:
        InvalidPercentageError: a percentage is out of range.
        OwnershipMismatchError: full member whose percentages do not sum to 100.
    """
    validate_percentage(member.ownership_percentage, "ownership_percentage", member.company_id)
    validate_percentage(
        member.non_controlling_interest_percentage,
        "non_controlling_interest_percentage",
        member.company_id,
    )
    if member.consolidation_method is not ConsolidationMethod.FULL_CONSOLIDATION:
        return
    total = member.ownership_percentage + member.non_controlling_interest_percentage
    if abs(total - _HUNDRED) > tolerance:
        raise OwnershipMismatchError(
            member.company_id,
            member.ownership_percentage,
            member.non_controlling_interest_percentage,
        )
