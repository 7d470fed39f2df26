"""
Group -- consolidation group, members and elimination rules.

Responsibility:
    Immutable configuration consumed by a consolidation run: the group and
    its ordered members with ownership parameters, plus the elimination
    rules scoped to the group.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Member company ids are unique within a group (checked by
      ConsolidationGroup and again at Validate).
    - Rules are read-only during a run.

Non-goals:
    Authoring or editing groups and rules; that is a configuration workflow
    outside the engine.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum

from consolidation_kernel.domain.selectors import AccountSelector
from consolidation_kernel.domain.values import Money


class ConsolidationMethod(str, Enum):
    FULL_CONSOLIDATION = "FullConsolidation"
    EQUITY_METHOD = "EquityMethod"
    COST_METHOD = "CostMethod"
    VARIABLE_INTEREST_ENTITY = "VariableInterestEntity"


@dataclass(frozen=True, slots=True)
class VIEDetermination:
    """Record of the primary-beneficiary assessment for a VIE member."""

    is_primary_beneficiary: bool
    determined_on: date | None = None
    rationale: str | None = None


@dataclass(frozen=True, slots=True)
class ConsolidationMember:
    """
    One subsidiary's consolidation parameters.

    ``goodwill`` and ``vie_determination`` are ``None`` when not applicable;
    ``None`` is never a stand-in for a zero amount.
    """

    company_id: str
    ownership_percentage: Decimal
    consolidation_method: ConsolidationMethod
    acquisition_date: date
    non_controlling_interest_percentage: Decimal = Decimal("0")
    goodwill: Money | None = None
    vie_determination: VIEDetermination | None = None

    @property
    def is_primary_beneficiary(self) -> bool:
        return (
            self.vie_determination is not None
            and self.vie_determination.is_primary_beneficiary
        )

    @property
    def is_fully_consolidated(self) -> bool:
        """Full line-by-line consolidation (including primary-beneficiary VIEs)."""
        if self.consolidation_method is ConsolidationMethod.FULL_CONSOLIDATION:
            return True
        return (
            self.consolidation_method is ConsolidationMethod.VARIABLE_INTEREST_ENTITY
            and self.is_primary_beneficiary
        )


@dataclass(frozen=True, slots=True)
class EquityMethodAccounts:
    """Accounts that receive the equity-method pickup for associates."""

    investment_account_id: str
    equity_in_earnings_account_id: str


@dataclass(frozen=True)
class ConsolidationGroup:
    id: str
    organization_id: str
    name: str
    reporting_currency: str
    consolidation_method: ConsolidationMethod
    parent_company_id: str
    is_active: bool = True
    members: tuple[ConsolidationMember, ...] = ()
    elimination_rule_ids: tuple[str, ...] = ()
    equity_method_accounts: EquityMethodAccounts | None = None

    def __post_init__(self) -> None:
        seen: set[str] = set()
        for member in self.members:
            if member.company_id in seen:
                raise ValueError(
                    f"Duplicate member company {member.company_id} in group {self.id}"
                )
            seen.add(member.company_id)

    def member(self, company_id: str) -> ConsolidationMember | None:
        return next((m for m in self.members if m.company_id == company_id), None)


class EliminationType(str, Enum):
    INTERCOMPANY_RECEIVABLE_PAYABLE = "IntercompanyReceivablePayable"
    INTERCOMPANY_REVENUE_EXPENSE = "IntercompanyRevenueExpense"
    INTERCOMPANY_DIVIDEND = "IntercompanyDividend"
    INTERCOMPANY_INVESTMENT = "IntercompanyInvestment"
    UNREALIZED_PROFIT_INVENTORY = "UnrealizedProfitInventory"
    UNREALIZED_PROFIT_FIXED_ASSETS = "UnrealizedProfitFixedAssets"

    @property
    def is_intercompany_pair(self) -> bool:
        """Types that eliminate both sides of a matched intercompany pair."""
        return self in _PAIR_TYPES

    @property
    def uses_matched_intercompany(self) -> bool:
        """Types whose accounts MatchIC pairs: receivable/payable and revenue/expense."""
        return self in _MATCHED_IC_TYPES


_PAIR_TYPES = frozenset({
    EliminationType.INTERCOMPANY_RECEIVABLE_PAYABLE,
    EliminationType.INTERCOMPANY_REVENUE_EXPENSE,
    EliminationType.INTERCOMPANY_DIVIDEND,
})

_MATCHED_IC_TYPES = frozenset({
    EliminationType.INTERCOMPANY_RECEIVABLE_PAYABLE,
    EliminationType.INTERCOMPANY_REVENUE_EXPENSE,
})


@dataclass(frozen=True, slots=True)
class TriggerCondition:
    description: str
    source_accounts: tuple[AccountSelector, ...]
    minimum_amount: Decimal | None = None


@dataclass(frozen=True)
class EliminationRule:
    """
    Reusable elimination rule scoped to a group.

    Lower ``priority`` values are evaluated first; ties break on ``id``.
    """

    id: str
    group_id: str
    name: str
    elimination_type: EliminationType
    debit_account_id: str
    credit_account_id: str
    trigger_conditions: tuple[TriggerCondition, ...] = ()
    source_accounts: tuple[AccountSelector, ...] = ()
    target_accounts: tuple[AccountSelector, ...] = ()
    description: str | None = None
    is_automatic: bool = True
    priority: int = 100
    is_active: bool = True

    def __post_init__(self) -> None:
        if self.priority < 0:
            raise ValueError(f"Rule {self.id}: priority must be >= 0, got {self.priority}")

    @property
    def sort_key(self) -> tuple[int, str]:
        return (self.priority, self.id)

