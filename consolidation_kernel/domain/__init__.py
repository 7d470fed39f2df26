"""
Pure domain layer.

Immutable data structures and value objects for group consolidation with NO
dependencies on the ORM, the database, the clock or any other I/O.
"""

from consolidation_kernel.domain.accounts import (
    AccountBalance,
    AccountCatalog,
    AccountInfo,
    AccountType,
    NormalBalance,
)
from consolidation_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from consolidation_kernel.domain.currency import Currency, decimal_places, minor_unit
from consolidation_kernel.domain.group import (
    ConsolidationGroup,
    ConsolidationMember,
    ConsolidationMethod,
    EliminationRule,
    EliminationType,
    EquityMethodAccounts,
    TriggerCondition,
    VIEDetermination,
)
from consolidation_kernel.domain.period import FiscalPeriodRef
from consolidation_kernel.domain.run import (
    STEP_ORDER,
    ConsolidatedTrialBalance,
    ConsolidationRun,
    ConsolidationStep,
    NCIAllocation,
    RunHandle,
    RunOptions,
    RunStatus,
    StepStatus,
    StepType,
    TrialBalanceLine,
    TrialBalanceTotals,
    ValidationIssue,
    ValidationResult,
    ValidationSeverity,
    create_initial_steps,
)
from consolidation_kernel.domain.selectors import (
    AccountSelector,
    ByCategory,
    ById,
    ByRange,
)
from consolidation_kernel.domain.values import Money

__all__ = [
    "AccountBalance",
    "AccountCatalog",
    "AccountInfo",
    "AccountSelector",
    "AccountType",
    "ByCategory",
    "ById",
    "ByRange",
    "Clock",
    "ConsolidatedTrialBalance",
    "ConsolidationGroup",
    "ConsolidationMember",
    "ConsolidationMethod",
    "ConsolidationRun",
    "ConsolidationStep",
    "Currency",
    "DeterministicClock",
    "EliminationRule",
    "EliminationType",
    "EquityMethodAccounts",
    "FiscalPeriodRef",
    "Money",
    "NCIAllocation",
    "NormalBalance",
    "RunHandle",
    "RunOptions",
    "RunStatus",
    "STEP_ORDER",
    "StepStatus",
    "StepType",
    "SystemClock",
    "TrialBalanceLine",
    "TrialBalanceTotals",
    "TriggerCondition",
    "ValidationIssue",
    "ValidationResult",
    "ValidationSeverity",
    "VIEDetermination",
    "create_initial_steps",
    "decimal_places",
    "minor_unit",
]
