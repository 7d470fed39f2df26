"""
Run -- consolidation run lifecycle records.

Responsibility:
    Immutable records describing one consolidation attempt: the run, its
    seven pipeline steps, run options, validation outcome and the
    consolidated trial balance it produced.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Produced by consolidation_services.run_orchestrator, persisted by a
    RunStore, decoded through consolidation_kernel.serialization.

Invariants enforced:
    - Step order is fixed: Validate, Translate, Aggregate, MatchIC,
      Eliminate, NCI, GenerateTB (orders 1-7).
    - Run status moves Pending -> InProgress -> {Completed, Failed,
      Cancelled}; terminal runs are never mutated.
    - ``trial_balance`` is present only on Completed runs.

Audit relevance:
    Run status, the failing step and ``error_message`` together are enough
    to diagnose a failure without reading logs.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from consolidation_kernel.domain.accounts import AccountType, NormalBalance
from consolidation_kernel.domain.period import FiscalPeriodRef


class RunStatus(str, Enum):
    PENDING = "Pending"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    FAILED = "Failed"
    CANCELLED = "Cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELLED)

    @property
    def is_active(self) -> bool:
        return self in (RunStatus.PENDING, RunStatus.IN_PROGRESS)


class StepStatus(str, Enum):
    PENDING = "Pending"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    FAILED = "Failed"
    SKIPPED = "Skipped"


class StepType(str, Enum):
    VALIDATE = "Validate"
    TRANSLATE = "Translate"
    AGGREGATE = "Aggregate"
    MATCH_IC = "MatchIC"
    ELIMINATE = "Eliminate"
    NCI = "NCI"
    GENERATE_TB = "GenerateTB"

    @property
    def order(self) -> int:
        return STEP_ORDER.index(self) + 1

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]


STEP_ORDER: tuple[StepType, ...] = (
    StepType.VALIDATE,
    StepType.TRANSLATE,
    StepType.AGGREGATE,
    StepType.MATCH_IC,
    StepType.ELIMINATE,
    StepType.NCI,
    StepType.GENERATE_TB,
)

_DISPLAY_NAMES = {
    StepType.VALIDATE: "Validate Member Data",
    StepType.TRANSLATE: "Currency Translation",
    StepType.AGGREGATE: "Aggregate Balances",
    StepType.MATCH_IC: "Intercompany Matching",
    StepType.ELIMINATE: "Generate Eliminations",
    StepType.NCI: "Calculate Minority Interest",
    StepType.GENERATE_TB: "Generate Consolidated TB",
}


@dataclass(frozen=True, slots=True)
class ConsolidationStep:
    step_type: StepType
    order: int
    status: StepStatus = StepStatus.PENDING
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int | None = None
    error_message: str | None = None
    details: str | None = None

    @property
    def is_done(self) -> bool:
        """Completed or Skipped: the next step may start."""
        return self.status in (StepStatus.COMPLETED, StepStatus.SKIPPED)


def create_initial_steps() -> tuple[ConsolidationStep, ...]:
    return tuple(ConsolidationStep(step_type=s, order=s.order) for s in STEP_ORDER)


@dataclass(frozen=True, slots=True)
class RunOptions:
    skip_validation: bool = False
    continue_on_warnings: bool = True
    include_equity_method_investments: bool = True
    force_regeneration: bool = False


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class ValidationSeverity(str, Enum):
    ERROR = "Error"
    WARNING = "Warning"


@dataclass(frozen=True, slots=True)
class ValidationIssue:
    severity: ValidationSeverity
    code: str
    message: str
    entity_reference: str | None = None


@dataclass(frozen=True)
class ValidationResult:
    """Errors block the run; warnings only block when continue_on_warnings is off."""

    issues: tuple[ValidationIssue, ...] = ()

    @property
    def errors(self) -> tuple[ValidationIssue, ...]:
        return tuple(i for i in self.issues if i.severity is ValidationSeverity.ERROR)

    @property
    def warnings(self) -> tuple[ValidationIssue, ...]:
        return tuple(i for i in self.issues if i.severity is ValidationSeverity.WARNING)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def summary(self) -> str:
        return f"{len(self.errors)} error(s), {len(self.warnings)} warning(s)"


# ---------------------------------------------------------------------------
# Consolidated trial balance
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TrialBalanceLine:
    """
    One consolidated account line.

    All amounts are natural balances in the reporting currency.
    ``consolidated_balance = aggregated_balance - elimination_amount - nci_amount``
    where ``nci_amount`` is the share reclassified to non-controlling interest.
    ``nci_amount`` is ``None`` for lines that carry no NCI allocation.
    """

    account_number: str
    account_name: str
    account_type: AccountType
    account_category: str
    aggregated_balance: Decimal
    elimination_amount: Decimal
    nci_amount: Decimal | None
    consolidated_balance: Decimal

    @property
    def normal_balance(self) -> NormalBalance:
        return self.account_type.normal_balance


@dataclass(frozen=True, slots=True)
class TrialBalanceTotals:
    total_debits: Decimal
    total_credits: Decimal
    total_eliminations: Decimal
    total_nci: Decimal


@dataclass(frozen=True, slots=True)
class NCIAllocation:
    """Per-member non-controlling interest and goodwill split."""

    company_id: str
    nci_percentage: Decimal
    nci_amount: Decimal
    goodwill_parent_share: Decimal | None = None
    goodwill_nci_share: Decimal | None = None


@dataclass(frozen=True)
class ConsolidatedTrialBalance:
    run_id: str
    group_id: str
    period: FiscalPeriodRef
    as_of_date: date
    currency: str
    lines: tuple[TrialBalanceLine, ...]
    totals: TrialBalanceTotals
    generated_at: datetime
    nci_allocations: tuple[NCIAllocation, ...] = ()

    @property
    def is_balanced(self) -> bool:
        return self.totals.total_debits == self.totals.total_credits

    def line(self, account_number: str) -> TrialBalanceLine | None:
        return next((ln for ln in self.lines if ln.account_number == account_number), None)


# ---------------------------------------------------------------------------
# Run
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RunHandle:
    """Proof that the run store granted the (group, period) key to a run."""

    run_id: str
    group_id: str
    period: FiscalPeriodRef


@dataclass(frozen=True)
class ConsolidationRun:
    """
    One execution attempt for a group and period.

    Updated only by producing new instances via ``dataclasses.replace``.
    """

    id: str
    group_id: str
    period: FiscalPeriodRef
    as_of_date: date
    options: RunOptions
    initiated_by: str
    initiated_at: datetime
    status: RunStatus = RunStatus.PENDING
    steps: tuple[ConsolidationStep, ...] = field(default_factory=create_initial_steps)
    validation_result: ValidationResult | None = None
    trial_balance: ConsolidatedTrialBalance | None = None
    elimination_entry_ids: tuple[str, ...] = ()
    manual_review_rule_ids: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    started_at: datetime | None = None
    completed_at: datetime | None = None
    total_duration_ms: int | None = None
    error_message: str | None = None
    error_code: str | None = None
    failed_step: StepType | None = None

    def step(self, step_type: StepType) -> ConsolidationStep:
        return self.steps[step_type.order - 1]

    def with_step(self, step: ConsolidationStep) -> ConsolidationRun:
        steps = list(self.steps)
        steps[step.order - 1] = step
        return replace(self, steps=tuple(steps))

    @property
    def last_completed_step(self) -> StepType | None:
        done = [s.step_type for s in self.steps if s.status is StepStatus.COMPLETED]
        return done[-1] if done else None
