"""
consolidation_services.run_orchestrator -- Consolidation run orchestrator.

Responsibility:
    Drives one consolidation run for a (group, period) through its seven
    steps: Validate, Translate, Aggregate, MatchIC, Eliminate, NCI and
    GenerateTB.  Owns the run lifecycle, step bookkeeping, cooperative
    cancellation and the persistence of every state transition.

Architecture position:
    Services -- imperative shell.  Calls the pure engines in
    ``consolidation_engines`` and every collaborator through the protocols
    in ``consolidation_services.interfaces``.

Invariants enforced:
    - At most one Pending/InProgress run per (group, period); the run store
      grants the key atomically in ``try_begin_run``.
    - Steps execute strictly in order; a step never starts unless every
      earlier step is Completed or Skipped.
    - All inputs are read once into a RunSnapshot at the Validate step.
    - A Completed run always carries a balanced trial balance; a Failed run
      never carries one.
    - Terminal runs (Completed, Failed, Cancelled) are never mutated.

Failure modes:
    - GroupNotFoundError / GroupInactiveError before a run record exists.
    - RunInProgressError / RunAlreadyCompletedError before a run record exists.
    - Any error inside a step: the step and the run are marked Failed,
      ``error_message`` names the step, and the run is returned (not raised).
    - RunNotFoundError / InvalidRunStateError from ``cancel_run``.
    - A run another process moved to a terminal status is returned as
      stored; the store rejects any further save.

Audit relevance:
    The AuditSink is notified once for every Completed or Failed run.  Sink
    failures are logged and never change the run's outcome.
"""

from __future__ import annotations

import contextvars
import threading
from collections.abc import Callable, Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from typing import Any, TypeVar
from uuid import uuid4

from consolidation_config import ConsolidationConfig, get_active_config
from consolidation_engines.aggregation import (
    AggregationResult,
    MemberSum,
    NCIResult,
    TrialBalanceAggregator,
    allocate_nci,
    elimination_amounts,
    equity_pickup_sum,
    investee_net_income,
    merge,
    sum_member,
    translate_member,
)
from consolidation_engines.elimination import EliminationMatcher, MatchOutcome
from consolidation_engines.intercompany import IntercompanyMatcher
from consolidation_engines.nci import MemberTreatment, member_treatment, requires_line_nci
from consolidation_engines.validation import ConsolidationValidator, raise_for_errors
from consolidation_kernel.domain.accounts import AccountBalance, AccountCatalog
from consolidation_kernel.domain.clock import Clock, SystemClock
from consolidation_kernel.domain.group import (
    ConsolidationGroup,
    ConsolidationMember,
    ConsolidationMethod,
)
from consolidation_kernel.domain.period import FiscalPeriodRef
from consolidation_kernel.domain.run import (
    STEP_ORDER,
    ConsolidationRun,
    RunOptions,
    RunStatus,
    StepStatus,
    StepType,
)
from consolidation_kernel.domain.snapshot import RunSnapshot
from consolidation_kernel.exceptions import (
    ConfigurationError,
    ConsolidationError,
    GroupInactiveError,
    InvalidRunStateError,
    StepExecutionError,
)
from consolidation_kernel.logging_config import LogContext, get_logger
from consolidation_services.interfaces import (
    AuditSink,
    BalanceProvider,
    CurrencyTranslationService,
    GroupCatalogProvider,
    RunStore,
)

logger = get_logger("services.run_orchestrator")

_HUNDRED = Decimal("100")
_ZERO = Decimal("0")
_PARENT_ACQUISITION = date(1900, 1, 1)

_T = TypeVar("_T")

StepListener = Callable[[ConsolidationRun, StepType], None]


class CancellationToken:
    """Cooperative cancellation flag checked between steps."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class _RunState:
    """Mutable working state of one executing run. Never shared across runs."""

    run: ConsolidationRun
    snapshot: RunSnapshot | None = None
    in_scope: dict[str, ConsolidationMember] = field(default_factory=dict)
    treatments: dict[str, MemberTreatment] = field(default_factory=dict)
    translated: dict[str, tuple[AccountBalance, ...]] = field(default_factory=dict)
    aggregation: AggregationResult | None = None
    ic_balances: Mapping[str, Decimal] | None = None
    match_outcome: MatchOutcome | None = None
    eliminations: dict[str, Decimal] = field(default_factory=dict)
    nci: NCIResult | None = None


@dataclass(frozen=True)
class _StepOutcome:
    status: StepStatus
    details: str


class ConsolidationRunOrchestrator:
    """
    Runs consolidations end to end.

    Contract:
        Receives every collaborator via constructor injection.
        ``start_run`` executes synchronously on the calling thread and
        returns the terminal run.  ``cancel_run`` may be called from any
        other thread.
    Guarantees:
        - Each step transition is persisted before the next step starts.
        - A collaborator failure fails the step during which it was called.
        - Cancellation takes effect at the next step boundary; the step in
          progress completes and later steps remain Pending.
    Non-goals:
        - Does not post elimination journal entries; it only records their
          identifiers on the run.
        - Cancellation tokens are process-local; a run executing in another
          process is cancelled only as an orphaned record.
    """

    def __init__(
        self,
        catalog: GroupCatalogProvider,
        balances: BalanceProvider,
        translator: CurrencyTranslationService,
        store: RunStore,
        audit: AuditSink | None = None,
        clock: Clock | None = None,
        config: ConsolidationConfig | None = None,
        step_listener: StepListener | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._catalog = catalog
        self._balances = balances
        self._translator = translator
        self._store = store
        self._audit = audit
        self._clock = clock or SystemClock()
        self._config = config or get_active_config()
        self._step_listener = step_listener
        self._new_id = id_factory or (lambda: str(uuid4()))

        self._validator = ConsolidationValidator(
            ownership_tolerance=self._config.ownership_tolerance,
            control_above=self._config.thresholds.control_above,
            significant_influence_from=self._config.thresholds.significant_influence_from,
        )
        self._ic_matcher = IntercompanyMatcher()
        self._elimination_matcher = EliminationMatcher()
        self._aggregator = TrialBalanceAggregator(
            rounding=self._config.rounding_mode,
            nci_account_number=self._config.nci_account.account_number,
            nci_account_name=self._config.nci_account.name,
            nci_account_category=self._config.nci_account.category,
        )

        self._tokens_lock = threading.Lock()
        self._tokens: dict[str, CancellationToken] = {}

        self._handlers: dict[StepType, Callable[[_RunState], _StepOutcome]] = {
            StepType.VALIDATE: self._validate,
            StepType.TRANSLATE: self._translate,
            StepType.AGGREGATE: self._aggregate,
            StepType.MATCH_IC: self._match_intercompany,
            StepType.ELIMINATE: self._eliminate,
            StepType.NCI: self._allocate_nci,
            StepType.GENERATE_TB: self._generate_trial_balance,
        }

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def start_run(
        self,
        group_id: str,
        period: FiscalPeriodRef,
        options: RunOptions | None = None,
        initiated_by: str = "system",
        as_of_date: date | None = None,
    ) -> ConsolidationRun:
        """Create and execute a consolidation run.

        Raises GroupNotFoundError, GroupInactiveError, RunInProgressError or
        RunAlreadyCompletedError when the run cannot be created.  Once the
        run exists every failure is recorded on it and the Failed run is
        returned.
        """
        options = options or RunOptions()
        group = self._catalog.get_group(group_id)
        if not group.is_active:
            raise GroupInactiveError(group_id)

        run = ConsolidationRun(
            id=self._new_id(),
            group_id=group_id,
            period=period,
            as_of_date=as_of_date or period.end_date,
            options=options,
            initiated_by=initiated_by,
            initiated_at=self._clock.now(),
        )
        # Token first: cancel_run can see the run as soon as the store has it.
        token = CancellationToken()
        with self._tokens_lock:
            self._tokens[run.id] = token
        try:
            self._store.try_begin_run(run)
            with LogContext.bind(
                correlation_id=run.id,
                run_id=run.id,
                group_id=group_id,
                period=period.code,
                actor_id=initiated_by,
            ):
                logger.info(
                    "run_started",
                    extra={
                        "force_regeneration": options.force_regeneration,
                        "skip_validation": options.skip_validation,
                    },
                )
                return self._execute(run, token)
        finally:
            with self._tokens_lock:
                self._tokens.pop(run.id, None)

    def cancel_run(self, run_id: str) -> ConsolidationRun:
        """Request cancellation of a Pending or InProgress run.

        A run executing in this process stops at its next step boundary and
        the stored run is returned as it stands.  A run with no executing
        orchestrator here is transitioned to Cancelled directly.
        """
        run = self._store.load(run_id)
        if run.status.is_terminal:
            raise InvalidRunStateError(run_id, run.status.value, "cancel")

        with self._tokens_lock:
            token = self._tokens.get(run_id)
        if token is not None:
            token.cancel()
            logger.info("run_cancel_requested", extra={"run_id": run_id})
            return self._store.load(run_id)

        cancelled = replace(
            run,
            status=RunStatus.CANCELLED,
            completed_at=self._clock.now(),
        )
        self._store.save(cancelled)
        logger.warning("orphaned_run_cancelled", extra={"run_id": run_id})
        return cancelled

    def get_run(self, run_id: str) -> ConsolidationRun:
        return self._store.load(run_id)

    # ------------------------------------------------------------------
    # Step loop
    # ------------------------------------------------------------------

    def _execute(self, run: ConsolidationRun, token: CancellationToken) -> ConsolidationRun:
        try:
            return self._run_steps(run, token)
        except InvalidRunStateError as exc:
            # Another process moved the stored run to a terminal status.
            stored = self._store.load(run.id)
            logger.warning(
                "run_terminated_externally",
                extra={"run_status": stored.status.value, "action": exc.action},
            )
            return stored

    def _run_steps(self, run: ConsolidationRun, token: CancellationToken) -> ConsolidationRun:
        state = _RunState(run=replace(
            run, status=RunStatus.IN_PROGRESS, started_at=self._clock.now(),
        ))
        self._store.save(state.run)

        for step_type in STEP_ORDER:
            if token.is_cancelled:
                return self._cancel(state)
            started = self._clock.now()
            with LogContext.bind(step=step_type.value):
                try:
                    self._begin_step(state, step_type, started)
                    outcome = self._handlers[step_type](state)
                    self._end_step(state, step_type, outcome, started)
                except ConsolidationError as exc:
                    return self._fail(state, step_type, exc, started)
                except Exception as exc:
                    logger.exception("step_unexpected_error", extra={"step": step_type.value})
                    return self._fail(
                        state, step_type, StepExecutionError(step_type.value, exc), started,
                    )

        return self._complete(state)

    def _begin_step(self, state: _RunState, step_type: StepType, started: datetime) -> None:
        step = replace(
            state.run.step(step_type), status=StepStatus.IN_PROGRESS, started_at=started,
        )
        state.run = state.run.with_step(step)
        self._store.save(state.run)
        logger.info("step_started", extra={"step": step_type.value, "order": step_type.order})
        if self._step_listener is not None:
            self._step_listener(state.run, step_type)

    def _end_step(
        self,
        state: _RunState,
        step_type: StepType,
        outcome: _StepOutcome,
        started: datetime,
    ) -> None:
        finished = self._clock.now()
        step = replace(
            state.run.step(step_type),
            status=outcome.status,
            completed_at=finished,
            duration_ms=_elapsed_ms(started, finished),
            details=outcome.details,
        )
        state.run = state.run.with_step(step)
        self._store.save(state.run)
        logger.info(
            "step_completed",
            extra={
                "step": step_type.value,
                "step_status": outcome.status.value,
                "details": outcome.details,
                "duration_ms": step.duration_ms,
            },
        )

    def _fail(
        self,
        state: _RunState,
        step_type: StepType,
        exc: ConsolidationError,
        started: datetime,
    ) -> ConsolidationRun:
        finished = self._clock.now()
        step = replace(
            state.run.step(step_type),
            status=StepStatus.FAILED,
            started_at=state.run.step(step_type).started_at or started,
            completed_at=finished,
            duration_ms=_elapsed_ms(started, finished),
            error_message=str(exc),
        )
        run = replace(
            state.run.with_step(step),
            status=RunStatus.FAILED,
            trial_balance=None,
            completed_at=finished,
            total_duration_ms=_elapsed_ms(state.run.started_at or finished, finished),
            error_message=f"Step {step_type.order} ({step_type.display_name}) failed: {exc}",
            error_code=exc.code,
            failed_step=step_type,
        )
        state.run = run
        self._store.save(run)
        logger.error(
            "run_failed",
            extra={
                "step": step_type.value,
                "error_code": exc.code,
                "error_message": str(exc),
            },
        )
        self._notify_audit(run)
        return run

    def _cancel(self, state: _RunState) -> ConsolidationRun:
        finished = self._clock.now()
        run = replace(
            state.run,
            status=RunStatus.CANCELLED,
            trial_balance=None,
            completed_at=finished,
            total_duration_ms=_elapsed_ms(state.run.started_at or finished, finished),
        )
        state.run = run
        self._store.save(run)
        logger.warning(
            "run_cancelled",
            extra={"last_completed_step": run.last_completed_step},
        )
        return run

    def _complete(self, state: _RunState) -> ConsolidationRun:
        finished = self._clock.now()
        run = replace(
            state.run,
            status=RunStatus.COMPLETED,
            completed_at=finished,
            total_duration_ms=_elapsed_ms(state.run.started_at or finished, finished),
        )
        state.run = run
        self._store.save(run)
        logger.info(
            "run_completed",
            extra={
                "line_count": len(run.trial_balance.lines) if run.trial_balance else 0,
                "elimination_count": len(run.elimination_entry_ids),
                "warning_count": len(run.warnings),
                "total_duration_ms": run.total_duration_ms,
            },
        )
        self._notify_audit(run)
        return run

    def _notify_audit(self, run: ConsolidationRun) -> None:
        if self._audit is None:
            return
        try:
            self._audit.notify(run)
        except Exception:
            logger.exception(
                "audit_notification_failed",
                extra={"run_status": run.status.value},
            )

    # ------------------------------------------------------------------
    # Step 1: Validate
    # ------------------------------------------------------------------

    def _validate(self, state: _RunState) -> _StepOutcome:
        run = state.run
        options = run.options
        snapshot = self._take_snapshot(run.group_id, run.period, options)
        state.snapshot = snapshot
        self._scope_members(state, snapshot, options)

        if options.skip_validation:
            return _StepOutcome(StepStatus.SKIPPED, "Validation skipped by run options")

        result = self._validator.validate(
            snapshot=snapshot,
            as_of_date=run.as_of_date,
            include_equity_method=options.include_equity_method_investments,
        )
        state.run = replace(
            state.run,
            validation_result=result,
            warnings=state.run.warnings + tuple(w.message for w in result.warnings),
        )
        raise_for_errors(result)
        if result.warnings and not options.continue_on_warnings:
            raise ConfigurationError(
                f"Validation produced {len(result.warnings)} warning(s) and "
                f"continue_on_warnings is disabled: "
                + "; ".join(w.message for w in result.warnings),
                tuple(dict.fromkeys(
                    w.entity_reference for w in result.warnings if w.entity_reference
                )),
            )
        return _StepOutcome(StepStatus.COMPLETED, f"Validation passed: {result.summary()}")

    def _take_snapshot(
        self,
        group_id: str,
        period: FiscalPeriodRef,
        options: RunOptions,
    ) -> RunSnapshot:
        group = self._catalog.get_group(group_id)
        members = tuple(self._catalog.get_members(group_id))
        if all(m.company_id != group.parent_company_id for m in members):
            members = (_implicit_parent(group), *members)

        rules = tuple(sorted(
            self._catalog.get_active_rules(group_id), key=lambda r: r.sort_key,
        ))
        company_ids = list(dict.fromkeys(m.company_id for m in members))
        catalog = AccountCatalog.merge(
            [self._catalog.get_account_catalog(cid) for cid in company_ids]
        )

        balances: dict[str, tuple[AccountBalance, ...]] = {}
        for member in members:
            treatment = member_treatment(member, options.include_equity_method_investments)
            if treatment is MemberTreatment.EXCLUDED or member.company_id in balances:
                continue
            balances[member.company_id] = tuple(
                self._balances.get_member_trial_balance(member.company_id, period)
            )

        snapshot = RunSnapshot(
            group=group,
            members=members,
            rules=rules,
            catalog=catalog,
            balances=balances,
            taken_at=self._clock.now(),
        )
        logger.info(
            "run_snapshot_taken",
            extra={
                "member_count": len(members),
                "rule_count": len(rules),
                "account_count": len(catalog),
                "balance_count": sum(len(b) for b in balances.values()),
            },
        )
        return snapshot

    def _scope_members(
        self,
        state: _RunState,
        snapshot: RunSnapshot,
        options: RunOptions,
    ) -> None:
        """Decide which members contribute and how."""
        accounts = snapshot.group.equity_method_accounts
        pickup_possible = (
            accounts is not None
            and accounts.investment_account_id in snapshot.catalog
            and accounts.equity_in_earnings_account_id in snapshot.catalog
        )
        for member in snapshot.members:
            if member.company_id in state.in_scope:
                continue
            treatment = member_treatment(member, options.include_equity_method_investments)
            if treatment is MemberTreatment.EQUITY_PICKUP and not pickup_possible:
                treatment = MemberTreatment.EXCLUDED
            if treatment is MemberTreatment.EXCLUDED:
                logger.info(
                    "member_excluded",
                    extra={
                        "company_id": member.company_id,
                        "method": member.consolidation_method.value,
                    },
                )
                continue
            state.in_scope[member.company_id] = member
            state.treatments[member.company_id] = treatment

    # ------------------------------------------------------------------
    # Step 2: Translate
    # ------------------------------------------------------------------

    def _translate(self, state: _RunState) -> _StepOutcome:
        snapshot = _require(state.snapshot)
        currency = snapshot.group.reporting_currency
        as_of = state.run.as_of_date
        company_ids = sorted(state.in_scope)

        def translate_one(company_id: str) -> tuple[AccountBalance, ...]:
            return translate_member(
                snapshot.balances.get(company_id, ()),
                currency,
                as_of,
                self._translator.translate,
            )

        results = self._fan_out(translate_one, company_ids)
        state.translated = dict(zip(company_ids, results))
        converted = sum(
            1
            for cid in company_ids
            for b in snapshot.balances.get(cid, ())
            if b.currency != currency
        )
        return _StepOutcome(
            StepStatus.COMPLETED,
            f"Translated {len(company_ids)} member(s) into {currency} "
            f"({converted} balance(s) converted)",
        )

    # ------------------------------------------------------------------
    # Step 3: Aggregate
    # ------------------------------------------------------------------

    def _aggregate(self, state: _RunState) -> _StepOutcome:
        snapshot = _require(state.snapshot)
        currency = snapshot.group.reporting_currency
        accounts = snapshot.group.equity_method_accounts

        def sum_one(company_id: str) -> MemberSum:
            balances = state.translated.get(company_id, ())
            if state.treatments[company_id] is MemberTreatment.EQUITY_PICKUP:
                net_income = investee_net_income(balances, snapshot.catalog)
                return equity_pickup_sum(state.in_scope[company_id], net_income, accounts)
            return sum_member(company_id, balances, currency)

        sums = self._fan_out(sum_one, sorted(state.in_scope))
        state.aggregation = merge(sums, snapshot.catalog)
        return _StepOutcome(StepStatus.COMPLETED, state.aggregation.details())

    # ------------------------------------------------------------------
    # Step 4: MatchIC
    # ------------------------------------------------------------------

    def _match_intercompany(self, state: _RunState) -> _StepOutcome:
        snapshot = _require(state.snapshot)
        full_ids = frozenset(
            cid for cid, t in state.treatments.items() if t is MemberTreatment.FULL
        )
        balances = [b for cid in sorted(full_ids) for b in state.translated.get(cid, ())]
        result = self._ic_matcher.match(
            balances=balances,
            catalog=snapshot.catalog,
            consolidated_company_ids=full_ids,
        )
        if result.tagged_balance_count == 0:
            state.ic_balances = None
            return _StepOutcome(
                StepStatus.COMPLETED,
                "No intercompany-tagged balances; rules evaluate aggregated balances",
            )
        # None when every tagged balance sits on an account MatchIC cannot pair
        state.ic_balances = result.matched_balances() or None
        return _StepOutcome(StepStatus.COMPLETED, result.summary())

    # ------------------------------------------------------------------
    # Step 5: Eliminate
    # ------------------------------------------------------------------

    def _eliminate(self, state: _RunState) -> _StepOutcome:
        snapshot = _require(state.snapshot)
        aggregation = _require(state.aggregation)
        outcome = self._elimination_matcher.match(
            rules=snapshot.rules,
            balances=aggregation.by_account_id,
            catalog=snapshot.catalog,
            ic_balances=state.ic_balances,
        )
        state.match_outcome = outcome
        state.eliminations = elimination_amounts(outcome.candidates, snapshot.catalog)

        entry_ids = tuple(self._new_id() for _ in outcome.candidates)
        state.run = replace(
            state.run,
            elimination_entry_ids=entry_ids,
            manual_review_rule_ids=outcome.manual_review_rule_ids,
            warnings=state.run.warnings + tuple(w.message for w in outcome.warnings),
        )
        return _StepOutcome(
            StepStatus.COMPLETED,
            f"Generated {len(outcome.candidates)} elimination(s) totalling "
            f"{outcome.total_amount} {snapshot.group.reporting_currency}; "
            f"{len(outcome.skipped_rule_ids)} rule(s) skipped, "
            f"{len(outcome.manual_review_rule_ids)} pending manual review",
        )

    # ------------------------------------------------------------------
    # Step 6: NCI
    # ------------------------------------------------------------------

    def _allocate_nci(self, state: _RunState) -> _StepOutcome:
        bearing = [m for m in state.in_scope.values() if requires_line_nci(m)]
        if not bearing:
            state.nci = None
            return _StepOutcome(StepStatus.SKIPPED, "No member carries non-controlling interest")
        state.nci = allocate_nci(
            aggregation=_require(state.aggregation),
            eliminations=state.eliminations,
            members=state.in_scope,
            exclude_account_numbers=frozenset({self._aggregator.nci_account_number}),
        )
        return _StepOutcome(
            StepStatus.COMPLETED,
            f"Allocated non-controlling interest for {len(bearing)} member(s)",
        )

    # ------------------------------------------------------------------
    # Step 7: GenerateTB
    # ------------------------------------------------------------------

    def _generate_trial_balance(self, state: _RunState) -> _StepOutcome:
        snapshot = _require(state.snapshot)
        run = state.run
        trial_balance = self._aggregator.build(
            run_id=run.id,
            group_id=run.group_id,
            period=run.period,
            as_of_date=run.as_of_date,
            currency=snapshot.group.reporting_currency,
            aggregation=_require(state.aggregation),
            eliminations=state.eliminations,
            candidates=state.match_outcome.candidates if state.match_outcome else (),
            catalog=snapshot.catalog,
            nci=state.nci,
            members=state.in_scope,
            generated_at=self._clock.now(),
        )
        state.run = replace(run, trial_balance=trial_balance)
        totals = trial_balance.totals
        return _StepOutcome(
            StepStatus.COMPLETED,
            f"Generated {len(trial_balance.lines)} line(s); debits {totals.total_debits} "
            f"= credits {totals.total_credits} {trial_balance.currency}",
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _fan_out(self, fn: Callable[[str], Any], company_ids: list[str]) -> list[Any]:
        """Run ``fn`` per member on the worker pool, preserving input order."""
        if not company_ids:
            return []
        workers = min(self._config.aggregation_max_workers, len(company_ids))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [
                pool.submit(contextvars.copy_context().run, fn, cid)
                for cid in company_ids
            ]
            return [f.result() for f in futures]


def _implicit_parent(group: ConsolidationGroup) -> ConsolidationMember:
    return ConsolidationMember(
        company_id=group.parent_company_id,
        ownership_percentage=_HUNDRED,
        consolidation_method=ConsolidationMethod.FULL_CONSOLIDATION,
        acquisition_date=_PARENT_ACQUISITION,
        non_controlling_interest_percentage=_ZERO,
    )


def _elapsed_ms(start: datetime, end: datetime) -> int:
    return max(0, int((end - start).total_seconds() * 1000))


def _require(value: _T | None) -> _T:
    if value is None:
        raise RuntimeError("step executed before its inputs were produced")
    return value
