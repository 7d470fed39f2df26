"""
Tests for the RunStore implementations.

Both the in-memory store and the SQLAlchemy store (SQLite in memory) must
honour the same contract: one active run per (group, period), no new run
over a completed one unless regeneration is forced, terminal saves release
the key, and a terminal run is never saved over.
"""

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import select

from consolidation_kernel.db.engine import session_scope
from consolidation_kernel.domain.period import FiscalPeriodRef
from consolidation_kernel.domain.run import (
    ConsolidationRun,
    RunOptions,
    RunStatus,
    StepStatus,
    StepType,
    ValidationIssue,
    ValidationResult,
    ValidationSeverity,
)
from consolidation_kernel.exceptions import (
    DataCorruptionError,
    InvalidRunStateError,
    RunAlreadyCompletedError,
    RunInProgressError,
    RunNotFoundError,
)
from consolidation_services.orm import ConsolidationRunModel
from consolidation_services.run_store import InMemoryRunStore
from consolidation_services.sql_store import SqlAlchemyRuleStore, SqlAlchemyRunStore
from tests.support import GROUP_ID, PERIOD, receivable_payable_rule, revenue_expense_rule

T0 = datetime(2025, 4, 1, 9, 0, tzinfo=timezone.utc)


def _run(
    run_id: str,
    *,
    period: FiscalPeriodRef = PERIOD,
    at: datetime = T0,
    force: bool = False,
) -> ConsolidationRun:
    return ConsolidationRun(
        id=run_id,
        group_id=GROUP_ID,
        period=period,
        as_of_date=period.end_date,
        options=RunOptions(force_regeneration=force),
        initiated_by="tester",
        initiated_at=at,
    )


def _completed(run: ConsolidationRun, at: datetime) -> ConsolidationRun:
    return replace(run, status=RunStatus.COMPLETED, started_at=run.initiated_at, completed_at=at)


@pytest.fixture(params=["memory", "sql"])
def store(request):
    if request.param == "memory":
        return InMemoryRunStore()
    factory = request.getfixturevalue("session_factory")
    return SqlAlchemyRunStore(factory)


class TestRunKey:

    def test_begin_then_load(self, store):
        handle = store.try_begin_run(_run("r1"))

        assert handle.run_id == "r1"
        assert handle.period == PERIOD
        assert store.load("r1").status is RunStatus.PENDING

    def test_second_active_run_rejected(self, store):
        store.try_begin_run(_run("r1"))

        with pytest.raises(RunInProgressError) as exc_info:
            store.try_begin_run(_run("r2"))

        assert exc_info.value.existing_run_id == "r1"
        with pytest.raises(RunNotFoundError):
            store.load("r2")

    def test_in_progress_run_still_holds_key(self, store):
        run = _run("r1")
        store.try_begin_run(run)
        store.save(replace(run, status=RunStatus.IN_PROGRESS, started_at=T0))

        with pytest.raises(RunInProgressError):
            store.try_begin_run(_run("r2"))

    @pytest.mark.parametrize("terminal", [RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELLED])
    def test_terminal_save_releases_key(self, store, terminal):
        store.try_begin_run(_run("r1"))
        store.save(replace(_run("r1"), status=terminal, completed_at=T0))

        store.try_begin_run(_run("r2", force=True))

        assert store.load("r2").status is RunStatus.PENDING
        assert store.load("r1").status is terminal

    def test_completed_run_blocks_unforced_begin(self, store):
        store.try_begin_run(_run("r1"))
        store.save(_completed(_run("r1"), T0 + timedelta(minutes=1)))

        with pytest.raises(RunAlreadyCompletedError) as exc_info:
            store.try_begin_run(_run("r2"))

        assert exc_info.value.existing_run_id == "r1"
        with pytest.raises(RunNotFoundError):
            store.load("r2")

    def test_rejected_begin_leaves_key_free(self, store):
        store.try_begin_run(_run("r1"))
        store.save(_completed(_run("r1"), T0 + timedelta(minutes=1)))
        with pytest.raises(RunAlreadyCompletedError):
            store.try_begin_run(_run("r2"))

        store.try_begin_run(_run("r3", force=True))

        assert store.load("r3").status is RunStatus.PENDING

    def test_other_period_independent(self, store):
        store.try_begin_run(_run("r1"))

        store.try_begin_run(_run("r2", period=FiscalPeriodRef(2025, 4)))

        assert store.load("r2").period == FiscalPeriodRef(2025, 4)


class TestPersistence:

    def test_save_round_trips_run(self, store):
        run = _run("r1")
        store.try_begin_run(run)
        step = replace(
            run.step(StepType.VALIDATE),
            status=StepStatus.COMPLETED,
            started_at=T0,
            completed_at=T0 + timedelta(seconds=2),
            duration_ms=2000,
            details="Validation passed: 0 error(s), 1 warning(s)",
        )
        updated = replace(
            run.with_step(step),
            status=RunStatus.FAILED,
            validation_result=ValidationResult((
                ValidationIssue(ValidationSeverity.WARNING, "RULE_WITHOUT_TRIGGERS", "no triggers", "rule-1"),
            )),
            warnings=("no triggers",),
            error_message="Step 2 (Translate Currencies) failed: boom",
            error_code="STEP_EXECUTION_FAILED",
            failed_step=StepType.TRANSLATE,
            completed_at=T0 + timedelta(seconds=3),
        )

        store.save(updated)

        assert store.load("r1") == updated

    def test_save_unknown_run(self, store):
        with pytest.raises(RunNotFoundError):
            store.save(_run("ghost"))

    def test_load_unknown_run(self, store):
        with pytest.raises(RunNotFoundError):
            store.load("ghost")

    def test_completed_run_with_trial_balance(self, store, standard_harness):
        run = standard_harness.orchestrator().start_run(GROUP_ID, PERIOD)
        store.try_begin_run(replace(run, status=RunStatus.PENDING))
        store.save(run)

        loaded = store.load(run.id)

        assert loaded == run
        assert loaded.trial_balance.line("3900").consolidated_balance == Decimal("8000")


class TestTerminalRuns:

    @pytest.mark.parametrize("terminal", [RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELLED])
    def test_terminal_run_cannot_be_saved_over(self, store, terminal):
        run = _run("r1")
        store.try_begin_run(run)
        ended = replace(run, status=terminal, completed_at=T0)
        store.save(ended)

        with pytest.raises(InvalidRunStateError) as exc_info:
            store.save(replace(run, status=RunStatus.IN_PROGRESS, started_at=T0))

        assert exc_info.value.status == terminal.value
        assert exc_info.value.action == "save"
        assert store.load("r1") == ended

    def test_cancelled_run_not_overwritten_by_completion(self, store):
        run = _run("r1")
        store.try_begin_run(run)
        store.save(replace(run, status=RunStatus.CANCELLED, completed_at=T0))

        with pytest.raises(InvalidRunStateError):
            store.save(_completed(run, T0 + timedelta(minutes=1)))

        assert store.load("r1").status is RunStatus.CANCELLED
        assert store.latest_completed(GROUP_ID, PERIOD) is None


class TestLatestCompleted:

    def test_none_without_completed_runs(self, store):
        store.try_begin_run(_run("r1"))

        assert store.latest_completed(GROUP_ID, PERIOD) is None

    def test_history_kept_and_latest_wins(self, store):
        first = _run("r1")
        store.try_begin_run(first)
        store.save(_completed(first, T0 + timedelta(minutes=1)))
        second = _run("r2", at=T0 + timedelta(minutes=5), force=True)
        store.try_begin_run(second)
        store.save(_completed(second, T0 + timedelta(minutes=6)))

        assert store.latest_completed(GROUP_ID, PERIOD).id == "r2"
        assert store.load("r1").status is RunStatus.COMPLETED

    def test_failed_runs_ignored(self, store):
        run = _run("r1")
        store.try_begin_run(run)
        store.save(replace(run, status=RunStatus.FAILED, completed_at=T0))

        assert store.latest_completed(GROUP_ID, PERIOD) is None


class TestInMemoryListing:

    def test_list_runs_oldest_first(self):
        store = InMemoryRunStore()
        for i, run_id in enumerate(("r1", "r2")):
            run = _run(run_id, at=T0 + timedelta(minutes=i))
            store.try_begin_run(run)
            store.save(replace(run, status=RunStatus.CANCELLED, completed_at=run.initiated_at))

        assert [r.id for r in store.list_runs(GROUP_ID, PERIOD)] == ["r1", "r2"]


class TestSqlPayloadIntegrity:

    def test_corrupt_payload_surfaces(self, session_factory):
        store = SqlAlchemyRunStore(session_factory)
        store.try_begin_run(_run("r1"))
        with session_scope(session_factory) as session:
            model = session.scalars(
                select(ConsolidationRunModel).where(ConsolidationRunModel.run_id == "r1")
            ).one()
            model.payload = {"schema_version": 99, "data": {}}

        with pytest.raises(DataCorruptionError) as exc_info:
            store.load("r1")

        assert "schema_version" in str(exc_info.value)


class TestSqlRuleStore:

    def test_active_rules_in_priority_order(self, session_factory):
        rules = SqlAlchemyRuleStore(session_factory)
        rules.add(revenue_expense_rule())
        rules.add(receivable_payable_rule())
        rules.add(receivable_payable_rule("rule-off", priority=1, is_active=False))

        loaded = rules.get_active_rules(GROUP_ID)

        assert [r.id for r in loaded] == ["rule-rp", "rule-re"]
        assert loaded[0] == receivable_payable_rule()

    def test_rules_scoped_to_group(self, session_factory):
        rules = SqlAlchemyRuleStore(session_factory)
        rules.add(receivable_payable_rule("other", group_id="grp-002"))

        assert rules.get_active_rules(GROUP_ID) == []
