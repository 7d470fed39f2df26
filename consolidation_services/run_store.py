"""
consolidation_services.run_store -- In-memory RunStore.

Responsibility:
    Keeps runs in a dict and enforces "one active run per (group, period)"
    under a single lock, which makes check-and-create atomic within one
    process.  The completed-run guard is checked under the same lock.

Architecture position:
    Services -- adapter implementing the RunStore protocol.  The SQL-backed
    equivalent is ``consolidation_services.sql_store.SqlAlchemyRunStore``.
"""

from __future__ import annotations

import threading

from consolidation_kernel.domain.period import FiscalPeriodRef
from consolidation_kernel.domain.run import ConsolidationRun, RunHandle, RunStatus
from consolidation_kernel.exceptions import (
    InvalidRunStateError,
    RunAlreadyCompletedError,
    RunInProgressError,
    RunNotFoundError,
)
from consolidation_kernel.logging_config import get_logger

logger = get_logger("services.run_store")


class InMemoryRunStore:
    """
    Thread-safe in-process run store.

    Guarantees:
        - ``try_begin_run`` rejects a second active run for the same key
          even when called concurrently from many threads.
        - Without force_regeneration, ``try_begin_run`` rejects a key that
          already has a Completed run.
        - Completed runs are never overwritten by a later run; history is
          kept as separate records.
        - A terminal run is never saved over.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._runs: dict[str, ConsolidationRun] = {}
        self._active: dict[tuple[str, FiscalPeriodRef], str] = {}

    def try_begin_run(self, run: ConsolidationRun) -> RunHandle:
        key = (run.group_id, run.period)
        with self._lock:
            existing_id = self._active.get(key)
            if existing_id is not None and self._runs[existing_id].status.is_active:
                raise RunInProgressError(run.group_id, run.period.code, existing_id)
            if not run.options.force_regeneration:
                completed = self._latest_completed(run.group_id, run.period)
                if completed is not None:
                    raise RunAlreadyCompletedError(
                        run.group_id, run.period.code, completed.id,
                    )
            self._runs[run.id] = run
            self._active[key] = run.id
        logger.info(
            "run_key_acquired",
            extra={"run_id": run.id, "group_id": run.group_id, "period": run.period.code},
        )
        return RunHandle(run_id=run.id, group_id=run.group_id, period=run.period)

    def save(self, run: ConsolidationRun) -> None:
        key = (run.group_id, run.period)
        with self._lock:
            stored = self._runs.get(run.id)
            if stored is None:
                raise RunNotFoundError(run.id)
            if stored.status.is_terminal:
                raise InvalidRunStateError(run.id, stored.status.value, "save")
            self._runs[run.id] = run
            if run.status.is_terminal and self._active.get(key) == run.id:
                del self._active[key]

    def load(self, run_id: str) -> ConsolidationRun:
        with self._lock:
            run = self._runs.get(run_id)
        if run is None:
            raise RunNotFoundError(run_id)
        return run

    def latest_completed(
        self, group_id: str, period: FiscalPeriodRef,
    ) -> ConsolidationRun | None:
        with self._lock:
            return self._latest_completed(group_id, period)

    def _latest_completed(
        self, group_id: str, period: FiscalPeriodRef,
    ) -> ConsolidationRun | None:
        completed = [
            r for r in self._runs.values()
            if r.group_id == group_id
            and r.period == period
            and r.status is RunStatus.COMPLETED
        ]
        if not completed:
            return None
        return max(completed, key=lambda r: (r.completed_at, r.initiated_at))

    def list_runs(self, group_id: str, period: FiscalPeriodRef) -> list[ConsolidationRun]:
        """All runs for a key, oldest first."""
        with self._lock:
            runs = [r for r in self._runs.values() if r.group_id == group_id and r.period == period]
        return sorted(runs, key=lambda r: r.initiated_at)
