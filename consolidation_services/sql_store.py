"""
consolidation_services.sql_store -- SQLAlchemy-backed run and rule stores.

Responsibility:
    Persist consolidation runs and elimination rules in a relational
    database.  The partial unique index on ``consolidation_runs`` turns
    ``try_begin_run`` into a single atomic INSERT: the database, not the
    application, decides which concurrent caller wins the key.

Architecture position:
    Services -- adapter implementing the RunStore protocol (and the rule
    part of GroupCatalogProvider for callers that keep rules in SQL).

Failure modes:
    - RunInProgressError when the INSERT hits the partial unique index.
    - RunAlreadyCompletedError when a Completed run exists for the key and
      the new run does not force regeneration; checked after the INSERT in
      the same transaction, which then rolls back.
    - InvalidRunStateError when saving over a terminal run.
    - RunNotFoundError for unknown run ids.
    - DataCorruptionError when a stored payload fails to decode.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from consolidation_kernel.db.base import Base
from consolidation_kernel.db.engine import get_engine, session_scope
from consolidation_kernel.domain.group import EliminationRule
from consolidation_kernel.domain.period import FiscalPeriodRef
from consolidation_kernel.domain.run import ConsolidationRun, RunHandle, RunStatus
from consolidation_kernel.exceptions import (
    InvalidRunStateError,
    RunAlreadyCompletedError,
    RunInProgressError,
    RunNotFoundError,
)
from consolidation_kernel.logging_config import get_logger
from consolidation_services.orm import ConsolidationRunModel, EliminationRuleModel

logger = get_logger("services.sql_store")

_ACTIVE = (RunStatus.PENDING.value, RunStatus.IN_PROGRESS.value)
_TERMINAL = frozenset(s.value for s in RunStatus if s.is_terminal)


def create_schema(engine: Engine | None = None) -> None:
    """Create the run and rule tables if they do not exist."""
    Base.metadata.create_all(engine or get_engine())


class SqlAlchemyRunStore:
    """RunStore over a SQLAlchemy session factory."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def try_begin_run(self, run: ConsolidationRun) -> RunHandle:
        try:
            with session_scope(self._session_factory) as session:
                session.add(ConsolidationRunModel.from_dto(run))
                session.flush()
                if not run.options.force_regeneration:
                    completed_id = self._completed_run_id(session, run.group_id, run.period)
                    if completed_id is not None:
                        raise RunAlreadyCompletedError(
                            run.group_id, run.period.code, completed_id,
                        )
        except IntegrityError as exc:
            existing = self._active_run_id(run.group_id, run.period)
            if existing is None:
                raise
            raise RunInProgressError(run.group_id, run.period.code, existing) from exc
        logger.info(
            "run_key_acquired",
            extra={"run_id": run.id, "group_id": run.group_id, "period": run.period.code},
        )
        return RunHandle(run_id=run.id, group_id=run.group_id, period=run.period)

    @staticmethod
    def _completed_run_id(
        session: Session, group_id: str, period: FiscalPeriodRef,
    ) -> str | None:
        return session.scalars(
            select(ConsolidationRunModel.run_id)
            .where(
                ConsolidationRunModel.group_id == group_id,
                ConsolidationRunModel.period_code == period.code,
                ConsolidationRunModel.status == RunStatus.COMPLETED.value,
            )
            .order_by(ConsolidationRunModel.completed_at.desc())
        ).first()

    def _active_run_id(self, group_id: str, period: FiscalPeriodRef) -> str | None:
        with session_scope(self._session_factory) as session:
            return session.scalars(
                select(ConsolidationRunModel.run_id).where(
                    ConsolidationRunModel.group_id == group_id,
                    ConsolidationRunModel.period_code == period.code,
                    ConsolidationRunModel.status.in_(_ACTIVE),
                )
            ).first()

    def save(self, run: ConsolidationRun) -> None:
        with session_scope(self._session_factory) as session:
            model = session.scalars(
                select(ConsolidationRunModel).where(ConsolidationRunModel.run_id == run.id)
            ).one_or_none()
            if model is None:
                raise RunNotFoundError(run.id)
            if model.status in _TERMINAL:
                raise InvalidRunStateError(run.id, model.status, "save")
            model.apply(run)

    def load(self, run_id: str) -> ConsolidationRun:
        with session_scope(self._session_factory) as session:
            model = session.scalars(
                select(ConsolidationRunModel).where(ConsolidationRunModel.run_id == run_id)
            ).one_or_none()
            if model is None:
                raise RunNotFoundError(run_id)
            return model.to_dto()

    def latest_completed(
        self, group_id: str, period: FiscalPeriodRef,
    ) -> ConsolidationRun | None:
        with session_scope(self._session_factory) as session:
            model = session.scalars(
                select(ConsolidationRunModel)
                .where(
                    ConsolidationRunModel.group_id == group_id,
                    ConsolidationRunModel.period_code == period.code,
                    ConsolidationRunModel.status == RunStatus.COMPLETED.value,
                )
                .order_by(ConsolidationRunModel.completed_at.desc())
            ).first()
            return None if model is None else model.to_dto()


class SqlAlchemyRuleStore:
    """Elimination rules kept in SQL, decoded through the versioned codec."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def add(self, rule: EliminationRule) -> None:
        with session_scope(self._session_factory) as session:
            session.add(EliminationRuleModel.from_dto(rule))

    def get_active_rules(self, group_id: str) -> list[EliminationRule]:
        with session_scope(self._session_factory) as session:
            models = session.scalars(
                select(EliminationRuleModel)
                .where(
                    EliminationRuleModel.group_id == group_id,
                    EliminationRuleModel.is_active.is_(True),
                )
                .order_by(EliminationRuleModel.priority, EliminationRuleModel.rule_id)
            ).all()
            return [m.to_dto() for m in models]
