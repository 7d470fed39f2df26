"""
SQLAlchemy ORM persistence models for consolidation runs and rules.

Responsibility
--------------
Database-backed storage for ``ConsolidationRun`` records and
``EliminationRule`` definitions.  Structured sub-objects are stored as JSON
through the versioned codec in ``consolidation_kernel.serialization``;
only the columns needed for lookup and locking are broken out.

Invariants enforced
-------------------
* At most one Pending/InProgress run per (group_id, period_code): a partial
  unique index makes the check-and-create in ``try_begin_run`` atomic.
* Stored JSON is decoded through the codec; malformed payloads surface as
  DataCorruptionError, never as defaults.
"""

from datetime import datetime

from sqlalchemy import Boolean, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from consolidation_kernel.db.base import TrackedBase
from consolidation_kernel.domain.group import EliminationRule
from consolidation_kernel.domain.run import ConsolidationRun
from consolidation_kernel.serialization import (
    rule_from_dict,
    rule_to_dict,
    run_from_dict,
    run_to_dict,
)

_ACTIVE_STATUS_CLAUSE = text("status IN ('Pending', 'InProgress')")


class ConsolidationRunModel(TrackedBase):
    """
    One consolidation run.

    Maps to the ``ConsolidationRun`` domain record.
    """

    __tablename__ = "consolidation_runs"

    __table_args__ = (
        Index(
            "uq_consolidation_run_active_key",
            "group_id", "period_code",
            unique=True,
            postgresql_where=_ACTIVE_STATUS_CLAUSE,
            sqlite_where=_ACTIVE_STATUS_CLAUSE,
        ),
        Index("idx_consolidation_run_key_status", "group_id", "period_code", "status"),
    )

    run_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    group_id: Mapped[str] = mapped_column(String(100), nullable=False)
    period_code: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    payload: Mapped[dict] = mapped_column(nullable=False)

    def to_dto(self) -> ConsolidationRun:
        return run_from_dict(self.payload)

    def apply(self, run: ConsolidationRun) -> None:
        self.status = run.status.value
        self.completed_at = run.completed_at
        self.payload = run_to_dict(run)

    @classmethod
    def from_dto(cls, run: ConsolidationRun) -> "ConsolidationRunModel":
        model = cls(
            run_id=run.id,
            group_id=run.group_id,
            period_code=run.period.code,
        )
        model.apply(run)
        return model

    def __repr__(self) -> str:
        return f"<ConsolidationRunModel {self.run_id} {self.group_id} {self.period_code} [{self.status}]>"


class EliminationRuleModel(TrackedBase):
    """An elimination rule definition scoped to a group."""

    __tablename__ = "consolidation_elimination_rules"

    __table_args__ = (
        Index("idx_elim_rule_group_active", "group_id", "is_active"),
    )

    rule_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    group_id: Mapped[str] = mapped_column(String(100), nullable=False)
    priority: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False)
    payload: Mapped[dict] = mapped_column(nullable=False)

    def to_dto(self) -> EliminationRule:
        return rule_from_dict(self.payload)

    @classmethod
    def from_dto(cls, rule: EliminationRule) -> "EliminationRuleModel":
        return cls(
            rule_id=rule.id,
            group_id=rule.group_id,
            priority=rule.priority,
            is_active=rule.is_active,
            payload=rule_to_dict(rule),
        )

    def __repr__(self) -> str:
        return f"<EliminationRuleModel {self.rule_id} group={self.group_id} p={self.priority}>"
