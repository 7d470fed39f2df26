"""
consolidation_services.interfaces -- Collaborator protocols.

Responsibility:
    Structural interfaces for everything the run orchestrator consumes but
    does not own: group/rule/account catalogs, member balances, currency
    translation, run persistence and audit notification.

Architecture position:
    Services -- pure typing; no implementations here.  Reference
    implementations live in ``memory.py``, ``run_store.py`` and
    ``sql_store.py``.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Protocol

from consolidation_kernel.domain.accounts import AccountBalance, AccountCatalog
from consolidation_kernel.domain.group import (
    ConsolidationGroup,
    ConsolidationMember,
    EliminationRule,
)
from consolidation_kernel.domain.period import FiscalPeriodRef
from consolidation_kernel.domain.run import ConsolidationRun, RunHandle


class GroupCatalogProvider(Protocol):
    """Read access to groups, members, rules and charts of accounts.

    ``get_group`` raises GroupNotFoundError for unknown ids.
    """

    def get_group(self, group_id: str) -> ConsolidationGroup: ...

    def get_members(self, group_id: str) -> list[ConsolidationMember]: ...

    def get_active_rules(self, group_id: str) -> list[EliminationRule]: ...

    def get_account_catalog(self, company_id: str) -> AccountCatalog: ...


class BalanceProvider(Protocol):
    def get_member_trial_balance(
        self, company_id: str, period: FiscalPeriodRef,
    ) -> list[AccountBalance]: ...


class CurrencyTranslationService(Protocol):
    """Converts an amount; raises CurrencyTranslationError when it cannot."""

    def translate(
        self,
        amount: Decimal,
        from_currency: str,
        to_currency: str,
        as_of_date: date,
    ) -> Decimal: ...


class RunStore(Protocol):
    """
    Persistence for consolidation runs.

    Contract:
        ``try_begin_run`` atomically checks that no Pending/InProgress run
        exists for the run's (group, period) and, unless the run's options
        force regeneration, that no Completed run exists either, then records
        ``run``.  It raises RunInProgressError or RunAlreadyCompletedError
        otherwise.  ``save`` overwrites the stored run and raises
        InvalidRunStateError once the stored run is terminal; ``load``
        raises RunNotFoundError.
    """

    def try_begin_run(self, run: ConsolidationRun) -> RunHandle: ...

    def save(self, run: ConsolidationRun) -> None: ...

    def load(self, run_id: str) -> ConsolidationRun: ...

    def latest_completed(
        self, group_id: str, period: FiscalPeriodRef,
    ) -> ConsolidationRun | None: ...


class AuditSink(Protocol):
    """Notified once per Completed or Failed run. Failures never fail the run."""

    def notify(self, run: ConsolidationRun) -> None: ...
