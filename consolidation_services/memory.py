"""
consolidation_services.memory -- In-memory reference collaborators.

Responsibility:
    Dict-backed implementations of GroupCatalogProvider, BalanceProvider,
    CurrencyTranslationService and AuditSink.  Used by tests and by callers
    that assemble consolidation inputs in process.

Architecture position:
    Services -- adapters.  Thread-safe for concurrent reads; writers take a
    lock so configuration edits during a run never tear a read.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from collections.abc import Iterable
from datetime import date
from decimal import Decimal

from consolidation_kernel.domain.accounts import AccountBalance, AccountCatalog, AccountInfo
from consolidation_kernel.domain.group import (
    ConsolidationGroup,
    ConsolidationMember,
    EliminationRule,
)
from consolidation_kernel.domain.period import FiscalPeriodRef
from consolidation_kernel.domain.run import ConsolidationRun
from consolidation_kernel.exceptions import CurrencyTranslationError, GroupNotFoundError
from consolidation_kernel.logging_config import get_logger

logger = get_logger("services.memory")


class InMemoryGroupCatalog:
    """GroupCatalogProvider backed by dicts."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._groups: dict[str, ConsolidationGroup] = {}
        self._rules: dict[str, dict[str, EliminationRule]] = defaultdict(dict)
        self._accounts: dict[str, tuple[AccountInfo, ...]] = {}

    def add_group(self, group: ConsolidationGroup) -> None:
        with self._lock:
            self._groups[group.id] = group

    def add_rule(self, rule: EliminationRule) -> None:
        with self._lock:
            self._rules[rule.group_id][rule.id] = rule

    def set_accounts(self, company_id: str, accounts: Iterable[AccountInfo]) -> None:
        with self._lock:
            self._accounts[company_id] = tuple(accounts)

    def get_group(self, group_id: str) -> ConsolidationGroup:
        with self._lock:
            group = self._groups.get(group_id)
        if group is None:
            raise GroupNotFoundError(group_id)
        return group

    def get_members(self, group_id: str) -> list[ConsolidationMember]:
        return list(self.get_group(group_id).members)

    def get_active_rules(self, group_id: str) -> list[EliminationRule]:
        with self._lock:
            rules = list(self._rules.get(group_id, {}).values())
        return [r for r in rules if r.is_active]

    def get_account_catalog(self, company_id: str) -> AccountCatalog:
        with self._lock:
            return AccountCatalog(self._accounts.get(company_id, ()))


class InMemoryBalances:
    """BalanceProvider backed by a dict keyed by (company, period)."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._balances: dict[tuple[str, FiscalPeriodRef], tuple[AccountBalance, ...]] = {}

    def set_trial_balance(
        self,
        company_id: str,
        period: FiscalPeriodRef,
        balances: Iterable[AccountBalance],
    ) -> None:
        with self._lock:
            self._balances[(company_id, period)] = tuple(balances)

    def get_member_trial_balance(
        self, company_id: str, period: FiscalPeriodRef,
    ) -> list[AccountBalance]:
        with self._lock:
            return list(self._balances.get((company_id, period), ()))


class FixedRateTranslationService:
    """
    CurrencyTranslationService with a fixed rate table.

    Rates are expressed as units of ``to_currency`` per unit of
    ``from_currency``.  The inverse of a configured pair is derived.
    Amounts are returned unrounded.
    """

    def __init__(self, rates: dict[tuple[str, str], Decimal] | None = None):
        self._rates: dict[tuple[str, str], Decimal] = dict(rates or {})

    def set_rate(self, from_currency: str, to_currency: str, rate: Decimal) -> None:
        if rate <= 0:
            raise ValueError(f"Exchange rate must be positive, got {rate}")
        self._rates[(from_currency, to_currency)] = rate

    def translate(
        self,
        amount: Decimal,
        from_currency: str,
        to_currency: str,
        as_of_date: date,
    ) -> Decimal:
        if from_currency == to_currency:
            return amount
        rate = self._rates.get((from_currency, to_currency))
        if rate is not None:
            return amount * rate
        inverse = self._rates.get((to_currency, from_currency))
        if inverse is not None:
            return amount / inverse
        raise CurrencyTranslationError(
            from_currency, to_currency, f"no rate available as of {as_of_date}",
        )


class RecordingAuditSink:
    """AuditSink that keeps every notified run in memory."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.runs: list[ConsolidationRun] = []

    def notify(self, run: ConsolidationRun) -> None:
        with self._lock:
            self.runs.append(run)
        logger.info(
            "audit_notified",
            extra={"run_id": run.id, "status": run.status.value},
        )
