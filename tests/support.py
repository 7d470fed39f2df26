"""
Builders for consolidation test scenarios.

The standard scenario used across the suite:

    parent   100%  FullConsolidation  (implicit member)
    sub-a     80%  FullConsolidation  NCI 20%
    sub-b    100%  FullConsolidation

sub-a carries a 10,000 USD receivable from sub-b; sub-b carries the matching
payable.  One ReceivablePayable rule eliminates the pair.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any

from consolidation_config import ConsolidationConfig
from consolidation_kernel.domain.accounts import AccountBalance, AccountInfo, AccountType
from consolidation_kernel.domain.clock import DeterministicClock
from consolidation_kernel.domain.group import (
    ConsolidationGroup,
    ConsolidationMember,
    ConsolidationMethod,
    EliminationRule,
    EliminationType,
    EquityMethodAccounts,
    TriggerCondition,
)
from consolidation_kernel.domain.period import FiscalPeriodRef
from consolidation_kernel.domain.selectors import ById
from consolidation_services.memory import (
    FixedRateTranslationService,
    InMemoryBalances,
    InMemoryGroupCatalog,
    RecordingAuditSink,
)
from consolidation_services.run_orchestrator import ConsolidationRunOrchestrator
from consolidation_services.run_store import InMemoryRunStore

GROUP_ID = "grp-001"
PARENT_ID = "parent"
SUB_A = "sub-a"
SUB_B = "sub-b"
PERIOD = FiscalPeriodRef(2025, 3)


def acc(number: str) -> str:
    """Account id for an account number in the standard chart."""
    return f"acc-{number}"


CHART: tuple[AccountInfo, ...] = tuple(
    AccountInfo(acc(number), number, name, account_type, category)
    for number, name, account_type, category in (
        ("1000", "Cash", AccountType.ASSET, "Cash"),
        ("1100", "Intercompany Receivable", AccountType.ASSET, "IntercompanyReceivable"),
        ("1500", "Investment in Associates", AccountType.ASSET, "Investment"),
        ("2000", "Accounts Payable", AccountType.LIABILITY, "Payables"),
        ("2100", "Intercompany Payable", AccountType.LIABILITY, "IntercompanyPayable"),
        ("3000", "Share Capital", AccountType.EQUITY, "Capital"),
        ("3100", "Retained Earnings", AccountType.EQUITY, "RetainedEarnings"),
        ("4000", "Sales Revenue", AccountType.REVENUE, "Revenue"),
        ("4100", "Intercompany Revenue", AccountType.REVENUE, "IntercompanyRevenue"),
        ("4500", "Equity in Earnings of Associates", AccountType.REVENUE, "EquityIncome"),
        ("5000", "Operating Expense", AccountType.EXPENSE, "Expense"),
        ("5100", "Intercompany Expense", AccountType.EXPENSE, "IntercompanyExpense"),
    )
)

EQUITY_ACCOUNTS = EquityMethodAccounts(
    investment_account_id=acc("1500"),
    equity_in_earnings_account_id=acc("4500"),
)


def bal(
    company_id: str,
    number: str,
    amount: str | Decimal,
    currency: str = "USD",
    partner: str | None = None,
) -> AccountBalance:
    return AccountBalance(
        company_id=company_id,
        account_id=acc(number),
        account_number=number,
        amount=Decimal(amount),
        currency=currency,
        intercompany_partner_id=partner,
    )


def member(
    company_id: str,
    ownership: str = "100",
    method: ConsolidationMethod = ConsolidationMethod.FULL_CONSOLIDATION,
    nci: str = "0",
    acquisition_date: date = date(2020, 1, 1),
    **kwargs: Any,
) -> ConsolidationMember:
    return ConsolidationMember(
        company_id=company_id,
        ownership_percentage=Decimal(ownership),
        consolidation_method=method,
        acquisition_date=acquisition_date,
        non_controlling_interest_percentage=Decimal(nci),
        **kwargs,
    )


def group(
    members: tuple[ConsolidationMember, ...] | list[ConsolidationMember] = (),
    *,
    group_id: str = GROUP_ID,
    currency: str = "USD",
    is_active: bool = True,
    equity_method_accounts: EquityMethodAccounts | None = None,
) -> ConsolidationGroup:
    return ConsolidationGroup(
        id=group_id,
        organization_id="org-001",
        name="Test Group",
        reporting_currency=currency,
        consolidation_method=ConsolidationMethod.FULL_CONSOLIDATION,
        parent_company_id=PARENT_ID,
        is_active=is_active,
        members=tuple(members),
        equity_method_accounts=equity_method_accounts,
    )


def receivable_payable_rule(
    rule_id: str = "rule-rp",
    *,
    group_id: str = GROUP_ID,
    priority: int = 10,
    **kwargs: Any,
) -> EliminationRule:
    defaults: dict[str, Any] = dict(
        id=rule_id,
        group_id=group_id,
        name="Eliminate intercompany receivable/payable",
        elimination_type=EliminationType.INTERCOMPANY_RECEIVABLE_PAYABLE,
        debit_account_id=acc("2100"),
        credit_account_id=acc("1100"),
        trigger_conditions=(
            TriggerCondition(
                description="Intercompany receivable outstanding",
                source_accounts=(ById(acc("1100")),),
                minimum_amount=Decimal("0.01"),
            ),
        ),
        source_accounts=(ById(acc("1100")),),
        target_accounts=(ById(acc("2100")),),
        priority=priority,
    )
    defaults.update(kwargs)
    return EliminationRule(**defaults)


def revenue_expense_rule(rule_id: str = "rule-re", **kwargs: Any) -> EliminationRule:
    defaults: dict[str, Any] = dict(
        id=rule_id,
        group_id=GROUP_ID,
        name="Eliminate intercompany revenue/expense",
        elimination_type=EliminationType.INTERCOMPANY_REVENUE_EXPENSE,
        debit_account_id=acc("4100"),
        credit_account_id=acc("5100"),
        trigger_conditions=(
            TriggerCondition(
                description="Intercompany sales recorded",
                source_accounts=(ById(acc("4100")),),
                minimum_amount=Decimal("0.01"),
            ),
        ),
        source_accounts=(ById(acc("4100")),),
        target_accounts=(ById(acc("5100")),),
        priority=20,
    )
    defaults.update(kwargs)
    return EliminationRule(**defaults)


def parent_balances(currency: str = "USD") -> list[AccountBalance]:
    return [
        bal(PARENT_ID, "1000", "50000", currency),
        bal(PARENT_ID, "3000", "50000", currency),
    ]


def sub_a_balances(currency: str = "USD") -> list[AccountBalance]:
    return [
        bal(SUB_A, "1000", "30000", currency),
        bal(SUB_A, "1100", "10000", currency, partner=SUB_B),
        bal(SUB_A, "3000", "20000", currency),
        bal(SUB_A, "4000", "40000", currency),
        bal(SUB_A, "5000", "20000", currency),
    ]


def sub_b_balances(currency: str = "USD", scale: Decimal = Decimal("1")) -> list[AccountBalance]:
    return [
        bal(SUB_B, "1000", Decimal("25000") * scale, currency),
        bal(SUB_B, "2100", Decimal("10000") * scale, currency, partner=SUB_A),
        bal(SUB_B, "3000", Decimal("5000") * scale, currency),
        bal(SUB_B, "4000", Decimal("30000") * scale, currency),
        bal(SUB_B, "5000", Decimal("20000") * scale, currency),
    ]


def standard_members() -> list[ConsolidationMember]:
    return [
        member(SUB_A, "80", nci="20"),
        member(SUB_B, "100"),
    ]


@dataclass
class Harness:
    """In-memory collaborators plus an orchestrator factory."""

    clock: DeterministicClock = field(default_factory=DeterministicClock)
    catalog: InMemoryGroupCatalog = field(default_factory=InMemoryGroupCatalog)
    balances: InMemoryBalances = field(default_factory=InMemoryBalances)
    translator: FixedRateTranslationService = field(default_factory=FixedRateTranslationService)
    store: InMemoryRunStore = field(default_factory=InMemoryRunStore)
    audit: RecordingAuditSink = field(default_factory=RecordingAuditSink)

    def install(
        self,
        consolidation_group: ConsolidationGroup,
        balances: dict[str, list[AccountBalance]],
        rules: tuple[EliminationRule, ...] | list[EliminationRule] = (),
        period: FiscalPeriodRef = PERIOD,
    ) -> None:
        self.catalog.add_group(consolidation_group)
        company_ids = {consolidation_group.parent_company_id}
        company_ids.update(m.company_id for m in consolidation_group.members)
        for company_id in company_ids:
            self.catalog.set_accounts(company_id, CHART)
        for company_id, company_balances in balances.items():
            self.balances.set_trial_balance(company_id, period, company_balances)
        for rule in rules:
            self.catalog.add_rule(rule)

    def install_standard(self) -> None:
        self.install(
            group(standard_members()),
            {
                PARENT_ID: parent_balances(),
                SUB_A: sub_a_balances(),
                SUB_B: sub_b_balances(),
            },
            rules=[receivable_payable_rule()],
        )

    def orchestrator(self, **overrides: Any) -> ConsolidationRunOrchestrator:
        kwargs: dict[str, Any] = dict(
            catalog=self.catalog,
            balances=self.balances,
            translator=self.translator,
            store=self.store,
            audit=self.audit,
            clock=self.clock,
            config=ConsolidationConfig(),
        )
        kwargs.update(overrides)
        return ConsolidationRunOrchestrator(**kwargs)
