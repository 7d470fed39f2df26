"""
consolidation_engines.aggregation -- Trial balance aggregator.

Responsibility:
    Turn member trial balances into one ConsolidatedTrialBalance:
    translate each member into the reporting currency, sum per account,
    apply elimination candidates, reclassify non-controlling interest and
    roll up totals under the balance invariant.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Currency translation is
    delegated to a caller-supplied function.  Each stage is exposed on its
    own so the run orchestrator can record it as a separate pipeline step
    and fan ``sum_member`` out across threads before a single ``merge``.

Invariants enforced:
    - Exact Decimal arithmetic until the final line; each line's
      aggregated, elimination and NCI amounts are rounded exactly once.
    - consolidated_balance = aggregated_balance - elimination_amount - nci_amount
      on every line.
    - |total debits - total credits| <= one minor unit of the reporting
      currency, otherwise TrialBalanceImbalanceError.  Never plugged.
    - The NCI reclassification is booked to a single equity line whose
      amount is the sum of the rounded line NCIs, so it balances exactly.

Failure modes:
    - UnknownAccountError when a member balance references an account
      missing from the run's catalog.
    - CurrencyTranslationError when an untranslated balance reaches summing.
    - TrialBalanceImbalanceError when the invariant is violated.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from types import MappingProxyType

from consolidation_engines.elimination import EliminationCandidate
from consolidation_engines.nci import (
    MemberTreatment,
    allocate_goodwill,
    compute_nci,
    equity_method_pickup,
    member_treatment,
    requires_line_nci,
)
from consolidation_engines.tracer import traced_engine
from consolidation_kernel.domain.accounts import (
    AccountBalance,
    AccountCatalog,
    AccountInfo,
    AccountType,
    NormalBalance,
)
from consolidation_kernel.domain.group import ConsolidationMember, EquityMethodAccounts
from consolidation_kernel.domain.period import FiscalPeriodRef
from consolidation_kernel.domain.run import (
    ConsolidatedTrialBalance,
    NCIAllocation,
    TrialBalanceLine,
    TrialBalanceTotals,
)
from consolidation_kernel.domain.currency import Currency
from consolidation_kernel.exceptions import (
    CurrencyTranslationError,
    TrialBalanceImbalanceError,
    UnknownAccountError,
)
from consolidation_kernel.logging_config import get_logger

logger = get_logger("engines.aggregation")

_ZERO = Decimal("0")

TranslateFn = Callable[[Decimal, str, str, date], Decimal]

# Account types whose lines are split between owners and NCI. Balance sheet
# assets and liabilities are consolidated at 100%.
NCI_LINE_TYPES: frozenset[AccountType] = frozenset({
    AccountType.EQUITY,
    AccountType.REVENUE,
    AccountType.EXPENSE,
})


@dataclass(frozen=True)
class MemberSum:
    """One member's balances summed per account id, in the reporting currency."""

    company_id: str
    by_account_id: Mapping[str, Decimal]


@dataclass(frozen=True)
class AggregatedBalance:
    account: AccountInfo
    total: Decimal
    contributions: tuple[tuple[str, Decimal], ...]

    @property
    def account_number(self) -> str:
        return self.account.account_number


@dataclass(frozen=True)
class AggregationResult:
    lines: Mapping[str, AggregatedBalance]
    by_account_id: Mapping[str, Decimal]
    member_count: int

    def details(self) -> str:
        return f"Aggregated {len(self.lines)} account(s) from {self.member_count} member(s)"


@dataclass(frozen=True)
class NCIResult:
    """Exact NCI per line (keyed by account number) and per member."""

    line_nci: Mapping[str, Decimal]
    member_nci: Mapping[str, Decimal]


# ---------------------------------------------------------------------------
# Translate
# ---------------------------------------------------------------------------


def translate_member(
    balances: Iterable[AccountBalance],
    reporting_currency: str,
    as_of_date: date,
    translate: TranslateFn,
) -> tuple[AccountBalance, ...]:
    """Convert a member's balances into the reporting currency."""
    result: list[AccountBalance] = []
    for balance in balances:
        if balance.currency == reporting_currency:
            result.append(balance)
            continue
        amount = translate(balance.amount, balance.currency, reporting_currency, as_of_date)
        if not isinstance(amount, Decimal):
            raise CurrencyTranslationError(
                balance.currency, reporting_currency,
                f"translation returned {type(amount).__name__}, expected Decimal",
            )
        result.append(balance.with_amount(amount, reporting_currency))
    return tuple(result)


# ---------------------------------------------------------------------------
# Aggregate
# ---------------------------------------------------------------------------


def sum_member(
    company_id: str,
    balances: Iterable[AccountBalance],
    reporting_currency: str,
) -> MemberSum:
    """Sum one member's translated balances per account id.

    Safe to run concurrently for different members: reads only its inputs.
    """
    totals: dict[str, Decimal] = defaultdict(lambda: _ZERO)
    for balance in balances:
        if balance.currency != reporting_currency:
            raise CurrencyTranslationError(
                balance.currency, reporting_currency,
                f"balance on account {balance.account_number} of {company_id} was not translated",
            )
        totals[balance.account_id] += balance.amount
    return MemberSum(company_id=company_id, by_account_id=MappingProxyType(dict(totals)))


def investee_net_income(balances: Iterable[AccountBalance], catalog: AccountCatalog) -> Decimal:
    """Revenue minus expense over natural balances."""
    net = _ZERO
    for balance in balances:
        account = catalog.get(balance.account_id)
        if account is None:
            raise UnknownAccountError(balance.account_id)
        if account.account_type is AccountType.REVENUE:
            net += balance.amount
        elif account.account_type is AccountType.EXPENSE:
            net -= balance.amount
    return net


def equity_pickup_sum(
    member: ConsolidationMember,
    net_income: Decimal,
    accounts: EquityMethodAccounts,
) -> MemberSum:
    """The single investment adjustment for an equity-method member.

    Debits the investment account and credits equity in earnings for the
    investor's share of net income (both natural balances move by the same
    amount, so the pair is balanced).
    """
    pickup = equity_method_pickup(member, net_income)
    return MemberSum(
        company_id=member.company_id,
        by_account_id=MappingProxyType({
            accounts.investment_account_id: pickup,
            accounts.equity_in_earnings_account_id: pickup,
        }),
    )


def merge(member_sums: Sequence[MemberSum], catalog: AccountCatalog) -> AggregationResult:
    """Single-threaded reduce of member sums into per-account-number lines."""
    by_number: dict[str, dict[str, Decimal]] = defaultdict(lambda: defaultdict(lambda: _ZERO))
    by_id: dict[str, Decimal] = defaultdict(lambda: _ZERO)
    accounts: dict[str, AccountInfo] = {}

    for member_sum in sorted(member_sums, key=lambda s: s.company_id):
        for account_id, amount in sorted(member_sum.by_account_id.items()):
            account = catalog.get(account_id)
            if account is None:
                raise UnknownAccountError(account_id)
            number = account.account_number
            accounts.setdefault(number, catalog.by_number(number) or account)
            by_number[number][member_sum.company_id] += amount
            by_id[account_id] += amount

    lines = {
        number: AggregatedBalance(
            account=accounts[number],
            total=sum(by_number[number].values(), _ZERO),
            contributions=tuple(sorted(by_number[number].items())),
        )
        for number in sorted(by_number)
    }
    return AggregationResult(
        lines=MappingProxyType(lines),
        by_account_id=MappingProxyType(dict(by_id)),
        member_count=len({s.company_id for s in member_sums}),
    )


# ---------------------------------------------------------------------------
# Eliminate
# ---------------------------------------------------------------------------


def _debit_effect(account: AccountInfo, amount: Decimal) -> Decimal:
    """Change in natural balance caused by debiting ``amount``."""
    return amount if account.normal_balance is NormalBalance.DEBIT else -amount


def elimination_amounts(
    candidates: Iterable[EliminationCandidate],
    catalog: AccountCatalog,
) -> dict[str, Decimal]:
    """Sum all candidates per account number.

    The returned value is the amount to subtract from the line's natural
    balance: a debit reduces a credit-normal account, a credit reduces a
    debit-normal account.
    """
    result: dict[str, Decimal] = defaultdict(lambda: _ZERO)
    for candidate in candidates:
        debit = catalog.get(candidate.debit_account_id)
        credit = catalog.get(candidate.credit_account_id)
        if debit is None:
            raise UnknownAccountError(candidate.debit_account_id)
        if credit is None:
            raise UnknownAccountError(candidate.credit_account_id)
        result[debit.account_number] -= _debit_effect(debit, candidate.amount)
        result[credit.account_number] += _debit_effect(credit, candidate.amount)
    return dict(result)


# ---------------------------------------------------------------------------
# NCI
# ---------------------------------------------------------------------------


def _nci_sign(account_type: AccountType) -> int:
    """Direction in which a line's NCI moves the NCI equity line."""
    return -1 if account_type is AccountType.EXPENSE else 1


@traced_engine("aggregation.nci", "1.0", fingerprint_fields=("eliminations",))
def allocate_nci(
    *,
    aggregation: AggregationResult,
    eliminations: Mapping[str, Decimal],
    members: Mapping[str, ConsolidationMember],
    exclude_account_numbers: frozenset[str] = frozenset(),
) -> NCIResult:
    """NCI per equity/revenue/expense line and per member.

    Each NCI-bearing member's share of a line is its contribution less a
    pro-rata part of the line's elimination.  Members without line NCI and
    synthetic contributions (equity-method pickups) carry none.
    """
    line_nci: dict[str, Decimal] = {}
    member_nci: dict[str, Decimal] = defaultdict(lambda: _ZERO)

    for number, line in aggregation.lines.items():
        if line.account.account_type not in NCI_LINE_TYPES or number in exclude_account_numbers:
            continue
        elimination = eliminations.get(number, _ZERO)
        total_nci = _ZERO
        for company_id, contribution in line.contributions:
            member = members.get(company_id)
            if member is None or not requires_line_nci(member):
                continue
            share = contribution
            if line.total != _ZERO and elimination != _ZERO:
                share -= elimination * contribution / line.total
            nci = compute_nci(member, share).nci_amount or _ZERO
            total_nci += nci
            member_nci[company_id] += nci * _nci_sign(line.account.account_type)
        line_nci[number] = total_nci

    return NCIResult(
        line_nci=MappingProxyType(line_nci),
        member_nci=MappingProxyType(dict(member_nci)),
    )


# ---------------------------------------------------------------------------
# GenerateTB
# ---------------------------------------------------------------------------


class TrialBalanceAggregator:
    """
    Builds the consolidated trial balance and enforces the balance invariant.

    Contract:
        Rounds each line once with ``rounding`` at the reporting currency's
        precision.  Fails with TrialBalanceImbalanceError rather than
        producing an unbalanced result.
    """

    def __init__(
        self,
        rounding: str = ROUND_HALF_UP,
        nci_account_number: str = "3900",
        nci_account_name: str = "Non-Controlling Interest",
        nci_account_category: str = "NonControllingInterest",
    ):
        self._rounding = rounding
        self._nci_number = nci_account_number
        self._nci_name = nci_account_name
        self._nci_category = nci_account_category

    @property
    def nci_account_number(self) -> str:
        return self._nci_number

    def _round(self, amount: Decimal, currency: Currency) -> Decimal:
        return currency.quantize(amount, self._rounding)

    @traced_engine("aggregation.trial_balance", "1.0", fingerprint_fields=("run_id", "currency"))
    def build(
        self,
        *,
        run_id: str,
        group_id: str,
        period: FiscalPeriodRef,
        as_of_date: date,
        currency: str,
        aggregation: AggregationResult,
        eliminations: Mapping[str, Decimal],
        candidates: Sequence[EliminationCandidate],
        catalog: AccountCatalog,
        nci: NCIResult | None,
        members: Mapping[str, ConsolidationMember],
        generated_at: datetime,
    ) -> ConsolidatedTrialBalance:
        cur = Currency(currency)
        numbers = sorted(set(aggregation.lines) | set(eliminations))
        lines: list[TrialBalanceLine] = []
        nci_reclass = _ZERO

        for number in numbers:
            if nci is not None and number == self._nci_number:
                continue
            agg = aggregation.lines.get(number)
            account = agg.account if agg else catalog.by_number(number)
            if account is None:
                raise UnknownAccountError(number)
            aggregated = self._round(agg.total if agg else _ZERO, cur)
            elimination = self._round(eliminations.get(number, _ZERO), cur)
            nci_amount: Decimal | None = None
            if nci is not None and number in nci.line_nci:
                nci_amount = self._round(nci.line_nci[number], cur)
                nci_reclass += nci_amount * _nci_sign(account.account_type)
            lines.append(self._line(account, aggregated, elimination, nci_amount))

        if nci is not None:
            lines.append(self._nci_line(aggregation, eliminations, catalog, cur, nci_reclass))
            lines.sort(key=lambda ln: ln.account_number)

        totals = self._totals(lines, candidates, cur, nci_reclass)
        tolerance = cur.minor_unit
        if abs(totals.total_debits - totals.total_credits) > tolerance:
            logger.error(
                "trial_balance_imbalance",
                extra={
                    "run_id": run_id,
                    "total_debits": totals.total_debits,
                    "total_credits": totals.total_credits,
                },
            )
            raise TrialBalanceImbalanceError(totals.total_debits, totals.total_credits, currency)

        return ConsolidatedTrialBalance(
            run_id=run_id,
            group_id=group_id,
            period=period,
            as_of_date=as_of_date,
            currency=currency,
            lines=tuple(lines),
            totals=totals,
            generated_at=generated_at,
            nci_allocations=self._allocations(nci, members, cur),
        )

    @staticmethod
    def _line(
        account: AccountInfo,
        aggregated: Decimal,
        elimination: Decimal,
        nci_amount: Decimal | None,
    ) -> TrialBalanceLine:
        return TrialBalanceLine(
            account_number=account.account_number,
            account_name=account.name,
            account_type=account.account_type,
            account_category=account.category,
            aggregated_balance=aggregated,
            elimination_amount=elimination,
            nci_amount=nci_amount,
            consolidated_balance=aggregated - elimination - (nci_amount or _ZERO),
        )

    def _nci_line(
        self,
        aggregation: AggregationResult,
        eliminations: Mapping[str, Decimal],
        catalog: AccountCatalog,
        cur: Currency,
        nci_reclass: Decimal,
    ) -> TrialBalanceLine:
        """Equity line receiving the NCI reclassification.

        Its ``nci_amount`` is the negated reclassified total, so the line
        identity consolidated = aggregated - elimination - nci still holds.
        """
        existing = aggregation.lines.get(self._nci_number)
        account = (
            existing.account if existing
            else catalog.by_number(self._nci_number)
            or AccountInfo(
                account_id=f"nci:{self._nci_number}",
                account_number=self._nci_number,
                name=self._nci_name,
                account_type=AccountType.EQUITY,
                category=self._nci_category,
            )
        )
        aggregated = self._round(existing.total if existing else _ZERO, cur)
        elimination = self._round(eliminations.get(self._nci_number, _ZERO), cur)
        return self._line(account, aggregated, elimination, -nci_reclass)

    def _totals(
        self,
        lines: Sequence[TrialBalanceLine],
        candidates: Sequence[EliminationCandidate],
        cur: Currency,
        nci_reclass: Decimal,
    ) -> TrialBalanceTotals:
        debits = sum(
            (ln.consolidated_balance for ln in lines if ln.normal_balance is NormalBalance.DEBIT),
            _ZERO,
        )
        credits = sum(
            (ln.consolidated_balance for ln in lines if ln.normal_balance is NormalBalance.CREDIT),
            _ZERO,
        )
        eliminated = self._round(sum((c.amount for c in candidates), _ZERO), cur)
        return TrialBalanceTotals(
            total_debits=debits,
            total_credits=credits,
            total_eliminations=eliminated,
            total_nci=nci_reclass,
        )

    def _allocations(
        self,
        nci: NCIResult | None,
        members: Mapping[str, ConsolidationMember],
        cur: Currency,
    ) -> tuple[NCIAllocation, ...]:
        allocations: list[NCIAllocation] = []
        for company_id in sorted(members):
            member = members[company_id]
            goodwill = allocate_goodwill(member)
            member_nci = nci.member_nci.get(company_id, _ZERO) if nci else _ZERO
            if not requires_line_nci(member) and goodwill is None:
                continue
            # Goodwill stays in its recorded currency and precision.
            gw_cur = member.goodwill.currency if goodwill else cur
            allocations.append(NCIAllocation(
                company_id=company_id,
                nci_percentage=member.non_controlling_interest_percentage,
                nci_amount=self._round(member_nci, cur),
                goodwill_parent_share=self._round(goodwill.parent_share, gw_cur) if goodwill else None,
                goodwill_nci_share=self._round(goodwill.nci_share, gw_cur) if goodwill else None,
            ))
        return tuple(allocations)


# ---------------------------------------------------------------------------
# One-shot composition
# ---------------------------------------------------------------------------


def aggregate(
    members: Sequence[ConsolidationMember],
    member_balances: Mapping[str, Sequence[AccountBalance]],
    candidates: Sequence[EliminationCandidate],
    catalog: AccountCatalog,
    *,
    run_id: str,
    group_id: str,
    period: FiscalPeriodRef,
    as_of_date: date,
    currency: str,
    generated_at: datetime,
    translate: TranslateFn | None = None,
    equity_method_accounts: EquityMethodAccounts | None = None,
    include_equity_method: bool = True,
    aggregator: TrialBalanceAggregator | None = None,
) -> ConsolidatedTrialBalance:
    """Translate, sum, eliminate, allocate NCI and build the trial balance in one call.

    The run orchestrator performs the same stages individually; this entry
    point serves callers that hold all inputs up front.
    """
    aggregator = aggregator or TrialBalanceAggregator()
    sums: list[MemberSum] = []
    in_scope: dict[str, ConsolidationMember] = {}
    for member in members:
        treatment = member_treatment(member, include_equity_method)
        if treatment is MemberTreatment.EXCLUDED:
            continue
        if treatment is MemberTreatment.EQUITY_PICKUP and equity_method_accounts is None:
            continue
        balances = member_balances.get(member.company_id, ())
        if translate is not None:
            balances = translate_member(balances, currency, as_of_date, translate)
        in_scope[member.company_id] = member
        if treatment is MemberTreatment.FULL:
            sums.append(sum_member(member.company_id, balances, currency))
        else:
            sums.append(equity_pickup_sum(
                member, investee_net_income(balances, catalog), equity_method_accounts,
            ))

    aggregation = merge(sums, catalog)
    eliminations = elimination_amounts(candidates, catalog)
    nci = None
    if any(requires_line_nci(m) for m in in_scope.values()):
        nci = allocate_nci(
            aggregation=aggregation,
            eliminations=eliminations,
            members=in_scope,
            exclude_account_numbers=frozenset({aggregator.nci_account_number}),
        )
    return aggregator.build(
        run_id=run_id,
        group_id=group_id,
        period=period,
        as_of_date=as_of_date,
        currency=currency,
        aggregation=aggregation,
        eliminations=eliminations,
        candidates=candidates,
        catalog=catalog,
        nci=nci,
        members=in_scope,
        generated_at=generated_at,
    )
