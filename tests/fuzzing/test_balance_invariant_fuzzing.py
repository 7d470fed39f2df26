"""
Property-based tests for the consolidated trial balance.

Hypothesis generates groups of balanced member trial balances with random
ownership splits and intercompany positions.  Whatever the inputs, a
completed run must hold:

- total debits equal total credits
- every line satisfies consolidated = aggregated - elimination - nci
- intercompany receivable and payable are fully eliminated
"""

from dataclasses import dataclass
from decimal import Decimal

from hypothesis import given, settings
from hypothesis import strategies as st
from hypothesis.strategies import composite

from consolidation_kernel.domain.run import RunStatus
from tests.support import (
    GROUP_ID,
    PARENT_ID,
    PERIOD,
    Harness,
    bal,
    group,
    member,
    receivable_payable_rule,
)

amounts = st.decimals(
    min_value=Decimal("0"),
    max_value=Decimal("1000000"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)


@dataclass(frozen=True)
class MemberSpec:
    company_id: str
    ownership: int
    capital: Decimal
    revenue: Decimal
    expense: Decimal


@composite
def member_specs(draw, index: int) -> MemberSpec:
    revenue = draw(amounts)
    return MemberSpec(
        company_id=f"sub-{index}",
        ownership=draw(st.integers(min_value=51, max_value=100)),
        capital=draw(amounts),
        revenue=revenue,
        expense=draw(st.decimals(
            min_value=Decimal("0"), max_value=revenue, places=2,
            allow_nan=False, allow_infinity=False,
        )),
    )


@composite
def scenarios(draw):
    count = draw(st.integers(min_value=2, max_value=5))
    specs = [draw(member_specs(i)) for i in range(count)]
    intercompany = draw(amounts)
    return specs, intercompany


def _member_balances(spec: MemberSpec, borrowed: Decimal = Decimal("0")) -> list:
    cash = spec.capital + spec.revenue - spec.expense + borrowed
    return [
        bal(spec.company_id, "1000", cash),
        bal(spec.company_id, "3000", spec.capital),
        bal(spec.company_id, "4000", spec.revenue),
        bal(spec.company_id, "5000", spec.expense),
    ]


def _run(specs, intercompany):
    harness = Harness()
    balances = {
        PARENT_ID: [bal(PARENT_ID, "1000", "1000"), bal(PARENT_ID, "3000", "1000")],
    }
    lender, borrower = specs[0].company_id, specs[1].company_id
    for spec in specs:
        borrowed = intercompany if spec.company_id == borrower else Decimal("0")
        balances[spec.company_id] = _member_balances(spec, borrowed)

    # The first member lends to the second; both stay balanced locally.
    balances[lender] += [
        bal(lender, "1100", intercompany, partner=borrower),
        bal(lender, "3100", intercompany),
    ]
    balances[borrower] += [
        bal(borrower, "2100", intercompany, partner=lender),
    ]

    members = [
        member(s.company_id, str(s.ownership), nci=str(100 - s.ownership))
        for s in specs
    ]
    harness.install(group(members), balances, [receivable_payable_rule()])
    return harness.orchestrator().start_run(GROUP_ID, PERIOD)


class TestConsolidatedBalanceInvariant:

    @given(scenarios())
    @settings(max_examples=40, deadline=None)
    def test_random_groups_stay_balanced(self, scenario):
        specs, intercompany = scenario
        run = _run(specs, intercompany)

        assert run.status is RunStatus.COMPLETED, run.error_message
        tb = run.trial_balance
        assert tb.totals.total_debits == tb.totals.total_credits

    @given(scenarios())
    @settings(max_examples=40, deadline=None)
    def test_line_identity_holds(self, scenario):
        specs, intercompany = scenario
        tb = _run(specs, intercompany).trial_balance

        for line in tb.lines:
            nci = line.nci_amount or Decimal("0")
            assert line.consolidated_balance == (
                line.aggregated_balance - line.elimination_amount - nci
            )

    @given(scenarios())
    @settings(max_examples=40, deadline=None)
    def test_intercompany_fully_eliminated(self, scenario):
        specs, intercompany = scenario
        tb = _run(specs, intercompany).trial_balance

        for number in ("1100", "2100"):
            line = tb.line(number)
            if line is not None:
                assert line.consolidated_balance == Decimal("0")
