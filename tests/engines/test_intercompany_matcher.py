"""Tests for intercompany balance pairing."""

from decimal import Decimal

import pytest

from consolidation_engines.intercompany import IntercompanyMatcher, PairKind
from consolidation_kernel.domain.accounts import AccountCatalog
from tests.support import CHART, SUB_A, SUB_B, acc, bal

CONSOLIDATED = frozenset({"parent", SUB_A, SUB_B})


@pytest.fixture
def catalog() -> AccountCatalog:
    return AccountCatalog(CHART)


@pytest.fixture
def matcher() -> IntercompanyMatcher:
    return IntercompanyMatcher()


class TestPairing:

    def test_receivable_payable_pair(self, matcher, catalog):
        result = matcher.match(
            balances=[
                bal(SUB_A, "1100", "10000", partner=SUB_B),
                bal(SUB_B, "2100", "10000", partner=SUB_A),
            ],
            catalog=catalog,
            consolidated_company_ids=CONSOLIDATED,
        )

        assert len(result.pairs) == 1
        pair = result.pairs[0]
        assert pair.kind is PairKind.RECEIVABLE_PAYABLE
        assert (pair.company_id, pair.partner_id) == (SUB_A, SUB_B)
        assert pair.matched_amount == Decimal("10000")
        assert pair.difference == Decimal("0")
        assert result.matched_by_account == {
            acc("1100"): Decimal("10000"),
            acc("2100"): Decimal("10000"),
        }
        assert result.unmatched == ()

    def test_revenue_expense_pair(self, matcher, catalog):
        result = matcher.match(
            balances=[
                bal(SUB_A, "4100", "3000", partner=SUB_B),
                bal(SUB_B, "5100", "3000", partner=SUB_A),
            ],
            catalog=catalog,
            consolidated_company_ids=CONSOLIDATED,
        )

        assert result.pairs[0].kind is PairKind.REVENUE_EXPENSE
        assert result.matched_value == Decimal("3000")

    def test_mismatched_amounts_match_smaller_side(self, matcher, catalog, captured_logs):
        result = matcher.match(
            balances=[
                bal(SUB_A, "1100", "10000", partner=SUB_B),
                bal(SUB_B, "2100", "9000", partner=SUB_A),
            ],
            catalog=catalog,
            consolidated_company_ids=CONSOLIDATED,
        )

        assert result.pairs[0].matched_amount == Decimal("9000")
        assert result.pairs[0].difference == Decimal("1000")
        assert result.matched_by_account[acc("1100")] == Decimal("9000")
        logs = captured_logs()
        assert any(r["message"] == "intercompany_pair_difference" for r in logs)


class TestUnmatched:

    def test_untagged_balances_ignored(self, matcher, catalog):
        result = matcher.match(
            balances=[bal(SUB_A, "1000", "500")],
            catalog=catalog,
            consolidated_company_ids=CONSOLIDATED,
        )

        assert result.tagged_balance_count == 0
        assert result.pairs == ()
        assert result.unmatched == ()

    def test_partner_outside_group(self, matcher, catalog):
        outside = bal(SUB_A, "1100", "700", partner="stranger")
        result = matcher.match(
            balances=[outside],
            catalog=catalog,
            consolidated_company_ids=CONSOLIDATED,
        )

        assert result.unmatched == (outside,)
        assert result.unmatched_value == Decimal("700")

    def test_one_sided_balance(self, matcher, catalog):
        lonely = bal(SUB_A, "1100", "700", partner=SUB_B)
        result = matcher.match(
            balances=[lonely],
            catalog=catalog,
            consolidated_company_ids=CONSOLIDATED,
        )

        assert result.pairs == ()
        assert result.unmatched == (lonely,)
        assert "1 unmatched" in result.summary()

    def test_equity_balances_never_pair(self, matcher, catalog):
        result = matcher.match(
            balances=[
                bal(SUB_A, "3000", "100", partner=SUB_B),
                bal(SUB_B, "3000", "100", partner=SUB_A),
            ],
            catalog=catalog,
            consolidated_company_ids=CONSOLIDATED,
        )

        assert result.pairs == ()
        assert len(result.unmatched) == 2
        assert result.tagged_account_ids == frozenset()
        assert result.matched_balances() == {}


class TestMatchedBalances:

    def test_unmatched_tagged_account_reported_as_zero(self, matcher, catalog):
        result = matcher.match(
            balances=[
                bal(SUB_A, "1100", "10000", partner=SUB_B),
                bal(SUB_B, "2100", "10000", partner=SUB_A),
                bal("parent", "4100", "5000", partner=SUB_B),
            ],
            catalog=catalog,
            consolidated_company_ids=CONSOLIDATED,
        )

        assert result.matched_balances() == {
            acc("1100"): Decimal("10000"),
            acc("2100"): Decimal("10000"),
            acc("4100"): Decimal("0"),
        }

    def test_untagged_accounts_absent(self, matcher, catalog):
        result = matcher.match(
            balances=[
                bal(SUB_A, "1100", "400", partner=SUB_B),
                bal(SUB_B, "2100", "400", partner=SUB_A),
                bal(SUB_A, "4100", "3000"),
            ],
            catalog=catalog,
            consolidated_company_ids=CONSOLIDATED,
        )

        assert acc("4100") not in result.matched_balances()
        assert result.tagged_account_ids == frozenset({acc("1100"), acc("2100")})
