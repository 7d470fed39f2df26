"""
Tests for pre-run validation.

Errors block the run; warnings are reported and only block when
``continue_on_warnings`` is disabled (enforced by the orchestrator).
"""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from consolidation_engines.validation import ConsolidationValidator, raise_for_errors
from consolidation_kernel.domain.accounts import AccountCatalog
from consolidation_kernel.domain.group import ConsolidationMethod, VIEDetermination
from consolidation_kernel.domain.run import ValidationResult
from consolidation_kernel.domain.selectors import ById
from consolidation_kernel.domain.snapshot import RunSnapshot
from consolidation_kernel.domain.values import Money
from consolidation_kernel.exceptions import ConfigurationError
from tests.support import (
    CHART,
    EQUITY_ACCOUNTS,
    PARENT_ID,
    SUB_A,
    SUB_B,
    bal,
    group,
    member,
    parent_balances,
    receivable_payable_rule,
    sub_a_balances,
    sub_b_balances,
)

AS_OF = date(2025, 3, 31)
TAKEN_AT = datetime(2025, 4, 1, tzinfo=timezone.utc)


def _snapshot(members, *, balances=None, rules=(), equity_method_accounts=None, catalog=None):
    members = tuple(members)
    grp = group(
        [m for m in members if m.company_id != PARENT_ID],
        equity_method_accounts=equity_method_accounts,
    )
    if balances is None:
        balances = {
            PARENT_ID: tuple(parent_balances()),
            SUB_A: tuple(sub_a_balances()),
            SUB_B: tuple(sub_b_balances()),
        }
    return RunSnapshot(
        group=grp,
        members=members,
        rules=tuple(rules),
        catalog=catalog if catalog is not None else AccountCatalog(CHART),
        balances=balances,
        taken_at=TAKEN_AT,
    )


def _standard(*extra, **kwargs):
    return _snapshot(
        [member(PARENT_ID), member(SUB_A, "80", nci="20"), member(SUB_B), *extra],
        **kwargs,
    )


def _codes(result: ValidationResult) -> set[str]:
    return {i.code for i in result.issues}


@pytest.fixture
def validator() -> ConsolidationValidator:
    return ConsolidationValidator()


class TestValidScenario:

    def test_standard_scenario_is_clean(self, validator):
        result = validator.validate(
            snapshot=_standard(rules=[receivable_payable_rule()]), as_of_date=AS_OF,
        )

        assert result.is_valid
        assert result.issues == ()
        assert result.summary() == "0 error(s), 0 warning(s)"


class TestOwnershipErrors:

    def test_ownership_mismatch_names_member(self, validator):
        result = validator.validate(
            snapshot=_standard(member("sub-c", "60", nci="30")), as_of_date=AS_OF,
        )

        assert not result.is_valid
        [error] = result.errors
        assert error.code == "OWNERSHIP_MISMATCH"
        assert error.entity_reference == "sub-c"

        with pytest.raises(ConfigurationError) as exc_info:
            raise_for_errors(result)
        assert "sub-c" in exc_info.value.entity_references
        assert "sub-c" in str(exc_info.value)

    def test_percentage_out_of_range(self, validator):
        result = validator.validate(
            snapshot=_standard(member("sub-c", "120")), as_of_date=AS_OF,
        )

        assert "INVALID_PERCENTAGE" in _codes(result)

    def test_parent_must_be_wholly_owned(self, validator):
        snapshot = _snapshot([member(PARENT_ID, "90", nci="10"), member(SUB_B)])
        result = validator.validate(snapshot=snapshot, as_of_date=AS_OF)

        assert "PARENT_MEMBER_INVALID" in {e.code for e in result.errors}


class TestMemberChecks:

    def test_vie_without_determination_is_error(self, validator):
        vie = member("vie", "10", method=ConsolidationMethod.VARIABLE_INTEREST_ENTITY)
        result = validator.validate(snapshot=_standard(vie), as_of_date=AS_OF)

        assert "VIE_DETERMINATION_MISSING" in {e.code for e in result.errors}

    def test_vie_not_primary_beneficiary_is_warning(self, validator):
        vie = member(
            "vie", "10", method=ConsolidationMethod.VARIABLE_INTEREST_ENTITY,
            vie_determination=VIEDetermination(is_primary_beneficiary=False),
        )
        result = validator.validate(snapshot=_standard(vie), as_of_date=AS_OF)

        assert result.is_valid
        assert "VIE_NOT_PRIMARY_BENEFICIARY" in {w.code for w in result.warnings}

    def test_method_inconsistent_with_ownership(self, validator):
        odd = member("sub-c", "30", nci="70")
        result = validator.validate(
            snapshot=_standard(odd, balances={}), as_of_date=AS_OF,
        )

        assert "METHOD_OWNERSHIP_INCONSISTENT" in {w.code for w in result.warnings}

    def test_acquired_after_period(self, validator):
        late = member("sub-c", "100", acquisition_date=date(2025, 6, 1))
        result = validator.validate(snapshot=_standard(late), as_of_date=AS_OF)

        assert "MEMBER_ACQUIRED_AFTER_PERIOD" in {w.code for w in result.warnings}

    def test_goodwill_warnings(self, validator):
        m = member("sub-c", "100", goodwill=Money.of("-50", "EUR"))
        result = validator.validate(snapshot=_standard(m), as_of_date=AS_OF)

        codes = {w.code for w in result.warnings}
        assert {"NEGATIVE_GOODWILL", "GOODWILL_CURRENCY_MISMATCH"} <= codes

    def test_equity_method_without_accounts(self, validator):
        assoc = member("assoc", "30", method=ConsolidationMethod.EQUITY_METHOD)
        result = validator.validate(snapshot=_standard(assoc), as_of_date=AS_OF)

        assert "EQUITY_METHOD_ACCOUNTS_MISSING" in {w.code for w in result.warnings}

    def test_equity_method_with_accounts(self, validator):
        assoc = member("assoc", "30", method=ConsolidationMethod.EQUITY_METHOD)
        result = validator.validate(
            snapshot=_standard(assoc, equity_method_accounts=EQUITY_ACCOUNTS),
            as_of_date=AS_OF,
        )

        assert result.issues == ()


class TestBalanceChecks:

    def test_unknown_account_in_member_balances(self, validator):
        balances = {
            PARENT_ID: tuple(parent_balances()),
            SUB_B: (bal(SUB_B, "9999", "10"), bal(SUB_B, "3000", "10")),
        }
        snapshot = _snapshot([member(PARENT_ID), member(SUB_B)], balances=balances)
        result = validator.validate(snapshot=snapshot, as_of_date=AS_OF)

        [error] = [e for e in result.errors if e.code == "MEMBER_ACCOUNT_UNKNOWN"]
        assert error.entity_reference == SUB_B

    def test_unbalanced_member_trial_balance(self, validator):
        balances = {
            PARENT_ID: tuple(parent_balances()),
            SUB_B: (bal(SUB_B, "1000", "100"), bal(SUB_B, "3000", "90")),
        }
        snapshot = _snapshot([member(PARENT_ID), member(SUB_B)], balances=balances)
        result = validator.validate(snapshot=snapshot, as_of_date=AS_OF)

        assert "MEMBER_TRIAL_BALANCE_NOT_BALANCED" in {e.code for e in result.errors}

    def test_excluded_members_not_checked(self, validator):
        cost = member("cost-co", "5", method=ConsolidationMethod.COST_METHOD)
        balances = {
            PARENT_ID: tuple(parent_balances()),
            "cost-co": (bal("cost-co", "1000", "100"),),
        }
        snapshot = _snapshot([member(PARENT_ID), cost], balances=balances)
        result = validator.validate(snapshot=snapshot, as_of_date=AS_OF)

        assert result.is_valid


class TestRuleChecks:

    def test_rule_with_unknown_posting_account(self, validator):
        rule = receivable_payable_rule(debit_account_id="acc-9999")
        result = validator.validate(snapshot=_standard(rules=[rule]), as_of_date=AS_OF)

        assert result.is_valid
        [warning] = result.warnings
        assert warning.code == "RULE_ACCOUNT_UNKNOWN"
        assert warning.entity_reference == rule.id

    def test_rule_with_unresolvable_selector(self, validator):
        rule = receivable_payable_rule(target_accounts=(ById("acc-gone"),))
        result = validator.validate(snapshot=_standard(rules=[rule]), as_of_date=AS_OF)

        assert "RULE_SELECTOR_UNRESOLVED" in {w.code for w in result.warnings}

    def test_rule_without_triggers(self, validator):
        rule = receivable_payable_rule(trigger_conditions=())
        result = validator.validate(snapshot=_standard(rules=[rule]), as_of_date=AS_OF)

        assert {w.code for w in result.warnings} == {"RULE_WITHOUT_TRIGGERS"}


class TestGroupChecks:

    def test_parent_only_group_warns(self, validator):
        snapshot = _snapshot([member(PARENT_ID)], balances={PARENT_ID: tuple(parent_balances())})
        result = validator.validate(snapshot=snapshot, as_of_date=AS_OF)

        assert result.is_valid
        assert {w.code for w in result.warnings} == {"GROUP_HAS_NO_MEMBERS"}

    def test_raise_for_errors_passes_valid_result(self):
        raise_for_errors(ValidationResult())

    def test_raise_for_errors_collects_all_entities(self, validator):
        result = validator.validate(
            snapshot=_standard(member("sub-c", "60", nci="30"), member("sub-d", "150")),
            as_of_date=AS_OF,
        )

        with pytest.raises(ConfigurationError) as exc_info:
            raise_for_errors(result)

        assert exc_info.value.entity_references == ("sub-c", "sub-d")


class TestDeterminism:

    def test_same_snapshot_same_result(self, validator):
        snapshot = _standard(member("sub-c", "60", nci="30"), rules=[receivable_payable_rule()])

        first = validator.validate(snapshot=snapshot, as_of_date=AS_OF)
        second = validator.validate(snapshot=snapshot, as_of_date=AS_OF)

        assert first == second

    def test_decimal_tolerance_configurable(self):
        strict = ConsolidationValidator(ownership_tolerance=Decimal("0"))
        result = strict.validate(
            snapshot=_standard(member("sub-c", "80", nci="19.995")), as_of_date=AS_OF,
        )

        assert "OWNERSHIP_MISMATCH" in {e.code for e in result.errors}
