"""
consolidation_engines.validation -- Configuration and input validation.

Responsibility:
    Inspect a RunSnapshot before any figures are computed and report blocking
    errors and non-blocking warnings as a ValidationResult.  The run
    orchestrator decides, from the run options, whether to proceed.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Errors: duplicate members, percentages outside [0, 100],
      FullConsolidation members whose ownership and NCI do not sum to 100,
      VIE members with no determination, unknown accounts in member trial
      balances, member trial balances that do not balance, and a parent
      company listed as anything other than a 100% full member.
    - Warnings: everything that degrades the result without making it wrong
      (rules that will be skipped, excluded VIEs, method/ownership drift).
    - Every issue references the offending entity.
"""

from __future__ import annotations

from collections import Counter
from datetime import date
from decimal import Decimal

from consolidation_engines.nci import check_ownership, determine_method
from consolidation_engines.selector_resolver import resolve
from consolidation_engines.tracer import traced_engine
from consolidation_kernel.domain.accounts import NormalBalance
from consolidation_kernel.domain.currency import minor_unit
from consolidation_kernel.domain.group import ConsolidationMember, ConsolidationMethod
from consolidation_kernel.domain.run import (
    ValidationIssue,
    ValidationResult,
    ValidationSeverity,
)
from consolidation_kernel.domain.snapshot import RunSnapshot
from consolidation_kernel.exceptions import (
    ConfigurationError,
    InvalidPercentageError,
    OwnershipMismatchError,
    UnknownAccountError,
)
from consolidation_kernel.logging_config import get_logger

logger = get_logger("engines.validation")

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


class ConsolidationValidator:
    """
    Collects validation issues for one run snapshot.

    Contract:
        ``validate`` never raises for data problems; it reports them.
        ``raise_for_errors`` converts a failing result into a
        ConfigurationError naming every offending entity.
    """

    def __init__(
        self,
        ownership_tolerance: Decimal = Decimal("0.01"),
        control_above: Decimal = Decimal("50"),
        significant_influence_from: Decimal = Decimal("20"),
    ):
        self._tolerance = ownership_tolerance
        self._control_above = control_above
        self._influence_from = significant_influence_from

    @traced_engine("validation", "1.0", fingerprint_fields=("as_of_date",))
    def validate(
        self,
        *,
        snapshot: RunSnapshot,
        as_of_date: date,
        include_equity_method: bool = True,
    ) -> ValidationResult:
        issues: list[ValidationIssue] = []
        issues.extend(self._check_group(snapshot))
        for member in snapshot.members:
            issues.extend(self._check_member(member, snapshot, as_of_date, include_equity_method))
        issues.extend(self._check_balances(snapshot, include_equity_method))
        issues.extend(self._check_rules(snapshot))

        result = ValidationResult(issues=tuple(issues))
        logger.info(
            "validation_completed",
            extra={
                "group_id": snapshot.group.id,
                "error_count": len(result.errors),
                "warning_count": len(result.warnings),
            },
        )
        return result

    # -- group ---------------------------------------------------------------

    def _check_group(self, snapshot: RunSnapshot) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []
        group = snapshot.group
        counts = Counter(m.company_id for m in snapshot.members)
        for company_id, count in sorted(counts.items()):
            if count > 1:
                issues.append(_error(
                    "DUPLICATE_MEMBER",
                    f"Member {company_id} appears {count} times in group {group.id}",
                    company_id,
                ))
        if not any(m.company_id != group.parent_company_id for m in snapshot.members):
            issues.append(_warning(
                "GROUP_HAS_NO_MEMBERS",
                f"Group {group.id} has no subsidiaries; only the parent will be consolidated",
                group.id,
            ))
        parent = next(
            (m for m in snapshot.members if m.company_id == group.parent_company_id), None,
        )
        if parent is not None and (
            parent.consolidation_method is not ConsolidationMethod.FULL_CONSOLIDATION
            or parent.ownership_percentage != _HUNDRED
        ):
            issues.append(_error(
                "PARENT_MEMBER_INVALID",
                f"Parent company {parent.company_id} must be a 100% FullConsolidation member",
                parent.company_id,
            ))
        return issues

    # -- members -------------------------------------------------------------

    def _check_member(
        self,
        member: ConsolidationMember,
        snapshot: RunSnapshot,
        as_of_date: date,
        include_equity_method: bool,
    ) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []
        cid = member.company_id
        try:
            check_ownership(member, self._tolerance)
        except (InvalidPercentageError, OwnershipMismatchError) as exc:
            issues.append(_error(exc.code, str(exc), cid))
            return issues

        method = member.consolidation_method
        if method is ConsolidationMethod.VARIABLE_INTEREST_ENTITY:
            if member.vie_determination is None:
                issues.append(_error(
                    "VIE_DETERMINATION_MISSING",
                    f"Member {cid} is a variable interest entity without a primary-beneficiary determination",
                    cid,
                ))
            elif not member.is_primary_beneficiary:
                issues.append(_warning(
                    "VIE_NOT_PRIMARY_BENEFICIARY",
                    f"Member {cid} is a VIE for which the group is not primary beneficiary; it is excluded",
                    cid,
                ))
        else:
            expected = determine_method(
                member.ownership_percentage,
                control_above=self._control_above,
                significant_influence_from=self._influence_from,
            )
            if expected is not method:
                issues.append(_warning(
                    "METHOD_OWNERSHIP_INCONSISTENT",
                    f"Member {cid} uses {method.value} but {member.ownership_percentage}% "
                    f"ownership suggests {expected.value}",
                    cid,
                ))

        if member.acquisition_date > as_of_date:
            issues.append(_warning(
                "MEMBER_ACQUIRED_AFTER_PERIOD",
                f"Member {cid} was acquired on {member.acquisition_date}, after {as_of_date}",
                cid,
            ))

        if member.goodwill is not None:
            if member.goodwill.is_negative:
                issues.append(_warning(
                    "NEGATIVE_GOODWILL",
                    f"Member {cid} records negative goodwill {member.goodwill}",
                    cid,
                ))
            if member.goodwill.currency.code != snapshot.group.reporting_currency:
                issues.append(_warning(
                    "GOODWILL_CURRENCY_MISMATCH",
                    f"Member {cid} goodwill is in {member.goodwill.currency.code}, "
                    f"group reports in {snapshot.group.reporting_currency}",
                    cid,
                ))

        if (
            method is ConsolidationMethod.EQUITY_METHOD
            and include_equity_method
            and not self._equity_accounts_known(snapshot)
        ):
            issues.append(_warning(
                "EQUITY_METHOD_ACCOUNTS_MISSING",
                f"Member {cid} uses the equity method but the group has no usable "
                f"investment / equity-in-earnings accounts; no pickup will be recorded",
                cid,
            ))
        return issues

    @staticmethod
    def _equity_accounts_known(snapshot: RunSnapshot) -> bool:
        accounts = snapshot.group.equity_method_accounts
        return (
            accounts is not None
            and accounts.investment_account_id in snapshot.catalog
            and accounts.equity_in_earnings_account_id in snapshot.catalog
        )

    # -- member balances -----------------------------------------------------

    def _check_balances(
        self, snapshot: RunSnapshot, include_equity_method: bool,
    ) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []
        for member in snapshot.members:
            if not (
                member.is_fully_consolidated
                or (member.consolidation_method is ConsolidationMethod.EQUITY_METHOD and include_equity_method)
            ):
                continue
            cid = member.company_id
            net_by_currency: dict[str, Decimal] = {}
            for balance in snapshot.balances.get(cid, ()):
                account = snapshot.catalog.get(balance.account_id)
                if account is None:
                    issues.append(_error(
                        "MEMBER_ACCOUNT_UNKNOWN",
                        f"Member {cid} has a balance on account {balance.account_number} "
                        f"({balance.account_id}) missing from the account catalog",
                        cid,
                    ))
                    continue
                signed = balance.amount if account.normal_balance is NormalBalance.DEBIT else -balance.amount
                net_by_currency[balance.currency] = net_by_currency.get(balance.currency, _ZERO) + signed
            for currency, net in sorted(net_by_currency.items()):
                if abs(net) > minor_unit(currency):
                    issues.append(_error(
                        "MEMBER_TRIAL_BALANCE_NOT_BALANCED",
                        f"Member {cid} trial balance is out of balance by {net} {currency}",
                        cid,
                    ))
        return issues

    # -- rules ---------------------------------------------------------------

    def _check_rules(self, snapshot: RunSnapshot) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []
        catalog = snapshot.catalog
        for rule in snapshot.rules:
            if not rule.is_active:
                continue
            if not rule.trigger_conditions:
                issues.append(_warning(
                    "RULE_WITHOUT_TRIGGERS",
                    f"Rule '{rule.name}' has no trigger conditions and fires whenever its source accounts carry a balance",
                    rule.id,
                ))
            for account_id in (rule.debit_account_id, rule.credit_account_id):
                if account_id not in catalog:
                    issues.append(_warning(
                        "RULE_ACCOUNT_UNKNOWN",
                        f"Rule '{rule.name}' posts to account {account_id} which is not in the catalog; the rule will be skipped",
                        rule.id,
                    ))
            selectors = [
                *rule.source_accounts,
                *rule.target_accounts,
                *(s for c in rule.trigger_conditions for s in c.source_accounts),
            ]
            for selector in selectors:
                try:
                    resolve(selector, catalog)
                except UnknownAccountError as exc:
                    issues.append(_warning(
                        "RULE_SELECTOR_UNRESOLVED",
                        f"Rule '{rule.name}' references unknown account {exc.account_id}; the rule will be skipped",
                        rule.id,
                    ))
        return issues


def raise_for_errors(result: ValidationResult) -> None:
    """Raise ConfigurationError naming every entity with a blocking issue."""
    if result.is_valid:
        return
    references = tuple(dict.fromkeys(
        e.entity_reference for e in result.errors if e.entity_reference is not None
    ))
    messages = "; ".join(e.message for e in result.errors)
    raise ConfigurationError(f"Validation failed: {messages}", references)


def _error(code: str, message: str, ref: str | None) -> ValidationIssue:
    return ValidationIssue(ValidationSeverity.ERROR, code, message, ref)


def _warning(code: str, message: str, ref: str | None) -> ValidationIssue:
    return ValidationIssue(ValidationSeverity.WARNING, code, message, ref)
