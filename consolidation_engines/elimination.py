"""
consolidation_engines.elimination -- Elimination rule matcher.

Responsibility:
    Evaluate elimination rules against aggregated balances and produce the
    ordered list of elimination candidates (debit/credit pairs with an
    amount), together with rule-level warnings and the rules that need
    manual review.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Uses consolidation_engines.selector_resolver for account resolution.

Invariants enforced:
    - Only active rules are evaluated, in ascending (priority, rule id)
      order, so identical input always yields identical output.
    - Non-automatic rules never produce candidates; they are surfaced for
      manual review.
    - A rule fires only if ALL of its trigger conditions match.
    - A misconfigured rule (unknown account) is skipped with a warning; it
      never aborts matching for other rules.
    - Summing candidates per account is NOT done here (see aggregation).

Failure modes:
    - None raised for rule data problems; they become RuleWarnings.
"""

from __future__ import annotations

from collections import ChainMap
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal

from consolidation_engines.selector_resolver import resolve_all
from consolidation_engines.tracer import traced_engine
from consolidation_kernel.domain.accounts import AccountCatalog
from consolidation_kernel.domain.group import (
    EliminationRule,
    EliminationType,
    TriggerCondition,
)
from consolidation_kernel.exceptions import UnknownAccountError
from consolidation_kernel.logging_config import get_logger

logger = get_logger("engines.elimination")

_ZERO = Decimal("0")


@dataclass(frozen=True, slots=True)
class EliminationCandidate:
    """One elimination entry proposed by a fired rule."""

    rule_id: str
    rule_name: str
    elimination_type: EliminationType
    debit_account_id: str
    credit_account_id: str
    amount: Decimal


@dataclass(frozen=True, slots=True)
class RuleWarning:
    rule_id: str
    code: str
    message: str


@dataclass(frozen=True)
class MatchOutcome:
    candidates: tuple[EliminationCandidate, ...]
    warnings: tuple[RuleWarning, ...] = ()
    manual_review_rule_ids: tuple[str, ...] = ()
    skipped_rule_ids: tuple[str, ...] = ()

    @property
    def total_amount(self) -> Decimal:
        return sum((c.amount for c in self.candidates), _ZERO)


def _aggregate(account_ids: Iterable[str], balances: Mapping[str, Decimal]) -> Decimal:
    return sum((balances.get(a, _ZERO) for a in account_ids), _ZERO)


def condition_matches(aggregate: Decimal, condition: TriggerCondition) -> bool:
    """Threshold test for one trigger condition.

    With a minimum the absolute aggregate must meet or exceed it; without
    one any nonzero aggregate matches.
    """
    if condition.minimum_amount is None:
        return aggregate != _ZERO
    return abs(aggregate) >= condition.minimum_amount


class EliminationMatcher:
    """
    Evaluates elimination rules against a balance snapshot.

    Contract:
        ``balances`` maps account id to aggregated natural balance across all
        consolidated members.  ``ic_balances``, when given, maps each account
        that carried intercompany-tagged balances to the amount matched in
        the MatchIC step.  Receivable/payable and revenue/expense rules read
        those accounts from it and every other account from ``balances``.
        Dividend rules always read ``balances``; MatchIC does not pair them.

    Guarantees:
        - Candidates are ordered by (priority, rule id).
        - Candidate amounts are non-negative and nonzero.
    """

    @traced_engine(
        "elimination", "1.0",
        fingerprint_fields=("rules", "balances", "ic_balances"),
    )
    def match(
        self,
        *,
        rules: Sequence[EliminationRule],
        balances: Mapping[str, Decimal],
        catalog: AccountCatalog,
        ic_balances: Mapping[str, Decimal] | None = None,
    ) -> MatchOutcome:
        candidates: list[EliminationCandidate] = []
        warnings: list[RuleWarning] = []
        manual: list[str] = []
        skipped: list[str] = []

        ordered = sorted((r for r in rules if r.is_active), key=lambda r: r.sort_key)
        for rule in ordered:
            if not rule.is_automatic:
                manual.append(rule.id)
                logger.info("elimination_rule_manual_review", extra={"rule_id": rule.id})
                continue

            source = (
                ChainMap(ic_balances, balances)
                if ic_balances is not None and rule.elimination_type.uses_matched_intercompany
                else balances
            )
            try:
                candidate = self._evaluate(rule, source, catalog)
            except UnknownAccountError as exc:
                warnings.append(RuleWarning(
                    rule_id=rule.id,
                    code=exc.code,
                    message=f"Rule '{rule.name}' skipped: {exc}",
                ))
                skipped.append(rule.id)
                logger.warning(
                    "elimination_rule_skipped",
                    extra={"rule_id": rule.id, "account_id": exc.account_id},
                )
                continue

            if candidate is None:
                skipped.append(rule.id)
                continue
            candidates.append(candidate)
            logger.info(
                "elimination_rule_fired",
                extra={"rule_id": rule.id, "amount": candidate.amount},
            )

        return MatchOutcome(
            candidates=tuple(candidates),
            warnings=tuple(warnings),
            manual_review_rule_ids=tuple(manual),
            skipped_rule_ids=tuple(skipped),
        )

    def _evaluate(
        self,
        rule: EliminationRule,
        balances: Mapping[str, Decimal],
        catalog: AccountCatalog,
    ) -> EliminationCandidate | None:
        for account_id in (rule.debit_account_id, rule.credit_account_id):
            if account_id not in catalog:
                raise UnknownAccountError(account_id)

        for condition in rule.trigger_conditions:
            aggregate = _aggregate(resolve_all(condition.source_accounts, catalog), balances)
            if not condition_matches(aggregate, condition):
                logger.debug(
                    "elimination_condition_not_met",
                    extra={"rule_id": rule.id, "condition": condition.description},
                )
                return None

        amount = self._amount(rule, balances, catalog)
        if amount == _ZERO:
            return None
        return EliminationCandidate(
            rule_id=rule.id,
            rule_name=rule.name,
            elimination_type=rule.elimination_type,
            debit_account_id=rule.debit_account_id,
            credit_account_id=rule.credit_account_id,
            amount=amount,
        )

    @staticmethod
    def _amount(
        rule: EliminationRule,
        balances: Mapping[str, Decimal],
        catalog: AccountCatalog,
    ) -> Decimal:
        """Elimination amount for a fired rule.

        Pair types eliminate the smaller of the two sides when target
        selectors are configured.  Everything else eliminates the absolute
        source aggregate.
        """
        source_selectors = rule.source_accounts
        if not source_selectors and rule.trigger_conditions:
            source_selectors = rule.trigger_conditions[0].source_accounts
        source = abs(_aggregate(resolve_all(source_selectors, catalog), balances))

        if rule.elimination_type.is_intercompany_pair and rule.target_accounts:
            target = abs(_aggregate(resolve_all(rule.target_accounts, catalog), balances))
            return min(source, target)
        return source
