"""
consolidation_engines.intercompany -- Intercompany pair matching (MatchIC).

Responsibility:
    Pair intercompany balances between consolidated members: a receivable on
    company X tagged with partner Y against a payable on Y tagged with
    partner X, and likewise revenue against expense.  The matched amount of
    each pair (the smaller side) is what pair-type elimination rules evaluate.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Only balances between two consolidated members can match; a balance
      whose partner is outside the consolidation scope stays unmatched.
    - Each side of a pair contributes at most the matched amount; the
      difference is reported, never eliminated.
    - Output ordering is deterministic (sorted by company, partner, kind).
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from types import MappingProxyType

from consolidation_engines.tracer import traced_engine
from consolidation_kernel.domain.accounts import AccountBalance, AccountCatalog, AccountType
from consolidation_kernel.logging_config import get_logger

logger = get_logger("engines.intercompany")

_ZERO = Decimal("0")


class PairKind(str, Enum):
    RECEIVABLE_PAYABLE = "receivable_payable"
    REVENUE_EXPENSE = "revenue_expense"


# Which account type sits on each side of a pair.
_SIDES: dict[PairKind, tuple[AccountType, AccountType]] = {
    PairKind.RECEIVABLE_PAYABLE: (AccountType.ASSET, AccountType.LIABILITY),
    PairKind.REVENUE_EXPENSE: (AccountType.REVENUE, AccountType.EXPENSE),
}


@dataclass(frozen=True, slots=True)
class IntercompanyPair:
    kind: PairKind
    company_id: str
    partner_id: str
    company_amount: Decimal
    partner_amount: Decimal

    @property
    def matched_amount(self) -> Decimal:
        return min(abs(self.company_amount), abs(self.partner_amount))

    @property
    def difference(self) -> Decimal:
        return abs(self.company_amount) - abs(self.partner_amount)


@dataclass(frozen=True)
class IntercompanyMatchResult:
    pairs: tuple[IntercompanyPair, ...]
    unmatched: tuple[AccountBalance, ...]
    matched_by_account: Mapping[str, Decimal]
    tagged_balance_count: int
    tagged_account_ids: frozenset[str]

    @property
    def matched_value(self) -> Decimal:
        return sum((p.matched_amount for p in self.pairs), _ZERO)

    @property
    def unmatched_value(self) -> Decimal:
        return sum((abs(b.amount) for b in self.unmatched), _ZERO)

    def matched_balances(self) -> Mapping[str, Decimal]:
        """Matched amount for every pairable account that carried a tag, zero if unmatched."""
        return MappingProxyType({
            account_id: self.matched_by_account.get(account_id, _ZERO)
            for account_id in sorted(self.tagged_account_ids)
        })

    def summary(self) -> str:
        return (
            f"Matched {len(self.pairs)} intercompany pair(s) totalling "
            f"{self.matched_value}; {len(self.unmatched)} unmatched balance(s) "
            f"totalling {self.unmatched_value}"
        )


def _pair_kind(account_type: AccountType) -> tuple[PairKind, int] | None:
    for kind, sides in _SIDES.items():
        if account_type in sides:
            return kind, sides.index(account_type)
    return None


class IntercompanyMatcher:
    """
    Pairs tagged intercompany balances between consolidated members.

    Contract:
        ``match`` receives the translated balances of every fully
        consolidated member and returns the matched pairs plus, per account
        id, the amount of intercompany balance that was matched.

    Non-goals:
        Does NOT decide what to eliminate; elimination rules do that.
    """

    @traced_engine("intercompany", "1.0", fingerprint_fields=("balances", "consolidated_company_ids"))
    def match(
        self,
        *,
        balances: Iterable[AccountBalance],
        catalog: AccountCatalog,
        consolidated_company_ids: frozenset[str],
    ) -> IntercompanyMatchResult:
        # (kind, company, partner, side) -> balances
        buckets: dict[tuple[PairKind, str, str, int], list[AccountBalance]] = defaultdict(list)
        unmatched: list[AccountBalance] = []
        tagged = 0
        pairable_accounts: set[str] = set()

        for balance in balances:
            if not balance.is_intercompany:
                continue
            tagged += 1
            account = catalog.get(balance.account_id)
            kind_side = _pair_kind(account.account_type) if account else None
            if kind_side is not None:
                pairable_accounts.add(balance.account_id)
            if (
                kind_side is None
                or balance.intercompany_partner_id not in consolidated_company_ids
                or balance.intercompany_partner_id == balance.company_id
            ):
                unmatched.append(balance)
                continue
            kind, side = kind_side
            buckets[(kind, balance.company_id, balance.intercompany_partner_id, side)].append(balance)

        pairs: list[IntercompanyPair] = []
        matched_by_account: dict[str, Decimal] = defaultdict(lambda: _ZERO)
        consumed: set[tuple[PairKind, str, str, int]] = set()

        for key in sorted(buckets, key=lambda k: (k[1], k[2], k[0].value, k[3])):
            kind, company, partner, side = key
            if side != 0:
                continue
            counter_key = (kind, partner, company, 1)
            if counter_key not in buckets:
                continue
            own = buckets[key]
            counter = buckets[counter_key]
            pair = IntercompanyPair(
                kind=kind,
                company_id=company,
                partner_id=partner,
                company_amount=sum((b.amount for b in own), _ZERO),
                partner_amount=sum((b.amount for b in counter), _ZERO),
            )
            pairs.append(pair)
            consumed.update((key, counter_key))
            self._allocate(own, pair.matched_amount, matched_by_account)
            self._allocate(counter, pair.matched_amount, matched_by_account)
            if pair.difference != _ZERO:
                logger.warning(
                    "intercompany_pair_difference",
                    extra={
                        "kind": kind.value,
                        "company_id": company,
                        "partner_id": partner,
                        "difference": pair.difference,
                    },
                )

        for key in sorted(set(buckets) - consumed, key=lambda k: (k[1], k[2], k[0].value, k[3])):
            unmatched.extend(buckets[key])

        logger.info(
            "intercompany_matching_completed",
            extra={
                "pair_count": len(pairs),
                "unmatched_count": len(unmatched),
                "tagged_balance_count": tagged,
            },
        )
        return IntercompanyMatchResult(
            pairs=tuple(pairs),
            unmatched=tuple(unmatched),
            matched_by_account=MappingProxyType(dict(matched_by_account)),
            tagged_balance_count=tagged,
            tagged_account_ids=frozenset(pairable_accounts),
        )

    @staticmethod
    def _allocate(
        side: list[AccountBalance],
        matched: Decimal,
        into: dict[str, Decimal],
    ) -> None:
        """Spread the matched amount over one side's balances in order, capped per balance."""
        remaining = matched
        for balance in side:
            if remaining <= _ZERO:
                break
            take = min(abs(balance.amount), remaining)
            into[balance.account_id] += take if balance.amount >= _ZERO else -take
            remaining -= take
