"""
Accounts -- chart-of-accounts snapshot and member trial-balance lines.

Responsibility:
    Immutable account metadata (AccountInfo), the per-run AccountCatalog
    snapshot used by selector resolution, and AccountBalance, one line of a
    member company's trial balance.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - AccountCatalog is read-only after construction; a run resolves every
      selector against the catalog it snapshotted at Validate.
    - Account balances are natural balances: positive on the account's
      normal side.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from types import MappingProxyType


class AccountType(str, Enum):
    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSE = "expense"

    @property
    def normal_balance(self) -> NormalBalance:
        if self in (AccountType.ASSET, AccountType.EXPENSE):
            return NormalBalance.DEBIT
        return NormalBalance.CREDIT

    @property
    def is_balance_sheet(self) -> bool:
        return self in (AccountType.ASSET, AccountType.LIABILITY, AccountType.EQUITY)


class NormalBalance(str, Enum):
    DEBIT = "debit"
    CREDIT = "credit"


@dataclass(frozen=True, slots=True)
class AccountInfo:
    """One account in a company's chart of accounts."""

    account_id: str
    account_number: str
    name: str
    account_type: AccountType
    category: str
    is_active: bool = True

    @property
    def normal_balance(self) -> NormalBalance:
        return self.account_type.normal_balance


class AccountCatalog:
    """
    Immutable snapshot of accounts keyed by account id.

    Contract:
        Built once per run from the group catalog provider. Lookups by id and
        by account number never mutate the snapshot.

    Non-goals:
        Does NOT enforce unique account numbers across companies; the first
        account seen for a number wins the number index.
    """

    __slots__ = ("_by_id", "_by_number")

    def __init__(self, accounts: Iterable[AccountInfo] = ()):
        by_id: dict[str, AccountInfo] = {}
        by_number: dict[str, AccountInfo] = {}
        for account in accounts:
            by_id.setdefault(account.account_id, account)
            by_number.setdefault(account.account_number, account)
        self._by_id: Mapping[str, AccountInfo] = MappingProxyType(by_id)
        self._by_number: Mapping[str, AccountInfo] = MappingProxyType(by_number)

    @classmethod
    def merge(cls, catalogs: Iterable[AccountCatalog]) -> AccountCatalog:
        """Combine catalogs; the first definition of an account id wins."""
        return cls(account for catalog in catalogs for account in catalog)

    def get(self, account_id: str) -> AccountInfo | None:
        return self._by_id.get(account_id)

    def by_number(self, account_number: str) -> AccountInfo | None:
        return self._by_number.get(account_number)

    def __contains__(self, account_id: object) -> bool:
        return account_id in self._by_id

    def __iter__(self) -> Iterator[AccountInfo]:
        return iter(self._by_id.values())

    def __len__(self) -> int:
        return len(self._by_id)

    def __repr__(self) -> str:
        return f"AccountCatalog({len(self)} accounts)"


@dataclass(frozen=True, slots=True)
class AccountBalance:
    """
    One line of a member company's trial balance.

    ``amount`` is the natural balance in ``currency``. ``intercompany_partner_id``
    names the counterparty company for intercompany balances.
    """

    company_id: str
    account_id: str
    account_number: str
    amount: Decimal
    currency: str
    intercompany_partner_id: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.amount, Decimal):
            raise TypeError(f"amount must be Decimal, got {type(self.amount).__name__}")

    @property
    def is_intercompany(self) -> bool:
        return self.intercompany_partner_id is not None

    def with_amount(self, amount: Decimal, currency: str) -> AccountBalance:
        return AccountBalance(
            company_id=self.company_id,
            account_id=self.account_id,
            account_number=self.account_number,
            amount=amount,
            currency=currency,
            intercompany_partner_id=self.intercompany_partner_id,
        )
