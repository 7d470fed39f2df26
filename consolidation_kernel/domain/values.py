"""
Values -- Money, an amount tied to its currency.

Used where an amount is recorded on a domain object rather than computed
inside an engine: goodwill recognised for a member is the main case.
Engines work on bare Decimals in the group's reporting currency.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from consolidation_kernel.domain.currency import Currency


@dataclass(frozen=True, slots=True)
class Money:
    """
    Contract:
        ``amount`` is a Decimal and ``currency`` a Currency; the constructor
        refuses floats and coerces str currency codes.

    Non-goals:
        - No arithmetic or conversion.  Translation belongs to the
          CurrencyTranslationService collaborator.
    """

    amount: Decimal
    currency: Currency

    def __post_init__(self) -> None:
        if not isinstance(self.amount, Decimal):
            raise TypeError(f"Money amount must be Decimal, got {type(self.amount).__name__}")
        if isinstance(self.currency, str):
            object.__setattr__(self, "currency", Currency(self.currency))

    @classmethod
    def of(cls, amount: Decimal | str | int, currency: str | Currency) -> Money:
        if isinstance(amount, float):
            raise TypeError(f"Money amount must not be float: {amount!r}")
        return cls(Decimal(str(amount)) if not isinstance(amount, Decimal) else amount, currency)

    @property
    def is_negative(self) -> bool:
        return self.amount < 0

    def __str__(self) -> str:
        return f"{self.amount} {self.currency}"
