"""
Account selectors -- closed sum type describing a set of accounts.

A selector is one of ``ById``, ``ByRange`` or ``ByCategory``. Consumers
dispatch with ``isinstance`` checks and finish with ``assert_never`` so the type checker
flags any unhandled variant.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TypeAlias


@dataclass(frozen=True, slots=True)
class ById:
    account_id: str


@dataclass(frozen=True, slots=True)
class ByRange:
    """Inclusive range over account numbers, compared lexicographically."""

    from_account_number: str
    to_account_number: str

    def __post_init__(self) -> None:
        if self.from_account_number > self.to_account_number:
            raise ValueError(
                f"Account range is inverted: {self.from_account_number} > "
                f"{self.to_account_number}"
            )


@dataclass(frozen=True, slots=True)
class ByCategory:
    category: str


AccountSelector: TypeAlias = ById | ByRange | ByCategory
