"""
Currency -- reporting-currency codes and their rounding precision.

Responsibility:
    Knows how many decimal places each currency is reported in, and from
    that the minor unit used both to round trial-balance lines and as the
    tolerance when a member or the consolidated trial balance is checked
    for balance.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - A currency code is three ASCII letters, stored uppercase.
    - Codes without an explicit exponent report in two decimal places.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from types import MappingProxyType

DEFAULT_DECIMAL_PLACES = 2

# ISO 4217 exponents that differ from the default.
_EXPONENTS = MappingProxyType({
    "BIF": 0, "CLP": 0, "DJF": 0, "GNF": 0, "ISK": 0, "JPY": 0, "KMF": 0,
    "KRW": 0, "PYG": 0, "RWF": 0, "UGX": 0, "VND": 0, "VUV": 0, "XAF": 0,
    "XOF": 0, "XPF": 0,
    "BHD": 3, "IQD": 3, "JOD": 3, "KWD": 3, "LYD": 3, "OMR": 3, "TND": 3,
})


def normalize_code(code: str) -> str:
    """Uppercase ``code`` or raise ValueError if it is not three letters."""
    normalized = code.strip().upper() if isinstance(code, str) else ""
    if len(normalized) != 3 or not normalized.isascii() or not normalized.isalpha():
        raise ValueError(f"Invalid currency code: {code!r}")
    return normalized


def decimal_places(code: str) -> int:
    return _EXPONENTS.get(normalize_code(code), DEFAULT_DECIMAL_PLACES)


def minor_unit(code: str) -> Decimal:
    """Smallest reportable amount, e.g. ``0.01`` for USD and ``1`` for JPY."""
    return Decimal(1).scaleb(-decimal_places(code))


@dataclass(frozen=True, slots=True)
class Currency:
    """A validated currency code with its reporting precision."""

    code: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "code", normalize_code(self.code))

    @property
    def decimal_places(self) -> int:
        return decimal_places(self.code)

    @property
    def minor_unit(self) -> Decimal:
        return minor_unit(self.code)

    def quantize(self, amount: Decimal, rounding: str) -> Decimal:
        """Round ``amount`` once to this currency's precision."""
        return amount.quantize(self.minor_unit, rounding=rounding)

    def __str__(self) -> str:
        return self.code
