"""Fiscal period reference used to key consolidation runs."""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date


@dataclass(frozen=True, slots=True, order=True)
class FiscalPeriodRef:
    """
    A (year, period) pair. Periods 1-12 are calendar months; period 13 is the
    year-end adjustment period and shares December's end date.
    """

    year: int
    period: int

    def __post_init__(self) -> None:
        if not 1 <= self.period <= 13:
            raise ValueError(f"Fiscal period must be between 1 and 13, got {self.period}")
        if not 1900 <= self.year <= 9999:
            raise ValueError(f"Fiscal year out of range: {self.year}")

    @property
    def code(self) -> str:
        return f"FY{self.year}-P{self.period:02d}"

    @property
    def end_date(self) -> date:
        month = min(self.period, 12)
        return date(self.year, month, calendar.monthrange(self.year, month)[1])

    @classmethod
    def parse(cls, code: str) -> FiscalPeriodRef:
        """Parse the ``FY2025-P03`` form produced by ``code``."""
        try:
            year_part, period_part = code.split("-")
            if not (year_part.startswith("FY") and period_part.startswith("P")):
                raise ValueError
            return cls(int(year_part[2:]), int(period_part[1:]))
        except ValueError as exc:
            raise ValueError(f"Invalid fiscal period code: {code!r}") from exc

    def __str__(self) -> str:
        return self.code
