"""
Fiscal quarter-year value type.

DOR publishes one rate table and one boundary set per calendar quarter.
The earliest published quarter is 2008Q2; for 2009 through 2011 only
Q3 and Q4 are available.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from dor_tax.errors import InvalidQuarterError

# quarter -> first month
_QUARTER_MONTHS: dict[int, int] = {1: 1, 2: 4, 3: 7, 4: 10}

_QUARTER_RE = re.compile(r"^\s*(\d{4})\s*[Qq]\s*([1-4])\s*$")


@dataclass(frozen=True, order=True)
class QuarterYear:
    """A calendar year and quarter (1-4)."""

    year: int
    quarter: int

    def __str__(self) -> str:
        return f"{self.year}Q{self.quarter}"

    @classmethod
    def from_date(cls, d: date) -> "QuarterYear":
        """Quarter containing ``d``: ceil(month / 3)."""
        return cls(d.year, math.ceil(d.month / 3))

    @classmethod
    def current(cls, today: Optional[date] = None) -> "QuarterYear":
        """Quarter containing today's date (or ``today`` if supplied)."""
        return cls.from_date(today or date.today())

    @classmethod
    def parse(cls, text: str) -> "QuarterYear":
        """Parse ``"2014Q1"`` style labels."""
        match = _QUARTER_RE.match(text)
        if not match:
            raise ValueError(f"Not a quarter label (expected YYYYQn): {text!r}")
        return cls(int(match.group(1)), int(match.group(2)))

    @property
    def is_valid(self) -> bool:
        """True when DOR has data for this quarter."""
        if not 1 <= self.quarter <= 4:
            return False
        # 2009-2011 tables start at Q3
        return (
            self.year > 2011
            or (self.year > 2008 and self.quarter >= 3)
            or (self.year == 2008 and self.quarter >= 2)
        )

    def validate(self) -> "QuarterYear":
        """Return self, or raise InvalidQuarterError."""
        if not 1 <= self.quarter <= 4:
            raise InvalidQuarterError(
                self.year, self.quarter, "quarter must be 1 through 4"
            )
        if not self.is_valid:
            raise InvalidQuarterError(
                self.year, self.quarter, "no DOR data for this quarter"
            )
        return self

    def date_range(self) -> tuple[date, date]:
        """First and last calendar day of the quarter."""
        start_month = _QUARTER_MONTHS.get(self.quarter)
        if start_month is None:
            raise InvalidQuarterError(
                self.year, self.quarter, "quarter must be 1 through 4"
            )
        start = date(self.year, start_month, 1)
        if self.quarter == 4:
            next_start = date(self.year + 1, 1, 1)
        else:
            next_start = date(self.year, start_month + 3, 1)
        return start, next_start - timedelta(days=1)

    @property
    def start_date(self) -> date:
        return self.date_range()[0]

    @property
    def end_date(self) -> date:
        return self.date_range()[1]

    def contains(self, d: date) -> bool:
        start, end = self.date_range()
        return start <= d <= end
