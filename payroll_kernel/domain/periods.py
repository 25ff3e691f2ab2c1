"""
Pay-period arithmetic (``payroll_kernel.domain.periods``).

Responsibility
--------------
The ``PayPeriod`` value object: parsing of ``YYYY-MM`` codes, calendar
bounds, working-day counts, and fiscal-year position (label, earlier
periods, remaining periods).  Every component that needs "how many working
days" or "how many periods are left this fiscal year" asks this module, so
the answers are identical everywhere.

Architecture position
---------------------
**Kernel domain layer** -- pure, ZERO I/O.

Invariants enforced
-------------------
* A period is always a full calendar month.
* Working days are the calendar days whose weekday is not in the weekend
  set (Saturday and Sunday by default).  Holiday calendars are not modelled.
* ``remaining_periods_in_fiscal_year`` counts the current period and is
  therefore always >= 1.
"""

from __future__ import annotations

import calendar
import re
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Iterator

from payroll_kernel.exceptions import MalformedPeriodError

_PERIOD_RE = re.compile(r"^(\d{4})-(\d{2})$")

DEFAULT_WEEKEND: frozenset[int] = frozenset({5, 6})  # Saturday, Sunday


@dataclass(frozen=True, order=True)
class PayPeriod:
    """One calendar month of payroll."""

    year: int
    month: int

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise MalformedPeriodError(f"{self.year:04d}-{self.month:02d}")
        if not 1900 <= self.year <= 9999:
            raise MalformedPeriodError(f"{self.year:04d}-{self.month:02d}")

    @classmethod
    def parse(cls, code: str | None) -> PayPeriod:
        """Parse ``YYYY-MM``.

        Raises:
            MalformedPeriodError: on anything else.
        """
        if not isinstance(code, str):
            raise MalformedPeriodError(repr(code))
        match = _PERIOD_RE.match(code.strip())
        if match is None:
            raise MalformedPeriodError(code)
        return cls(int(match.group(1)), int(match.group(2)))

    @property
    def code(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    @property
    def start(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def end(self) -> date:
        return date(self.year, self.month, calendar.monthrange(self.year, self.month)[1])

    def dates(self) -> Iterator[date]:
        day = self.start
        while day <= self.end:
            yield day
            day += timedelta(days=1)

    def working_dates(self, weekend: Iterable[int] = DEFAULT_WEEKEND) -> tuple[date, ...]:
        weekend_set = frozenset(weekend)
        return tuple(d for d in self.dates() if d.weekday() not in weekend_set)

    def working_days(self, weekend: Iterable[int] = DEFAULT_WEEKEND) -> int:
        return len(self.working_dates(weekend))

    def shift(self, months: int) -> PayPeriod:
        index = self.year * 12 + (self.month - 1) + months
        return PayPeriod(index // 12, index % 12 + 1)

    # -- fiscal year -------------------------------------------------------

    def fiscal_year_start(self, start_month: int = 4) -> PayPeriod:
        year = self.year if self.month >= start_month else self.year - 1
        return PayPeriod(year, start_month)

    def fiscal_year_label(self, start_month: int = 4) -> str:
        """``2024-25`` style label; calendar fiscal years render as ``2024``."""
        first = self.fiscal_year_start(start_month)
        if start_month == 1:
            return f"{first.year:04d}"
        return f"{first.year:04d}-{(first.year + 1) % 100:02d}"

    def fiscal_year_periods_before(self, start_month: int = 4) -> tuple[PayPeriod, ...]:
        """Periods of the same fiscal year strictly before this one."""
        first = self.fiscal_year_start(start_month)
        periods = []
        current = first
        while current < self:
            periods.append(current)
            current = current.shift(1)
        return tuple(periods)

    def remaining_periods_in_fiscal_year(self, start_month: int = 4) -> int:
        """Periods left including this one (April -> 12, March -> 1)."""
        return 12 - len(self.fiscal_year_periods_before(start_month))

    def __str__(self) -> str:
        return self.code


def clip_range(start: date, end: date, period: PayPeriod) -> tuple[date, date] | None:
    """Intersect ``[start, end]`` with the period; None when disjoint."""
    lo = max(start, period.start)
    hi = min(end, period.end)
    if lo > hi:
        return None
    return lo, hi
