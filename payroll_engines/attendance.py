"""
Absence Engine - Merge unpaid leave and marked absences into absence days.

Pure functions with no I/O.  Approved unpaid-leave spans and
attendance-marked absent dates are provided as parameters; the resolver in
``payroll_modules.attendance`` does the reading.

Rules:
    - Leave spans are clipped to the period and expanded to calendar dates.
    - The result is the UNION of leave dates and marked-absent dates: a date
      present in both sources counts once.
    - Only working dates count, so absence days can never exceed the
      period's working days.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable
from uuid import UUID

from payroll_kernel.domain.periods import DEFAULT_WEEKEND, PayPeriod, clip_range


@dataclass(frozen=True)
class LeaveSpan:
    """An approved unpaid-leave date range, inclusive on both ends."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError(f"Leave span ends before it starts: {self.start} > {self.end}")


@dataclass(frozen=True)
class AbsenceSummary:
    """Absence days for one employee in one period."""

    employee_id: UUID
    pay_period: str
    absence_dates: tuple[date, ...]
    leave_days: int
    marked_absent_days: int
    overlapping_days: int

    @property
    def absence_days(self) -> int:
        return len(self.absence_dates)


def expand_leave(
    spans: Iterable[LeaveSpan],
    period: PayPeriod,
) -> set[date]:
    """Clip each span to the period and expand to individual dates."""
    dates: set[date] = set()
    for span in spans:
        clipped = clip_range(span.start, span.end, period)
        if clipped is None:
            continue
        day, last = clipped
        while day <= last:
            dates.add(day)
            day += timedelta(days=1)
    return dates


def summarize_absences(
    employee_id: UUID,
    period: PayPeriod,
    leave_spans: Iterable[LeaveSpan] = (),
    absent_dates: Iterable[date] = (),
    weekend: Iterable[int] = DEFAULT_WEEKEND,
) -> AbsenceSummary:
    """Union leave and marked absences over the period's working dates."""
    working = set(period.working_dates(weekend))
    leave = expand_leave(leave_spans, period) & working
    marked = {d for d in absent_dates if period.start <= d <= period.end} & working
    union = leave | marked
    return AbsenceSummary(
        employee_id=employee_id,
        pay_period=period.code,
        absence_dates=tuple(sorted(union)),
        leave_days=len(leave),
        marked_absent_days=len(marked),
        overlapping_days=len(leave & marked),
    )
