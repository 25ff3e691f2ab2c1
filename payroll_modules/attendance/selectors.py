"""
AttendanceResolver -- unpaid absence days per employee for a period.

Reads approved unpaid leave overlapping the period and attendance rows
marked absent inside it, in two bulk queries, then hands both sets to the
pure merge in ``payroll_engines.attendance``.  A date present in both
sources is counted once.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from datetime import date
from uuid import UUID

from sqlalchemy import select

from payroll_engines.attendance import AbsenceSummary, LeaveSpan, summarize_absences
from payroll_kernel.domain.periods import DEFAULT_WEEKEND, PayPeriod
from payroll_kernel.logging_config import get_logger
from payroll_kernel.selectors.base import BaseSelector
from payroll_modules.attendance.models import AttendanceStatus, LeaveStatus
from payroll_modules.attendance.orm import AttendanceDailyModel, LeaveRequestModel

logger = get_logger("modules.attendance.selectors")


class AttendanceResolver(BaseSelector[LeaveRequestModel]):
    """Resolve absence summaries for many employees at once."""

    def resolve(
        self,
        organization_id: UUID,
        employee_ids: Iterable[UUID],
        period: PayPeriod,
        weekend: Iterable[int] = DEFAULT_WEEKEND,
    ) -> dict[UUID, AbsenceSummary]:
        ids = list(employee_ids)
        if not ids:
            return {}
        weekend = frozenset(weekend)

        leave_rows = self.session.execute(
            select(
                LeaveRequestModel.employee_id,
                LeaveRequestModel.start_date,
                LeaveRequestModel.end_date,
            ).where(
                LeaveRequestModel.organization_id == organization_id,
                LeaveRequestModel.employee_id.in_(ids),
                LeaveRequestModel.status == LeaveStatus.APPROVED.value,
                LeaveRequestModel.is_paid.is_(False),
                LeaveRequestModel.start_date <= period.end,
                LeaveRequestModel.end_date >= period.start,
            )
        ).all()

        absent_rows = self.session.execute(
            select(AttendanceDailyModel.employee_id, AttendanceDailyModel.work_date).where(
                AttendanceDailyModel.organization_id == organization_id,
                AttendanceDailyModel.employee_id.in_(ids),
                AttendanceDailyModel.status == AttendanceStatus.ABSENT.value,
                AttendanceDailyModel.work_date >= period.start,
                AttendanceDailyModel.work_date <= period.end,
            )
        ).all()

        spans: dict[UUID, list[LeaveSpan]] = defaultdict(list)
        for employee_id, start, end in leave_rows:
            spans[employee_id].append(LeaveSpan(start, end))
        absent: dict[UUID, list[date]] = defaultdict(list)
        for employee_id, work_date in absent_rows:
            absent[employee_id].append(work_date)

        summaries = {
            employee_id: summarize_absences(
                employee_id,
                period,
                leave_spans=spans.get(employee_id, ()),
                absent_dates=absent.get(employee_id, ()),
                weekend=weekend,
            )
            for employee_id in ids
        }

        logger.debug(
            "absences_resolved",
            extra={
                "pay_period": period.code,
                "employee_count": len(ids),
                "leave_rows": len(leave_rows),
                "absent_rows": len(absent_rows),
            },
        )
        return summaries
