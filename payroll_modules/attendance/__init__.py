"""Leave and attendance, as read by payroll (``payroll_modules.attendance``)."""

from payroll_modules.attendance.models import (
    AttendanceRecord,
    AttendanceStatus,
    LeaveRequest,
    LeaveStatus,
)
from payroll_modules.attendance.selectors import AttendanceResolver

__all__ = [
    "AttendanceRecord",
    "AttendanceStatus",
    "LeaveRequest",
    "LeaveStatus",
    "AttendanceResolver",
]
