"""
Attendance Domain Models (``payroll_modules.attendance.models``).

Leave requests and daily attendance are owned by the HR side of the
product; payroll only reads approved unpaid leave and days marked absent.
"""

from dataclasses import dataclass
from datetime import date
from enum import Enum
from uuid import UUID


class LeaveStatus(Enum):
    """Leave request states."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class AttendanceStatus(Enum):
    """Daily attendance marks."""
    PRESENT = "present"
    ABSENT = "absent"
    HALF_DAY = "half_day"
    ON_LEAVE = "on_leave"


@dataclass(frozen=True)
class LeaveRequest:
    """A leave request; ``is_paid=False`` makes approved days loss-of-pay."""
    id: UUID
    organization_id: UUID
    employee_id: UUID
    leave_type: str
    start_date: date
    end_date: date
    is_paid: bool
    status: LeaveStatus


@dataclass(frozen=True)
class AttendanceRecord:
    """One employee-day of attendance."""
    id: UUID
    organization_id: UUID
    employee_id: UUID
    work_date: date
    status: AttendanceStatus
