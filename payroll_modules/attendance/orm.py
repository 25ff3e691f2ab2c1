"""
Attendance ORM Persistence Models (``payroll_modules.attendance.orm``).

Invariants enforced:
    - One attendance row per employee per day (uq_payroll_attendance_day).
    - Enum fields stored as String(50) containing the enum .value string.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import Boolean, Date, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import TrackedBase


class LeaveRequestModel(TrackedBase):
    """ORM model for ``LeaveRequest``."""

    __tablename__ = "payroll_leave_requests"

    organization_id: Mapped[UUID] = mapped_column(nullable=False)
    employee_id: Mapped[UUID] = mapped_column(nullable=False)
    leave_type: Mapped[str] = mapped_column(String(50), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    is_paid: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)

    __table_args__ = (
        Index(
            "idx_payroll_leave_lookup",
            "organization_id", "employee_id", "status", "start_date", "end_date",
        ),
    )

    def to_dto(self):
        from payroll_modules.attendance.models import LeaveRequest, LeaveStatus
        return LeaveRequest(
            id=self.id,
            organization_id=self.organization_id,
            employee_id=self.employee_id,
            leave_type=self.leave_type,
            start_date=self.start_date,
            end_date=self.end_date,
            is_paid=self.is_paid,
            status=LeaveStatus(self.status),
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "LeaveRequestModel":
        return cls(
            id=dto.id,
            organization_id=dto.organization_id,
            employee_id=dto.employee_id,
            leave_type=dto.leave_type,
            start_date=dto.start_date,
            end_date=dto.end_date,
            is_paid=dto.is_paid,
            status=dto.status.value if hasattr(dto.status, "value") else dto.status,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return (
            f"<LeaveRequestModel {self.employee_id} {self.start_date}..{self.end_date} "
            f"paid={self.is_paid} ({self.status})>"
        )


class AttendanceDailyModel(TrackedBase):
    """ORM model for ``AttendanceRecord``."""

    __tablename__ = "payroll_attendance_daily"

    organization_id: Mapped[UUID] = mapped_column(nullable=False)
    employee_id: Mapped[UUID] = mapped_column(nullable=False)
    work_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)

    __table_args__ = (
        UniqueConstraint("employee_id", "work_date", name="uq_payroll_attendance_day"),
        Index("idx_payroll_attendance_lookup", "organization_id", "status", "work_date"),
    )

    def to_dto(self):
        from payroll_modules.attendance.models import AttendanceRecord, AttendanceStatus
        return AttendanceRecord(
            id=self.id,
            organization_id=self.organization_id,
            employee_id=self.employee_id,
            work_date=self.work_date,
            status=AttendanceStatus(self.status),
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "AttendanceDailyModel":
        return cls(
            id=dto.id,
            organization_id=dto.organization_id,
            employee_id=dto.employee_id,
            work_date=dto.work_date,
            status=dto.status.value if hasattr(dto.status, "value") else dto.status,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<AttendanceDailyModel {self.employee_id} {self.work_date} {self.status}>"
