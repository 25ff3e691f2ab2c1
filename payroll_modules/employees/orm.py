"""
Employee ORM Persistence Model (``payroll_modules.employees.orm``).

Invariants enforced:
    - ``organization_id`` is explicit on every row and on every index that
      serves a tenant query.
"""

from uuid import UUID

from sqlalchemy import Boolean, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import TrackedBase


class EmployeeProfileModel(TrackedBase):
    """ORM model for ``EmployeeProfile``."""

    __tablename__ = "payroll_employee_profiles"

    organization_id: Mapped[UUID] = mapped_column(nullable=False)
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    department: Mapped[str | None] = mapped_column(String(100), nullable=True)
    job_title: Mapped[str | None] = mapped_column(String(100), nullable=True)
    manager_id: Mapped[UUID | None] = mapped_column(nullable=True)
    bank_account_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        Index("idx_payroll_employee_org_active", "organization_id", "is_active"),
        Index("idx_payroll_employee_department", "organization_id", "department"),
    )

    def to_dto(self):
        from payroll_modules.employees.models import EmployeeProfile
        return EmployeeProfile(
            id=self.id,
            organization_id=self.organization_id,
            full_name=self.full_name,
            email=self.email,
            department=self.department,
            job_title=self.job_title,
            manager_id=self.manager_id,
            bank_account_number=self.bank_account_number,
            is_active=self.is_active,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "EmployeeProfileModel":
        return cls(
            id=dto.id,
            organization_id=dto.organization_id,
            full_name=dto.full_name,
            email=dto.email,
            department=dto.department,
            job_title=dto.job_title,
            manager_id=dto.manager_id,
            bank_account_number=dto.bank_account_number,
            is_active=dto.is_active,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<EmployeeProfileModel {self.full_name} ({self.department})>"
