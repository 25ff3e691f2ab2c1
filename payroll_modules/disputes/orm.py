"""
Payslip Dispute ORM Model (``payroll_modules.disputes.orm``).

Invariants enforced:
    - Status stored as String(50) holding ``DisputeStatus.value``.
    - Per-stage reviewer, timestamp and notes are separate columns so the
      full review trail stays queryable after resolution.
    - ``revised_entry_id`` is set exactly when status is ``approved``.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import TrackedBase


class PayslipDisputeModel(TrackedBase):
    """ORM model for ``PayslipDispute``."""

    __tablename__ = "payroll_payslip_disputes"

    organization_id: Mapped[UUID] = mapped_column(nullable=False)
    entry_id: Mapped[UUID] = mapped_column(ForeignKey("payroll_entries.id"), nullable=False)
    run_id: Mapped[UUID] = mapped_column(ForeignKey("payroll_runs.id"), nullable=False)
    employee_id: Mapped[UUID] = mapped_column(nullable=False)
    pay_period: Mapped[str] = mapped_column(String(7), nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    raised_by: Mapped[UUID] = mapped_column(nullable=False)

    first_line_reviewer_id: Mapped[UUID | None] = mapped_column(nullable=True)
    first_line_reviewed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    first_line_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    people_ops_reviewer_id: Mapped[UUID | None] = mapped_column(nullable=True)
    people_ops_reviewed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    people_ops_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    finance_reviewer_id: Mapped[UUID | None] = mapped_column(nullable=True)
    finance_reviewed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    finance_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    resolution_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    revised_entry_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("payroll_entries.id"), nullable=True,
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __table_args__ = (
        Index("idx_payroll_dispute_org_status", "organization_id", "status"),
        Index("idx_payroll_dispute_entry", "entry_id"),
        Index("idx_payroll_dispute_employee", "organization_id", "employee_id"),
    )

    def to_dto(self):
        from payroll_modules.disputes.models import (
            DisputeCategory,
            DisputeStatus,
            PayslipDispute,
            StageReview,
        )
        return PayslipDispute(
            id=self.id,
            organization_id=self.organization_id,
            entry_id=self.entry_id,
            run_id=self.run_id,
            employee_id=self.employee_id,
            pay_period=self.pay_period,
            category=DisputeCategory(self.category),
            description=self.description,
            status=DisputeStatus(self.status),
            raised_by=self.raised_by,
            raised_at=self.created_at,
            first_line=StageReview(
                self.first_line_reviewer_id, self.first_line_reviewed_at, self.first_line_notes,
            ),
            people_ops=StageReview(
                self.people_ops_reviewer_id, self.people_ops_reviewed_at, self.people_ops_notes,
            ),
            finance=StageReview(
                self.finance_reviewer_id, self.finance_reviewed_at, self.finance_notes,
            ),
            resolution_notes=self.resolution_notes,
            resolved_at=self.resolved_at,
            revised_entry_id=self.revised_entry_id,
            version=self.version,
        )

    def __repr__(self) -> str:
        return f"<PayslipDisputeModel entry={self.entry_id} ({self.status})>"
