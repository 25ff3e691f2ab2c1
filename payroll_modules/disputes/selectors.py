"""Read side of payslip disputes (``payroll_modules.disputes.selectors``)."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select

from payroll_kernel.exceptions import DisputeNotFoundError
from payroll_kernel.selectors.base import BaseSelector
from payroll_modules.disputes.models import OPEN_DISPUTE_STATUSES, DisputeStatus, PayslipDispute
from payroll_modules.disputes.orm import PayslipDisputeModel


class DisputeSelector(BaseSelector[PayslipDisputeModel]):
    """Disputes within one organization."""

    def get(self, organization_id: UUID, dispute_id: UUID) -> PayslipDispute:
        """
        Raises:
            DisputeNotFoundError: unknown id within the organization.
        """
        model = self.session.execute(
            select(PayslipDisputeModel).where(
                PayslipDisputeModel.organization_id == organization_id,
                PayslipDisputeModel.id == dispute_id,
            )
        ).scalar_one_or_none()
        if model is None:
            raise DisputeNotFoundError(str(dispute_id))
        return model.to_dto()

    def open_for_entry(self, organization_id: UUID, entry_id: UUID) -> PayslipDispute | None:
        model = self.session.execute(
            select(PayslipDisputeModel).where(
                PayslipDisputeModel.organization_id == organization_id,
                PayslipDisputeModel.entry_id == entry_id,
                PayslipDisputeModel.status.in_([s.value for s in OPEN_DISPUTE_STATUSES]),
            )
        ).scalars().first()
        return model.to_dto() if model is not None else None

    def list_disputes(
        self,
        organization_id: UUID,
        status: DisputeStatus | None = None,
        employee_id: UUID | None = None,
        pay_period: str | None = None,
    ) -> list[PayslipDispute]:
        """Review queue, oldest first."""
        stmt = select(PayslipDisputeModel).where(
            PayslipDisputeModel.organization_id == organization_id,
        )
        if status is not None:
            stmt = stmt.where(PayslipDisputeModel.status == status.value)
        if employee_id is not None:
            stmt = stmt.where(PayslipDisputeModel.employee_id == employee_id)
        if pay_period is not None:
            stmt = stmt.where(PayslipDisputeModel.pay_period == pay_period)
        stmt = stmt.order_by(PayslipDisputeModel.created_at, PayslipDisputeModel.id)
        return [m.to_dto() for m in self.session.execute(stmt).scalars()]
