"""
Payslip Dispute Domain Models (``payroll_modules.disputes.models``).

A dispute is raised by an employee against a locked payroll entry and
passes three review stages: the first-line reviewer (the employee's
manager), people operations, and finance.  Each stage either forwards the
dispute or rejects it; only finance can approve, which authorizes exactly
one correction entry.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID


class DisputeStatus(Enum):
    """Dispute review stages."""
    PENDING_FIRST_LINE = "pending_first_line"
    PENDING_PEOPLE_OPS = "pending_people_ops"
    PENDING_FINANCE = "pending_finance"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def is_open(self) -> bool:
        return self not in (DisputeStatus.APPROVED, DisputeStatus.REJECTED)


OPEN_DISPUTE_STATUSES = tuple(s for s in DisputeStatus if s.is_open)


class DisputeCategory(Enum):
    SALARY_MISMATCH = "salary_mismatch"
    DEDUCTION_ERROR = "deduction_error"
    ALLOWANCE_MISSING = "allowance_missing"
    TAX_ERROR = "tax_error"
    OVERTIME_MISSING = "overtime_missing"
    OTHER = "other"


class ReviewStage(Enum):
    """Who decides at each open status."""
    FIRST_LINE = "first_line"
    PEOPLE_OPS = "people_ops"
    FINANCE = "finance"


STAGE_FOR_STATUS = {
    DisputeStatus.PENDING_FIRST_LINE: ReviewStage.FIRST_LINE,
    DisputeStatus.PENDING_PEOPLE_OPS: ReviewStage.PEOPLE_OPS,
    DisputeStatus.PENDING_FINANCE: ReviewStage.FINANCE,
}


@dataclass(frozen=True)
class StageReview:
    """Decision recorded for one stage."""
    reviewer_id: UUID | None = None
    reviewed_at: datetime | None = None
    notes: str | None = None


@dataclass(frozen=True)
class PayslipDispute:
    """A dispute against one payroll entry."""
    id: UUID
    organization_id: UUID
    entry_id: UUID
    run_id: UUID
    employee_id: UUID
    pay_period: str
    category: DisputeCategory
    description: str
    status: DisputeStatus
    raised_by: UUID
    raised_at: datetime | None = None
    first_line: StageReview = StageReview()
    people_ops: StageReview = StageReview()
    finance: StageReview = StageReview()
    resolution_notes: str | None = None
    resolved_at: datetime | None = None
    revised_entry_id: UUID | None = None
    version: int = 1

    @property
    def is_open(self) -> bool:
        return self.status.is_open
