"""Payslip disputes and their three-stage review (``payroll_modules.disputes``)."""

from payroll_modules.disputes.models import (
    OPEN_DISPUTE_STATUSES,
    DisputeCategory,
    DisputeStatus,
    PayslipDispute,
    ReviewStage,
    StageReview,
)
from payroll_modules.disputes.selectors import DisputeSelector
from payroll_modules.disputes.service import DisputeService
from payroll_modules.disputes.workflows import DISPUTE_WORKFLOW

__all__ = [
    "OPEN_DISPUTE_STATUSES",
    "DisputeCategory",
    "DisputeStatus",
    "PayslipDispute",
    "ReviewStage",
    "StageReview",
    "DisputeSelector",
    "DisputeService",
    "DISPUTE_WORKFLOW",
]
