"""
payroll_batch -- bulk status transitions over runs and entries.

Each member of a batch is moved inside its own SAVEPOINT so one member's
failure never undoes another's success.  The batch reports a per-member
outcome instead of raising.

Architecture:
    payroll_batch/ is a top-level package.  Nothing in kernel/, engines/,
    modules/ or services/ imports from payroll_batch.
"""

from payroll_batch.domain.types import (
    BatchMemberResult,
    BatchMemberStatus,
    BatchTransitionResult,
)
from payroll_batch.services.processor import BatchProcessor

__all__ = [
    "BatchMemberResult",
    "BatchMemberStatus",
    "BatchProcessor",
    "BatchTransitionResult",
]
