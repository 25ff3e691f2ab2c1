"""
payroll_batch.domain -- Pure result types for batch transitions.

ZERO I/O.  All types are frozen dataclasses.
"""

from payroll_batch.domain.types import (
    BatchMemberResult,
    BatchMemberStatus,
    BatchTransitionResult,
)

__all__ = [
    "BatchMemberResult",
    "BatchMemberStatus",
    "BatchTransitionResult",
]
