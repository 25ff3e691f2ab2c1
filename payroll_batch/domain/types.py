"""
payroll_batch.domain.types -- Frozen results of a batch transition.

Invariants enforced:
    - One ``BatchMemberResult`` per distinct id, in request order.
    - A failed member always carries the ``PayrollKernelError`` code that
      stopped it (or ``UNHANDLED_EXCEPTION``).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID


class BatchMemberStatus(str, Enum):
    """Outcome of one member."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class BatchMemberResult:
    """What happened to one run or entry in a batch."""

    member_id: UUID
    status: BatchMemberStatus
    from_status: str | None = None
    to_status: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    duration_ms: int = 0

    @property
    def succeeded(self) -> bool:
        return self.status == BatchMemberStatus.SUCCEEDED


@dataclass(frozen=True)
class BatchTransitionResult:
    """Aggregate of a batch transition.  Successful members are committed.

    Ids repeated in the request are processed once: ``members`` holds one
    result per distinct id and ``duplicate_ids`` lists the ids that were
    submitted more than once.
    """

    entity_type: str
    target_status: str
    members: tuple[BatchMemberResult, ...]
    started_at: datetime
    completed_at: datetime
    duration_ms: int = 0
    duplicate_ids: tuple[UUID, ...] = ()

    @property
    def total(self) -> int:
        return len(self.members)

    @property
    def succeeded(self) -> int:
        return sum(1 for m in self.members if m.succeeded)

    @property
    def failed(self) -> int:
        return self.total - self.succeeded

    @property
    def all_succeeded(self) -> bool:
        return self.failed == 0

    @property
    def succeeded_ids(self) -> tuple[UUID, ...]:
        return tuple(m.member_id for m in self.members if m.succeeded)

    @property
    def failed_ids(self) -> tuple[UUID, ...]:
        return tuple(m.member_id for m in self.members if not m.succeeded)

    def result_for(self, member_id: UUID) -> BatchMemberResult:
        for member in self.members:
            if member.member_id == member_id:
                return member
        raise KeyError(str(member_id))
