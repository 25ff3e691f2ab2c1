"""
BatchProcessor -- SAVEPOINT-per-member status transitions.

Contract:
    ``transition_entries`` / ``transition_runs`` take a list of ids and one
    target status and return a ``BatchTransitionResult``.  Failures of
    individual members are reported, not raised.  The processor owns the
    unit of work: successful members are committed before it returns.

Architecture: payroll_batch/services.  Imports payroll_batch.domain, the
    kernel, and the payroll module's ``LifecycleController``.

Invariants enforced:
    - SAVEPOINT isolation per member: one member's failure never rolls back
      another member's transition.
    - Every member is a compare-and-set from an expected status.  Unless the
      caller names one, the expected status is the target's on-path
      predecessor in the workflow, so a second caller that arrives after the
      first has moved the member gets ``ALREADY_PROCESSED`` even when it
      asked for a different target.
    - Rows are locked ``FOR UPDATE NOWAIT``; a member held by another caller
      fails with ``CURRENTLY_PROCESSING`` instead of waiting.
    - Collaborator events raised by a member are forwarded to the publisher
      only after that member's SAVEPOINT is released, and leave the process
      only after the outer commit.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.workflow import Workflow
from payroll_kernel.exceptions import PayrollKernelError
from payroll_kernel.logging_config import LogContext, get_logger
from payroll_modules._validation import require_context
from payroll_modules.payroll.config import PayrollConfig
from payroll_modules.payroll.lifecycle import ENTRY_ENTITY, RUN_ENTITY, LifecycleController
from payroll_modules.payroll.models import EntryStatus, RunStatus
from payroll_modules.payroll.workflows import ENTRY_WORKFLOW, RUN_WORKFLOW
from payroll_services.collaborators import LedgerPosting, NotificationEvent
from payroll_services.publisher import PostCommitPublisher, get_default_publisher

from payroll_batch.domain.types import (
    BatchMemberResult,
    BatchMemberStatus,
    BatchTransitionResult,
)

logger = get_logger("batch.processor")


class _MemberBuffer:
    """Publisher stand-in that holds one member's events until its SAVEPOINT is released."""

    def __init__(self, publisher: PostCommitPublisher):
        self._publisher = publisher
        self._items: list[tuple[str, Any]] = []

    def publish_notification(self, session: Session, notification: NotificationEvent) -> None:
        self._items.append(("notification", notification))

    def publish_ledger_posting(self, session: Session, posting: LedgerPosting) -> None:
        self._items.append(("ledger", posting))

    def forward(self, session: Session) -> None:
        for kind, item in self._items:
            if kind == "ledger":
                self._publisher.publish_ledger_posting(session, item)
            else:
                self._publisher.publish_notification(session, item)
        self._items.clear()

    def discard(self) -> None:
        self._items.clear()


class BatchProcessor:
    """Bulk transitions of payroll entries and runs.

    Contract:
        - ``transition_entries()`` moves entries independently of their runs.
        - ``transition_runs()`` moves runs together with their current entries.
        - Both commit the session once, after the last member.
    """

    def __init__(
        self,
        session: Session,
        publisher: PostCommitPublisher | None = None,
        clock: Clock | None = None,
        config: PayrollConfig | None = None,
    ):
        self._session = session
        self._publisher = publisher or get_default_publisher()
        self._clock = clock or SystemClock()
        self._config = config or PayrollConfig.with_defaults()

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def transition_entries(
        self,
        organization_id: UUID,
        entry_ids: Sequence[UUID],
        target: EntryStatus,
        actor_id: UUID,
        expected_status: EntryStatus | None = None,
    ) -> BatchTransitionResult:
        """Move each entry to ``target``; one SAVEPOINT per entry."""
        require_context(organization_id, actor_id, "transition_entries")
        expected = expected_status or _on_path_source(ENTRY_WORKFLOW, target.value, EntryStatus)

        def _move(lifecycle: LifecycleController, entry_id: UUID) -> tuple[str, str]:
            after = lifecycle.transition_entry(
                organization_id, entry_id, target, actor_id,
                expected_status=expected, nowait=True,
            )
            return (expected.value if expected else "", after.status.value)

        return self._run_batch(ENTRY_ENTITY, organization_id, entry_ids, target.value, actor_id, _move)

    def transition_runs(
        self,
        organization_id: UUID,
        run_ids: Sequence[UUID],
        target: RunStatus,
        actor_id: UUID,
        expected_status: RunStatus | None = None,
    ) -> BatchTransitionResult:
        """Move each run (and its current entries) to ``target``; one SAVEPOINT per run."""
        require_context(organization_id, actor_id, "transition_runs")
        expected = expected_status or _on_path_source(RUN_WORKFLOW, target.value, RunStatus)

        def _move(lifecycle: LifecycleController, run_id: UUID) -> tuple[str, str]:
            after = lifecycle.transition_run(
                organization_id, run_id, target, actor_id,
                expected_status=expected, nowait=True,
            )
            return (expected.value if expected else "", after.status.value)

        return self._run_batch(RUN_ENTITY, organization_id, run_ids, target.value, actor_id, _move)

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def _run_batch(
        self,
        entity_type: str,
        organization_id: UUID,
        member_ids: Sequence[UUID],
        target: str,
        actor_id: UUID,
        move: Callable[[LifecycleController, UUID], tuple[str, str]],
    ) -> BatchTransitionResult:
        started_at = self._clock.now()
        batch_start = time.monotonic()
        unique_ids = list(dict.fromkeys(member_ids))
        seen: set[UUID] = set()
        duplicates: list[UUID] = []
        for member_id in member_ids:
            if member_id in seen and member_id not in duplicates:
                duplicates.append(member_id)
            seen.add(member_id)

        logger.info(
            "batch_transition_started",
            extra={
                "entity_type": entity_type,
                "organization_id": str(organization_id),
                "target_status": target,
                "member_count": len(unique_ids),
                "duplicate_count": len(duplicates),
                "actor_id": str(actor_id),
            },
        )

        members: list[BatchMemberResult] = []
        try:
            with LogContext.bind(organization_id=str(organization_id), actor_id=str(actor_id)):
                for member_id in unique_ids:
                    members.append(self._run_member(entity_type, member_id, move))
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        completed_at = self._clock.now()
        result = BatchTransitionResult(
            entity_type=entity_type,
            target_status=target,
            members=tuple(members),
            started_at=started_at,
            completed_at=completed_at,
            duration_ms=int((time.monotonic() - batch_start) * 1000),
            duplicate_ids=tuple(duplicates),
        )
        logger.info(
            "batch_transition_completed",
            extra={
                "entity_type": entity_type,
                "organization_id": str(organization_id),
                "target_status": target,
                "succeeded": result.succeeded,
                "failed": result.failed,
                "duration_ms": result.duration_ms,
            },
        )
        return result

    def _run_member(
        self,
        entity_type: str,
        member_id: UUID,
        move: Callable[[LifecycleController, UUID], tuple[str, str]],
    ) -> BatchMemberResult:
        member_start = time.monotonic()
        buffer = _MemberBuffer(self._publisher)
        lifecycle = LifecycleController(self._session, buffer, self._clock, self._config)

        savepoint = self._session.begin_nested()
        try:
            from_status, to_status = move(lifecycle, member_id)
            savepoint.commit()
        except PayrollKernelError as exc:
            savepoint.rollback()
            buffer.discard()
            logger.info(
                "batch_member_failed",
                extra={
                    "entity_type": entity_type,
                    "member_id": str(member_id),
                    "error_code": exc.code,
                },
            )
            return BatchMemberResult(
                member_id=member_id,
                status=BatchMemberStatus.FAILED,
                error_code=exc.code,
                error_message=str(exc),
                duration_ms=int((time.monotonic() - member_start) * 1000),
            )
        except Exception as exc:
            savepoint.rollback()
            buffer.discard()
            logger.error(
                "batch_member_failed",
                extra={
                    "entity_type": entity_type,
                    "member_id": str(member_id),
                    "error_code": "UNHANDLED_EXCEPTION",
                },
                exc_info=True,
            )
            return BatchMemberResult(
                member_id=member_id,
                status=BatchMemberStatus.FAILED,
                error_code="UNHANDLED_EXCEPTION",
                error_message=str(exc),
                duration_ms=int((time.monotonic() - member_start) * 1000),
            )

        buffer.forward(self._session)
        return BatchMemberResult(
            member_id=member_id,
            status=BatchMemberStatus.SUCCEEDED,
            from_status=from_status or None,
            to_status=to_status,
            duration_ms=int((time.monotonic() - member_start) * 1000),
        )


def _on_path_source(workflow: Workflow, target: str, status_enum: type) -> Any:
    source = workflow.default_source(target)
    return status_enum(source) if source is not None else None
