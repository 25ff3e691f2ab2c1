"""
Payslip Dispute Service (``payroll_modules.disputes.service``).

Responsibility
--------------
Raises disputes against locked payroll entries and records the decision of
each review stage.  Finance approval applies the correction through
``LifecycleController.apply_correction`` in the same commit as the
approval, so a dispute is never ``approved`` without its correction entry
and a correction never exists without its approved dispute.

Invariants enforced
-------------------
* Only a locked, current (not yet revised) entry can be disputed.
* At most one open dispute per entry.
* A decision is a compare-and-set on the dispute status; a decision made
  against a dispute at another stage raises ``DisputeStageError``.
* Every decision publishes a notification after commit carrying the
  dispute id, decision, reviewer and notes.

Failure modes
-------------
* Unknown dispute -> ``DisputeNotFoundError``.
* Wrong stage -> ``DisputeStageError``; unknown action ->
  ``InvalidTransitionError``.
* Correction invalid -> the approval is rolled back with the correction.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.exceptions import (
    DisputeAlreadyOpenError,
    DisputeStageError,
    EntryAlreadyRevisedError,
    EntryNotDisputableError,
    EntryNotFoundError,
    InvalidTransitionError,
)
from payroll_kernel.logging_config import get_logger
from payroll_modules._validation import require_context
from payroll_modules.disputes.models import (
    DisputeCategory,
    DisputeStatus,
    PayslipDispute,
    ReviewStage,
)
from payroll_modules.disputes.orm import PayslipDisputeModel
from payroll_modules.disputes.selectors import DisputeSelector
from payroll_modules.disputes.workflows import CORRECTION_PROVIDED, DISPUTE_WORKFLOW
from payroll_modules.employees.selectors import EmployeeSelector
from payroll_modules.payroll.config import PayrollConfig
from payroll_modules.payroll.lifecycle import LifecycleController
from payroll_modules.payroll.models import CorrectionRequest, EntryStatus
from payroll_modules.payroll.orm import PayrollEntryModel, PayrollRunModel
from payroll_modules.payroll.selectors import PayrollRunSelector
from payroll_services.collaborators import NotificationEvent
from payroll_services.publisher import PostCommitPublisher, get_default_publisher

logger = get_logger("modules.disputes.service")

DISPUTE_ENTITY = "payslip_dispute"

_PENDING_STATUS = {
    ReviewStage.FIRST_LINE: DisputeStatus.PENDING_FIRST_LINE,
    ReviewStage.PEOPLE_OPS: DisputeStatus.PENDING_PEOPLE_OPS,
    ReviewStage.FINANCE: DisputeStatus.PENDING_FINANCE,
}

_DEFAULT_RESOLUTION = {
    (ReviewStage.FIRST_LINE, "reject"): "Rejected by first-line reviewer",
    (ReviewStage.PEOPLE_OPS, "reject"): "Rejected by people operations",
    (ReviewStage.FINANCE, "reject"): "Rejected by finance",
    (ReviewStage.FINANCE, "approve"): "Approved by finance; correction entry issued",
}


class DisputeService:
    """
    Dispute intake and the three-stage review chain.

    Transaction boundary: each public method commits on success and rolls
    back on any exception.
    """

    def __init__(
        self,
        session: Session,
        publisher: PostCommitPublisher | None = None,
        clock: Clock | None = None,
        config: PayrollConfig | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._publisher = publisher or get_default_publisher()
        self._lifecycle = LifecycleController(
            session, self._publisher, clock=self._clock,
            config=config or PayrollConfig.with_defaults(),
        )
        self._disputes = DisputeSelector(session)

    # =========================================================================
    # Intake
    # =========================================================================

    def raise_dispute(
        self,
        organization_id: UUID,
        entry_id: UUID,
        category: DisputeCategory,
        description: str,
        actor_id: UUID,
    ) -> PayslipDispute:
        """
        Open a dispute against a locked entry.

        Raises:
            EntryNotFoundError, EntryNotDisputableError,
            EntryAlreadyRevisedError, DisputeAlreadyOpenError,
            ValueError (empty description).
        """
        require_context(organization_id, actor_id, "raise_dispute")
        if not description or not description.strip():
            raise ValueError("Dispute description is required")

        try:
            entry = self._session.execute(
                select(PayrollEntryModel)
                .where(
                    PayrollEntryModel.organization_id == organization_id,
                    PayrollEntryModel.id == entry_id,
                )
                .with_for_update()
            ).scalar_one_or_none()
            if entry is None:
                raise EntryNotFoundError(str(entry_id))
            if entry.status != EntryStatus.LOCKED.value:
                raise EntryNotDisputableError(str(entry_id), entry.status)
            revision = PayrollRunSelector(self._session).revision_of(organization_id, entry_id)
            if revision is not None:
                raise EntryAlreadyRevisedError(str(entry_id), str(revision.id))
            existing = self._disputes.open_for_entry(organization_id, entry_id)
            if existing is not None:
                raise DisputeAlreadyOpenError(str(entry_id), str(existing.id))

            run = self._session.get(PayrollRunModel, entry.run_id)
            model = PayslipDisputeModel(
                organization_id=organization_id,
                entry_id=entry_id,
                run_id=entry.run_id,
                employee_id=entry.employee_id,
                pay_period=run.pay_period,
                category=category.value,
                description=description.strip(),
                status=DisputeStatus.PENDING_FIRST_LINE.value,
                raised_by=actor_id,
                version=1,
                created_by_id=actor_id,
            )
            self._session.add(model)
            self._session.flush()
            dispute = model.to_dto()

            profile = EmployeeSelector(self._session).get(organization_id, entry.employee_id)
            self._notify(
                dispute,
                decision="raised",
                actor_id=actor_id,
                notes=None,
                extra={
                    "category": category.value,
                    "first_line_reviewer_id": (
                        str(profile.manager_id) if profile and profile.manager_id else None
                    ),
                },
            )
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        logger.info(
            "dispute_raised",
            extra={
                "organization_id": str(organization_id),
                "dispute_id": str(dispute.id),
                "entry_id": str(entry_id),
                "category": category.value,
                "actor_id": str(actor_id),
            },
        )
        return dispute

    # =========================================================================
    # Review stages
    # =========================================================================

    def review_first_line(
        self,
        organization_id: UUID,
        dispute_id: UUID,
        action: str,
        reviewer_id: UUID,
        notes: str | None = None,
    ) -> PayslipDispute:
        """``forward`` to people operations or ``reject``."""
        return self._decide(
            organization_id, dispute_id, ReviewStage.FIRST_LINE, action, reviewer_id, notes,
        )

    def review_people_ops(
        self,
        organization_id: UUID,
        dispute_id: UUID,
        action: str,
        reviewer_id: UUID,
        notes: str | None = None,
    ) -> PayslipDispute:
        """``forward`` to finance or ``reject``."""
        return self._decide(
            organization_id, dispute_id, ReviewStage.PEOPLE_OPS, action, reviewer_id, notes,
        )

    def review_finance(
        self,
        organization_id: UUID,
        dispute_id: UUID,
        action: str,
        reviewer_id: UUID,
        notes: str | None = None,
        correction: CorrectionRequest | None = None,
    ) -> PayslipDispute:
        """``approve`` (with a correction) or ``reject``.

        Approval supersedes the disputed entry with a corrected one in the
        same commit.
        """
        return self._decide(
            organization_id, dispute_id, ReviewStage.FINANCE, action, reviewer_id, notes,
            correction=correction,
        )

    def _decide(
        self,
        organization_id: UUID,
        dispute_id: UUID,
        stage: ReviewStage,
        action: str,
        reviewer_id: UUID,
        notes: str | None,
        correction: CorrectionRequest | None = None,
    ) -> PayslipDispute:
        require_context(organization_id, reviewer_id, f"dispute_{stage.value}_{action}")
        expected = _PENDING_STATUS[stage]

        try:
            current = self._disputes.get(organization_id, dispute_id)
            if current.status != expected:
                raise DisputeStageError(str(dispute_id), expected.value, current.status.value)
            transition = DISPUTE_WORKFLOW.find_action(expected.value, action)
            if transition is None:
                raise InvalidTransitionError(DISPUTE_ENTITY, str(dispute_id), expected.value, action)
            if transition.guard is CORRECTION_PROVIDED and correction is None:
                raise ValueError("Finance approval requires a correction request")

            now = self._clock.now()
            prefix = stage.value
            values = {
                "status": transition.to_state,
                f"{prefix}_reviewer_id": reviewer_id,
                f"{prefix}_reviewed_at": now,
                f"{prefix}_notes": notes,
                "version": PayslipDisputeModel.version + 1,
                "updated_by_id": reviewer_id,
            }
            resolved = DISPUTE_WORKFLOW.is_terminal(transition.to_state)
            if resolved:
                values["resolved_at"] = now
                values["resolution_notes"] = notes or _DEFAULT_RESOLUTION[(stage, action)]

            result = self._session.execute(
                update(PayslipDisputeModel)
                .where(
                    PayslipDisputeModel.id == dispute_id,
                    PayslipDisputeModel.organization_id == organization_id,
                    PayslipDisputeModel.status == expected.value,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                actual = self._disputes.get(organization_id, dispute_id).status.value
                raise DisputeStageError(str(dispute_id), expected.value, actual)

            if transition.guard is CORRECTION_PROVIDED:
                revision = self._lifecycle.apply_correction(
                    organization_id,
                    current.entry_id,
                    correction,
                    reviewer_id,
                    dispute_id=dispute_id,
                )
                self._session.execute(
                    update(PayslipDisputeModel)
                    .where(PayslipDisputeModel.id == dispute_id)
                    .values(revised_entry_id=revision.id)
                    .execution_options(synchronize_session=False)
                )

            self._session.flush()
            self._session.expire_all()
            dispute = self._disputes.get(organization_id, dispute_id)
            self._notify(
                dispute,
                decision=transition.action,
                actor_id=reviewer_id,
                notes=notes,
                extra={"stage": stage.value, "to_status": transition.to_state},
            )
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        logger.info(
            "dispute_decided",
            extra={
                "organization_id": str(organization_id),
                "dispute_id": str(dispute_id),
                "stage": stage.value,
                "decision": transition.action,
                "to_status": transition.to_state,
                "reviewer_id": str(reviewer_id),
                "revised_entry_id": (
                    str(dispute.revised_entry_id) if dispute.revised_entry_id else None
                ),
            },
        )
        return dispute

    # =========================================================================
    # Helpers
    # =========================================================================

    def _notify(
        self,
        dispute: PayslipDispute,
        decision: str,
        actor_id: UUID,
        notes: str | None,
        extra: dict,
    ) -> None:
        payload = {
            "dispute_id": str(dispute.id),
            "entry_id": str(dispute.entry_id),
            "employee_id": str(dispute.employee_id),
            "pay_period": dispute.pay_period,
            "status": dispute.status.value,
            "reviewer_id": str(actor_id),
            "notes": notes,
        }
        payload.update(extra)
        self._publisher.publish_notification(
            self._session,
            NotificationEvent(
                event_type=f"payroll.dispute.{decision}",
                organization_id=dispute.organization_id,
                entity_type=DISPUTE_ENTITY,
                entity_id=dispute.id,
                decision=decision,
                actor_id=actor_id,
                occurred_at=self._clock.now(),
                payload=payload,
            ),
        )
