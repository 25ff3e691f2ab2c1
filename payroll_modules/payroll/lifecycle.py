"""
LifecycleController -- status transitions for runs and entries, and the
single-entry correction path.

Contract:
    Flush-only (``BaseService``).  The caller owns the transaction: module
    services commit around one call, ``BatchProcessor`` wraps each member in
    a SAVEPOINT.  Collaborator calls are queued on the publisher and only
    leave the process after the outer commit.

Architecture: payroll_modules/payroll.  Imports kernel, services and the
    payroll module's own selectors/orm.

Invariants enforced:
    - Every status change is a compare-and-set:
      ``UPDATE ... WHERE id = :id AND status = :expected``.  Zero rows
      updated means somebody else moved the row first and is reported as
      ``AlreadyProcessedError``; it is never retried silently.
    - A run transition moves the run's current entries from the matching
      entry status to the target with one set-based compare-and-set.
    - Locking requires every current entry to be approved (or already
      locked individually) and publishes exactly one ledger posting after
      commit.
    - A locked entry is never updated, and no entry of a locked run changes
      status.  ``apply_correction`` inserts a new entry that revises it; the
      revision is born ``locked`` when its run is locked.
      ``revises_entry_id`` is UNIQUE so two concurrent corrections cannot
      both land.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, selectinload

from payroll_kernel.db.engine import is_lock_unavailable
from payroll_kernel.db.types import ZERO
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.periods import PayPeriod
from payroll_kernel.domain.workflow import Transition, Workflow
from payroll_kernel.exceptions import (
    AlreadyProcessedError,
    CurrentlyProcessingError,
    EntryAlreadyRevisedError,
    EntryLockedError,
    EntryNotDisputableError,
    EntryNotFoundError,
    InvalidTransitionError,
    RunNotFoundError,
)
from payroll_kernel.logging_config import get_logger
from payroll_kernel.services.base import BaseService
from payroll_modules.compensation.selectors import CompensationResolver
from payroll_modules.payroll.calculation import compute_entry
from payroll_modules.payroll.config import PayrollConfig
from payroll_modules.payroll.inputs import PayrollInputAssembler
from payroll_modules.payroll.models import (
    CorrectionRequest,
    EntryStatus,
    PayrollEntry,
    PayrollRun,
    RunStatus,
    RunTotals,
)
from payroll_modules.payroll.orm import PayrollEntryModel, PayrollRunModel, is_current_entry
from payroll_modules.payroll.selectors import PayrollRunSelector
from payroll_modules.payroll.workflows import (
    ALL_ENTRIES_APPROVED,
    ENTRY_WORKFLOW,
    RUN_WORKFLOW,
    entry_status_for_run,
)
from payroll_services.collaborators import LedgerLine, LedgerPosting, NotificationEvent
from payroll_services.publisher import PostCommitPublisher

logger = get_logger("modules.payroll.lifecycle")

RUN_ENTITY = "payroll_run"
ENTRY_ENTITY = "payroll_entry"

_LOCKABLE_ENTRY_STATES = (EntryStatus.APPROVED.value, EntryStatus.LOCKED.value)

# (role, normal side, amount field); gross == tax + base deductions + net
_LEDGER_LINES = (
    ("salary_expense", "debit", "gross_earnings"),
    ("tax_payable", "credit", "tax_withheld"),
    ("deductions_payable", "credit", "base_deductions"),
    ("salaries_payable", "credit", "net_pay"),
)


def store_run_totals(run: PayrollRunModel, totals: RunTotals, actor_id: UUID) -> None:
    """Copy recomputed totals onto the run row and bump its version."""
    run.total_gross = totals.gross_earnings
    run.total_base_deductions = totals.base_deductions
    run.total_tax = totals.tax_withheld
    run.total_deductions = totals.total_deductions
    run.total_net = totals.net_pay
    run.employee_count = totals.employee_count
    run.version = run.version + 1
    run.updated_by_id = actor_id


def resolve_transition(
    workflow: Workflow,
    entity_type: str,
    entity_id: UUID,
    current: str,
    target: str,
    expected: str | None = None,
) -> Transition:
    """The transition from ``current`` to ``target``, or the reason there is none.

    ``expected`` is the status the caller believes the member is in.  When
    omitted, the member's actual status is used.

    Raises:
        AlreadyProcessedError: the member is at the target or has moved past
            the status the caller expected.
        InvalidTransitionError: the workflow has no such transition.
    """
    if expected is not None and current != expected:
        if current == target or workflow.has_moved_past(expected, current):
            raise AlreadyProcessedError(entity_type, str(entity_id), current)
        raise InvalidTransitionError(entity_type, str(entity_id), current, target)

    transition = workflow.find_transition(current, target)
    if transition is not None:
        return transition
    if current == target:
        raise AlreadyProcessedError(entity_type, str(entity_id), current)
    source = workflow.default_source(target)
    if source is not None and workflow.has_moved_past(source, current):
        raise AlreadyProcessedError(entity_type, str(entity_id), current)
    raise InvalidTransitionError(entity_type, str(entity_id), current, target)


class LifecycleController(BaseService[PayrollRunModel]):
    """Run and entry state machine driver."""

    def __init__(
        self,
        session: Session,
        publisher: PostCommitPublisher,
        clock: Clock | None = None,
        config: PayrollConfig | None = None,
    ):
        super().__init__(session)
        self._publisher = publisher
        self._clock = clock or SystemClock()
        self._config = config or PayrollConfig.with_defaults()

    # -------------------------------------------------------------------------
    # Row loading
    # -------------------------------------------------------------------------

    def _load_run(self, organization_id: UUID, run_id: UUID, nowait: bool) -> PayrollRunModel:
        stmt = select(PayrollRunModel).where(
            PayrollRunModel.organization_id == organization_id,
            PayrollRunModel.id == run_id,
        )
        if nowait:
            stmt = stmt.with_for_update(nowait=True)
        try:
            model = self.session.execute(stmt).scalar_one_or_none()
        except OperationalError as exc:
            if is_lock_unavailable(exc):
                raise CurrentlyProcessingError(RUN_ENTITY, str(run_id)) from exc
            raise
        if model is None:
            raise RunNotFoundError(str(run_id))
        return model

    def _load_entry(
        self, organization_id: UUID, entry_id: UUID, nowait: bool,
    ) -> PayrollEntryModel:
        stmt = (
            select(PayrollEntryModel)
            .options(selectinload(PayrollEntryModel.lines))
            .where(
                PayrollEntryModel.organization_id == organization_id,
                PayrollEntryModel.id == entry_id,
            )
        )
        if nowait:
            stmt = stmt.with_for_update(nowait=True)
        try:
            model = self.session.execute(stmt).scalar_one_or_none()
        except OperationalError as exc:
            if is_lock_unavailable(exc):
                raise CurrentlyProcessingError(ENTRY_ENTITY, str(entry_id)) from exc
            raise
        if model is None:
            raise EntryNotFoundError(str(entry_id))
        return model

    # -------------------------------------------------------------------------
    # Run transitions
    # -------------------------------------------------------------------------

    def transition_run(
        self,
        organization_id: UUID,
        run_id: UUID,
        target: RunStatus,
        actor_id: UUID,
        expected_status: RunStatus | None = None,
        nowait: bool = False,
    ) -> PayrollRun:
        """
        Move a run (and its current entries) to ``target``.

        Raises:
            RunNotFoundError, InvalidTransitionError, AlreadyProcessedError,
            CurrentlyProcessingError (``nowait`` only).
        """
        run = self._load_run(organization_id, run_id, nowait)
        current = run.status
        transition = resolve_transition(
            RUN_WORKFLOW,
            RUN_ENTITY,
            run_id,
            current,
            target.value,
            expected_status.value if expected_status is not None else None,
        )
        now = self._clock.now()

        values: dict = {
            "status": target.value,
            "version": PayrollRunModel.version + 1,
            "updated_by_id": actor_id,
        }
        if target == RunStatus.LOCKED:
            values["locked_at"] = now
            values["locked_by"] = actor_id
        result = self.session.execute(
            update(PayrollRunModel)
            .where(
                PayrollRunModel.id == run_id,
                PayrollRunModel.organization_id == organization_id,
                PayrollRunModel.status == current,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise AlreadyProcessedError(RUN_ENTITY, str(run_id), current)

        if transition.guard is ALL_ENTRIES_APPROVED:
            self._check_all_entries_approved(organization_id, run_id, current, target.value)

        moved = self._move_entries(organization_id, run_id, target.value, actor_id)
        self.session.flush()
        self.session.expire_all()

        totals = PayrollRunSelector(self.session).run_totals(organization_id, run_id)
        if transition.posts_to_ledger:
            self._post_run_lock(organization_id, run, totals, actor_id)

        logger.info(
            "run_transitioned",
            extra={
                "organization_id": str(organization_id),
                "run_id": str(run_id),
                "from_status": current,
                "to_status": target.value,
                "action": transition.action,
                "entries_moved": moved,
                "actor_id": str(actor_id),
            },
        )
        self._notify(
            event_type=f"payroll.run.{target.value}",
            organization_id=organization_id,
            entity_type=RUN_ENTITY,
            entity_id=run_id,
            decision=transition.action,
            actor_id=actor_id,
            payload={
                "pay_period": run.pay_period,
                "from_status": current,
                "to_status": target.value,
                "entries_moved": moved,
                "net_pay": str(totals.net_pay),
            },
        )
        return PayrollRunSelector(self.session).get_run(organization_id, run_id)

    def _check_all_entries_approved(
        self, organization_id: UUID, run_id: UUID, current: str, target: str,
    ) -> None:
        # Entries locked one by one (BatchProcessor) do not block the run lock.
        blocking = self.session.execute(
            select(PayrollEntryModel.id, PayrollEntryModel.status).where(
                PayrollEntryModel.organization_id == organization_id,
                PayrollEntryModel.run_id == run_id,
                PayrollEntryModel.status.not_in(_LOCKABLE_ENTRY_STATES),
                is_current_entry(),
            )
        ).all()
        if blocking:
            logger.warning(
                "run_lock_blocked",
                extra={
                    "run_id": str(run_id),
                    "blocking_entries": [str(entry_id) for entry_id, _ in blocking],
                },
            )
            raise InvalidTransitionError(RUN_ENTITY, str(run_id), current, target)

    def _move_entries(
        self, organization_id: UUID, run_id: UUID, run_target: str, actor_id: UUID,
    ) -> int:
        """Set-based compare-and-set of the run's current entries."""
        entry_target = entry_status_for_run(run_target)
        if entry_target is None:
            return 0
        sources = ENTRY_WORKFLOW.sources_of(entry_target)
        if not sources:
            return 0
        ids = self.session.execute(
            select(PayrollEntryModel.id).where(
                PayrollEntryModel.organization_id == organization_id,
                PayrollEntryModel.run_id == run_id,
                PayrollEntryModel.status.in_(sources),
                is_current_entry(),
            )
        ).scalars().all()
        if not ids:
            return 0
        result = self.session.execute(
            update(PayrollEntryModel)
            .where(
                PayrollEntryModel.id.in_(ids),
                PayrollEntryModel.status.in_(sources),
            )
            .values(
                status=entry_target,
                version=PayrollEntryModel.version + 1,
                updated_by_id=actor_id,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    # -------------------------------------------------------------------------
    # Entry transitions
    # -------------------------------------------------------------------------

    def transition_entry(
        self,
        organization_id: UUID,
        entry_id: UUID,
        target: EntryStatus,
        actor_id: UUID,
        expected_status: EntryStatus | None = None,
        nowait: bool = False,
    ) -> PayrollEntry:
        """
        Move one entry to ``target`` independently of its run.

        Raises:
            EntryNotFoundError, InvalidTransitionError, AlreadyProcessedError,
            CurrentlyProcessingError (``nowait`` only).
            EntryLockedError: the entry's run is locked.
        """
        entry = self._load_entry(organization_id, entry_id, nowait)
        current = entry.status
        self.ensure_run_unlocked(organization_id, entry)
        transition = resolve_transition(
            ENTRY_WORKFLOW,
            ENTRY_ENTITY,
            entry_id,
            current,
            target.value,
            expected_status.value if expected_status is not None else None,
        )
        result = self.session.execute(
            update(PayrollEntryModel)
            .where(
                PayrollEntryModel.id == entry_id,
                PayrollEntryModel.organization_id == organization_id,
                PayrollEntryModel.status == current,
            )
            .values(
                status=target.value,
                version=PayrollEntryModel.version + 1,
                updated_by_id=actor_id,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise AlreadyProcessedError(ENTRY_ENTITY, str(entry_id), current)
        self.session.flush()
        self.session.expire_all()

        logger.info(
            "entry_transitioned",
            extra={
                "organization_id": str(organization_id),
                "entry_id": str(entry_id),
                "run_id": str(entry.run_id),
                "from_status": current,
                "to_status": target.value,
                "actor_id": str(actor_id),
            },
        )
        self._notify(
            event_type=f"payroll.entry.{target.value}",
            organization_id=organization_id,
            entity_type=ENTRY_ENTITY,
            entity_id=entry_id,
            decision=transition.action,
            actor_id=actor_id,
            payload={
                "run_id": str(entry.run_id),
                "employee_id": str(entry.employee_id),
                "from_status": current,
                "to_status": target.value,
            },
        )
        return PayrollRunSelector(self.session).get_entry(organization_id, entry_id)

    def ensure_run_unlocked(self, organization_id: UUID, entry: PayrollEntryModel) -> None:
        """Entries of a locked run change only through ``apply_correction``."""
        run_status = self.session.execute(
            select(PayrollRunModel.status).where(
                PayrollRunModel.organization_id == organization_id,
                PayrollRunModel.id == entry.run_id,
            )
        ).scalar_one()
        if run_status == RunStatus.LOCKED.value:
            logger.warning(
                "entry_change_refused_run_locked",
                extra={"entry_id": str(entry.id), "run_id": str(entry.run_id)},
            )
            raise EntryLockedError(str(entry.id), f"{entry.status} (run locked)")

    # -------------------------------------------------------------------------
    # Correction
    # -------------------------------------------------------------------------

    def apply_correction(
        self,
        organization_id: UUID,
        entry_id: UUID,
        correction: CorrectionRequest,
        actor_id: UUID,
        dispute_id: UUID | None = None,
    ) -> PayrollEntry:
        """
        Supersede a locked entry with a recomputed one.

        The new entry belongs to the same run and points at the original
        through ``revises_entry_id``.  It is ``locked`` when the run is
        locked and ``approved`` otherwise (the original was locked on its own
        and the run lock will pick the revision up).  Run totals are
        recomputed over current entries and the delta is posted to the
        ledger.

        Raises:
            EntryNotFoundError: unknown entry.
            EntryNotDisputableError: the entry is not locked.
            EntryAlreadyRevisedError: a correction already supersedes it.
            ComputationAnomaly, ValueError: the corrected figures are invalid.
        """
        original = self._load_entry(organization_id, entry_id, nowait=False)
        if original.status != EntryStatus.LOCKED.value:
            raise EntryNotDisputableError(str(entry_id), original.status)
        selector = PayrollRunSelector(self.session)
        existing = selector.revision_of(organization_id, entry_id)
        if existing is not None:
            raise EntryAlreadyRevisedError(str(entry_id), str(existing.id))

        run = self._load_run(organization_id, original.run_id, nowait=False)
        period = PayPeriod.parse(run.pay_period)
        structure = CompensationResolver(self.session).get_structure(
            organization_id, original.structure_id,
        )
        inputs = PayrollInputAssembler(self.session, self._config).read(
            organization_id, period, [original.employee_id],
        )
        computed = compute_entry(
            inputs.entry_input(
                original.employee_id,
                structure=structure,
                absence_days=(
                    correction.lwp_days if correction.lwp_days is not None
                    else original.lwp_days
                ),
                component_overrides=dict(correction.component_overrides),
                tax_override=correction.tax_override,
            )
        )

        revision_status = (
            EntryStatus.LOCKED if run.status == RunStatus.LOCKED.value else EntryStatus.APPROVED
        )
        revision = PayrollEntryModel.from_computed(
            computed,
            organization_id=organization_id,
            run_id=original.run_id,
            status=revision_status.value,
            created_by_id=actor_id,
            revises_entry_id=original.id,
        )
        try:
            with self.session.begin_nested():
                self.session.add(revision)
                self.session.flush()
        except IntegrityError as exc:
            winner = selector.revision_of(organization_id, entry_id)
            raise EntryAlreadyRevisedError(
                str(entry_id), str(winner.id) if winner is not None else "unknown",
            ) from exc

        before = original.to_dto()
        totals = selector.run_totals(organization_id, run.id)
        store_run_totals(run, totals, actor_id)
        self.session.flush()
        after = revision.to_dto()

        self._post_correction(organization_id, run, before, after, actor_id)

        logger.info(
            "entry_corrected",
            extra={
                "organization_id": str(organization_id),
                "run_id": str(run.id),
                "original_entry_id": str(entry_id),
                "revision_entry_id": str(after.id),
                "dispute_id": str(dispute_id) if dispute_id else None,
                "net_pay_before": str(before.net_pay),
                "net_pay_after": str(after.net_pay),
                "reason": correction.reason,
            },
        )
        self._notify(
            event_type="payroll.entry.corrected",
            organization_id=organization_id,
            entity_type=ENTRY_ENTITY,
            entity_id=after.id,
            decision="corrected",
            actor_id=actor_id,
            payload={
                "run_id": str(run.id),
                "revises_entry_id": str(entry_id),
                "dispute_id": str(dispute_id) if dispute_id else None,
                "reason": correction.reason,
                "net_pay_before": str(before.net_pay),
                "net_pay_after": str(after.net_pay),
            },
        )
        return after

    # -------------------------------------------------------------------------
    # Collaborators
    # -------------------------------------------------------------------------

    def _ledger_lines(self, amounts: dict[str, Decimal], memo: str) -> tuple[LedgerLine, ...]:
        """One line per role; a negative amount flips the line to the other side."""
        roles = self._config.ledger_account_roles
        lines = []
        for role, side, field_name in _LEDGER_LINES:
            amount = amounts[field_name]
            if amount == ZERO:
                continue
            if amount < ZERO:
                side = "credit" if side == "debit" else "debit"
                amount = -amount
            lines.append(LedgerLine(account_role=roles[role], memo=memo, **{side: amount}))
        return tuple(lines)

    def _post_run_lock(
        self,
        organization_id: UUID,
        run: PayrollRunModel,
        totals: RunTotals,
        actor_id: UUID,
    ) -> None:
        lines = self._ledger_lines(
            {
                "gross_earnings": totals.gross_earnings,
                "tax_withheld": totals.tax_withheld,
                "base_deductions": totals.base_deductions,
                "net_pay": totals.net_pay,
            },
            memo=f"Payroll {run.pay_period}",
        )
        if not lines:
            logger.info("run_lock_posting_skipped", extra={"run_id": str(run.id)})
            return
        self._publisher.publish_ledger_posting(
            self.session,
            LedgerPosting(
                organization_id=organization_id,
                run_id=run.id,
                pay_period=run.pay_period,
                posting_type="run_lock",
                lines=lines,
                actor_id=actor_id,
                currency=self._config.currency,
            ),
        )

    def _post_correction(
        self,
        organization_id: UUID,
        run: PayrollRunModel,
        before: PayrollEntry,
        after: PayrollEntry,
        actor_id: UUID,
    ) -> None:
        lines = self._ledger_lines(
            {
                "gross_earnings": after.gross_earnings - before.gross_earnings,
                "tax_withheld": after.tax_withheld - before.tax_withheld,
                "base_deductions": after.base_deductions - before.base_deductions,
                "net_pay": after.net_pay - before.net_pay,
            },
            memo=f"Payroll correction {run.pay_period}",
        )
        if not lines:
            logger.info("correction_posting_skipped", extra={"entry_id": str(after.id)})
            return
        self._publisher.publish_ledger_posting(
            self.session,
            LedgerPosting(
                organization_id=organization_id,
                run_id=run.id,
                pay_period=run.pay_period,
                posting_type="correction_adjustment",
                lines=lines,
                actor_id=actor_id,
                currency=self._config.currency,
                entry_id=after.id,
            ),
        )

    def _notify(
        self,
        event_type: str,
        organization_id: UUID,
        entity_type: str,
        entity_id: UUID,
        decision: str,
        actor_id: UUID,
        payload: dict,
    ) -> None:
        self._publisher.publish_notification(
            self.session,
            NotificationEvent(
                event_type=event_type,
                organization_id=organization_id,
                entity_type=entity_type,
                entity_id=entity_id,
                decision=decision,
                actor_id=actor_id,
                occurred_at=self._clock.now(),
                payload=payload,
            ),
        )
