"""
Payroll Run Service (``payroll_modules.payroll.service``).

Responsibility
--------------
Generates payroll runs for an organization and period, adjusts absence
days on editable entries, deletes runs that have not been approved, and
exposes the run lifecycle (submit, approve, reject, resubmit, lock) as
committed operations.  Pure computation is delegated to
``payroll_modules.payroll.calculation``; status changes to
``LifecycleController``.

Architecture position
---------------------
**Modules layer** -- ``PayrollRunService`` is the public entry point for
run-level operations.  It composes ``PayrollInputAssembler`` (bulk reads),
``compute_entry`` (pure, run in a thread pool) and ``LifecycleController``
(flush-only).

Invariants enforced
-------------------
* Each public method owns the transaction boundary
  (``commit`` on success, ``rollback`` on failure or exception).
* Generation is two-phase.  Phase 1 commits the run in ``processing``;
  the ``(organization_id, pay_period)`` unique constraint makes a second
  request fail with ``DuplicateRunError``.  Phase 2 persists every entry
  and the exact-sum totals in ONE commit, or the run ends ``failed`` with
  the reason recorded and ``PartialPersistenceError`` is raised.
* A ``ComputationAnomaly`` (or a missing tax regime) excludes that employee
  only; it is recorded on the run and never aborts the run.
* Worker threads never touch the session: all inputs are read before the
  pool starts and all writes happen after it finishes.

Failure modes
-------------
* Duplicate period -> ``DuplicateRunError`` carrying the existing run id.
* Malformed request -> ``PayrollValidationError`` before any write.
* Persistence failure in phase 2 -> run ``failed``; ``PartialPersistenceError``.
* Read or compute failure in phase 2 -> run ``failed``; the original error.
* Collaborator failures -> logged by the publisher, never raised here.

Usage::

    service = PayrollRunService(session, publisher=publisher, clock=clock)
    run = service.generate_run(org_id, "2024-06", actor_id=actor_id)
    service.submit_run(org_id, run.id, actor_id=reviewer_id)
"""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from uuid import UUID, uuid4

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from payroll_kernel.db.types import ZERO
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.periods import PayPeriod
from payroll_kernel.exceptions import (
    ComputationAnomaly,
    DuplicateRunError,
    EntryLockedError,
    EntryNotFoundError,
    PartialPersistenceError,
    RunNotDeletableError,
    RunNotFoundError,
    TaxRegimeNotFoundError,
)
from payroll_kernel.logging_config import LogContext, get_logger
from payroll_modules._validation import require_context
from payroll_modules.compensation.selectors import CompensationResolver
from payroll_modules.payroll.calculation import ComputedEntry, compute_entry
from payroll_modules.payroll.config import PayrollConfig
from payroll_modules.payroll.inputs import PayrollInputAssembler, PeriodInputs
from payroll_modules.payroll.lifecycle import LifecycleController, store_run_totals
from payroll_modules.payroll.models import (
    EntryStatus,
    PayrollEntry,
    PayrollRun,
    RunAnomaly,
    RunStatus,
)
from payroll_modules.payroll.orm import (
    PayrollEntryLineModel,
    PayrollEntryModel,
    PayrollRunModel,
    RunAnomalyModel,
)
from payroll_modules.payroll.selectors import PayrollRunSelector
from payroll_modules.payroll.workflows import EDITABLE_ENTRY_STATES
from payroll_services.collaborators import NotificationEvent
from payroll_services.publisher import PostCommitPublisher, get_default_publisher

logger = get_logger("modules.payroll.service")

_UNDELETABLE = frozenset({RunStatus.APPROVED.value, RunStatus.LOCKED.value})
_UNDELETABLE_ENTRIES = (EntryStatus.APPROVED.value, EntryStatus.LOCKED.value)


def _reason(exc: Exception) -> str:
    return f"{type(exc).__name__}: {exc}"


def _compute_one(
    inputs: PeriodInputs, employee_id: UUID,
) -> tuple[ComputedEntry | None, RunAnomaly | None]:
    """Worker body: pure computation, anomalies turned into values."""
    try:
        return compute_entry(inputs.entry_input(employee_id)), None
    except (ComputationAnomaly, TaxRegimeNotFoundError) as exc:
        return None, RunAnomaly(employee_id=employee_id, code=exc.code, message=str(exc))


class PayrollRunService:
    """
    Run-level payroll operations.

    Contract
    --------
    * Returns frozen DTOs (``PayrollRun``, ``PayrollEntry``), never ORM rows.
    * Notifications and ledger postings are queued on the publisher and
      delivered only after the owning commit.

    Non-goals
    ---------
    * Does NOT render payslips or bank files (see ``export``).
    * Does NOT decide disputes (see ``DisputeService``).
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
        self._config = config or PayrollConfig.with_defaults()
        self._publisher = publisher or get_default_publisher()
        self._lifecycle = LifecycleController(
            session, self._publisher, clock=self._clock, config=self._config,
        )
        self._runs = PayrollRunSelector(session)

    # =========================================================================
    # Generation
    # =========================================================================

    def generate_run(
        self,
        organization_id: UUID,
        pay_period: str,
        actor_id: UUID,
    ) -> PayrollRun:
        """
        Generate the run for ``pay_period`` (``YYYY-MM``).

        Raises:
            MissingOrganizationError, UnauthenticatedActorError,
            MalformedPeriodError: before any write.
            DuplicateRunError: a run already exists for the period.
            PartialPersistenceError: entries could not be persisted; the
                run is left ``failed``.
            Any error raised while reading inputs or computing propagates
            unchanged; the run is left ``failed`` as well.
        """
        require_context(organization_id, actor_id, "generate_run")
        period = PayPeriod.parse(pay_period)
        t0 = time.monotonic()

        run_id = self._create_processing_run(organization_id, period, actor_id)

        with LogContext.bind(organization_id=str(organization_id), run_id=str(run_id)):
            try:
                inputs = PayrollInputAssembler(self._session, self._config).read(
                    organization_id, period,
                )
                computed, anomalies = self._compute_all(inputs)
            except Exception as exc:
                # Nothing was written yet; the caller sees the original error.
                self._session.rollback()
                self._mark_failed(organization_id, run_id, period, actor_id, _reason(exc))
                raise

            try:
                run = self._persist_entries(
                    organization_id, run_id, computed, anomalies, actor_id,
                )
                self._session.commit()
            except Exception as exc:
                self._session.rollback()
                reason = _reason(exc)
                self._mark_failed(organization_id, run_id, period, actor_id, reason)
                raise PartialPersistenceError(str(run_id), reason) from exc

            logger.info(
                "payroll_run_generated",
                extra={
                    "pay_period": period.code,
                    "employee_count": run.employee_count,
                    "anomaly_count": run.anomaly_count,
                    "total_gross": str(run.totals.gross_earnings),
                    "total_net": str(run.totals.net_pay),
                    "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                },
            )
        return run

    def _create_processing_run(
        self, organization_id: UUID, period: PayPeriod, actor_id: UUID,
    ) -> UUID:
        """Phase 1: insert and commit the run row in ``processing``."""
        run_id = uuid4()
        try:
            self._session.add(
                PayrollRunModel(
                    id=run_id,
                    organization_id=organization_id,
                    pay_period=period.code,
                    status=RunStatus.PROCESSING.value,
                    generated_by=actor_id,
                    total_gross=ZERO,
                    total_base_deductions=ZERO,
                    total_tax=ZERO,
                    total_deductions=ZERO,
                    total_net=ZERO,
                    employee_count=0,
                    anomaly_count=0,
                    version=1,
                    created_by_id=actor_id,
                )
            )
            self._session.commit()
        except IntegrityError as exc:
            self._session.rollback()
            existing = self._runs.find_run_for_period(organization_id, period.code)
            logger.warning(
                "payroll_run_duplicate",
                extra={
                    "organization_id": str(organization_id),
                    "pay_period": period.code,
                    "existing_run_id": str(existing.id) if existing else None,
                },
            )
            raise DuplicateRunError(
                str(organization_id),
                period.code,
                str(existing.id) if existing else None,
            ) from exc
        except Exception:
            self._session.rollback()
            raise

        logger.info(
            "payroll_run_started",
            extra={
                "organization_id": str(organization_id),
                "run_id": str(run_id),
                "pay_period": period.code,
                "actor_id": str(actor_id),
            },
        )
        return run_id

    def _compute_all(
        self, inputs: PeriodInputs,
    ) -> tuple[list[ComputedEntry], list[RunAnomaly]]:
        """Compute every employee in a thread pool; order follows employee id."""
        employee_ids = inputs.employee_ids
        if not employee_ids:
            return [], []
        workers = min(self._config.max_workers, len(employee_ids))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="payroll-compute") as pool:
            outcomes = list(pool.map(lambda eid: _compute_one(inputs, eid), employee_ids))

        computed = [entry for entry, _ in outcomes if entry is not None]
        anomalies = [anomaly for _, anomaly in outcomes if anomaly is not None]
        for anomaly in anomalies:
            logger.warning(
                "employee_excluded_from_run",
                extra={
                    "employee_id": str(anomaly.employee_id),
                    "anomaly_code": anomaly.code,
                    "reason": anomaly.message,
                },
            )
        return computed, anomalies

    def _persist_entries(
        self,
        organization_id: UUID,
        run_id: UUID,
        computed: list[ComputedEntry],
        anomalies: list[RunAnomaly],
        actor_id: UUID,
    ) -> PayrollRun:
        """Phase 2 writes: entries, anomalies, totals and ``completed`` (flush only)."""
        run = self._session.get(PayrollRunModel, run_id)
        for entry in computed:
            self._session.add(
                PayrollEntryModel.from_computed(
                    entry,
                    organization_id=organization_id,
                    run_id=run_id,
                    status=EntryStatus.COMPUTED.value,
                    created_by_id=actor_id,
                )
            )
        for anomaly in anomalies:
            self._session.add(
                RunAnomalyModel(
                    organization_id=organization_id,
                    run_id=run_id,
                    employee_id=anomaly.employee_id,
                    code=anomaly.code,
                    message=anomaly.message,
                    created_by_id=actor_id,
                )
            )

        run.total_gross = sum((c.proration.gross_earnings for c in computed), ZERO)
        run.total_base_deductions = sum((c.proration.base_deductions for c in computed), ZERO)
        run.total_tax = sum((c.tax_withheld for c in computed), ZERO)
        run.total_deductions = sum((c.total_deductions for c in computed), ZERO)
        run.total_net = sum((c.net_pay for c in computed), ZERO)
        run.employee_count = len(computed)
        run.anomaly_count = len(anomalies)
        run.status = RunStatus.COMPLETED.value
        run.version = run.version + 1
        run.updated_by_id = actor_id
        self._session.flush()

        self._notify(
            "payroll.run.generated",
            organization_id,
            "payroll_run",
            run_id,
            decision="complete",
            actor_id=actor_id,
            payload={
                "pay_period": run.pay_period,
                "employee_count": run.employee_count,
                "anomaly_count": run.anomaly_count,
                "total_net": str(run.total_net),
            },
        )
        self._session.refresh(run)
        return run.to_dto()

    def _mark_failed(
        self,
        organization_id: UUID,
        run_id: UUID,
        period: PayPeriod,
        actor_id: UUID,
        reason: str,
    ) -> None:
        try:
            self._session.execute(
                update(PayrollRunModel)
                .where(
                    PayrollRunModel.id == run_id,
                    PayrollRunModel.status == RunStatus.PROCESSING.value,
                )
                .values(
                    status=RunStatus.FAILED.value,
                    failure_reason=reason[:2000],
                    version=PayrollRunModel.version + 1,
                    updated_by_id=actor_id,
                )
                .execution_options(synchronize_session=False)
            )
            self._notify(
                "payroll.run.failed",
                organization_id,
                "payroll_run",
                run_id,
                decision="fail",
                actor_id=actor_id,
                payload={"pay_period": period.code, "reason": reason},
            )
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise
        logger.error(
            "payroll_run_failed",
            extra={
                "organization_id": str(organization_id),
                "run_id": str(run_id),
                "pay_period": period.code,
                "reason": reason,
            },
        )

    # =========================================================================
    # Entry adjustment
    # =========================================================================

    def adjust_lwp_days(
        self,
        organization_id: UUID,
        entry_id: UUID,
        lwp_days: int,
        actor_id: UUID,
    ) -> PayrollEntry:
        """
        Override an entry's unpaid absence days and recompute it.

        Allowed only while the entry is ``computed`` or ``rejected`` and its
        run is not locked.  Run totals are recomputed over current entries in
        the same commit.

        Raises:
            EntryNotFoundError, EntryLockedError, ComputationAnomaly,
            ValueError (negative days).
        """
        require_context(organization_id, actor_id, "adjust_lwp_days")
        if lwp_days < 0:
            raise ValueError("lwp_days cannot be negative")

        try:
            entry = self._session.execute(
                select(PayrollEntryModel)
                .options(selectinload(PayrollEntryModel.lines))
                .where(
                    PayrollEntryModel.organization_id == organization_id,
                    PayrollEntryModel.id == entry_id,
                )
                .with_for_update()
            ).scalar_one_or_none()
            if entry is None:
                raise EntryNotFoundError(str(entry_id))
            self._lifecycle.ensure_run_unlocked(organization_id, entry)
            if entry.status not in EDITABLE_ENTRY_STATES:
                raise EntryLockedError(str(entry_id), entry.status)

            run = self._session.get(PayrollRunModel, entry.run_id)
            period = PayPeriod.parse(run.pay_period)
            structure = CompensationResolver(self._session).get_structure(
                organization_id, entry.structure_id,
            )
            inputs = PayrollInputAssembler(self._session, self._config).read(
                organization_id, period, [entry.employee_id],
            )
            previous_lwp = entry.lwp_days
            computed = compute_entry(
                inputs.entry_input(
                    entry.employee_id, structure=structure, absence_days=lwp_days,
                )
            )
            entry.apply_computed(computed, updated_by_id=actor_id)
            self._session.flush()

            totals = self._runs.run_totals(organization_id, run.id)
            store_run_totals(run, totals, actor_id)
            self._session.flush()

            self._notify(
                "payroll.entry.adjusted",
                organization_id,
                "payroll_entry",
                entry_id,
                decision="adjust_lwp_days",
                actor_id=actor_id,
                payload={
                    "run_id": str(run.id),
                    "employee_id": str(entry.employee_id),
                    "lwp_days_before": previous_lwp,
                    "lwp_days_after": computed.proration.lwp_days,
                },
            )
            result = entry.to_dto()
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        logger.info(
            "entry_lwp_adjusted",
            extra={
                "organization_id": str(organization_id),
                "entry_id": str(entry_id),
                "lwp_days_before": previous_lwp,
                "lwp_days_after": result.lwp_days,
                "net_pay": str(result.net_pay),
                "actor_id": str(actor_id),
            },
        )
        return result

    # =========================================================================
    # Deletion
    # =========================================================================

    def delete_run(self, organization_id: UUID, run_id: UUID, actor_id: UUID) -> None:
        """
        Delete a run with its entries and anomalies.

        Raises:
            RunNotFoundError: unknown run.
            RunNotDeletableError: the run, or any of its entries, is
                approved or locked.
        """
        require_context(organization_id, actor_id, "delete_run")
        try:
            run = self._session.execute(
                select(PayrollRunModel)
                .where(
                    PayrollRunModel.organization_id == organization_id,
                    PayrollRunModel.id == run_id,
                )
                .with_for_update()
            ).scalar_one_or_none()
            if run is None:
                raise RunNotFoundError(str(run_id))
            if run.status in _UNDELETABLE:
                raise RunNotDeletableError(str(run_id), run.status)
            blocking = self._session.execute(
                select(PayrollEntryModel.status)
                .where(
                    PayrollEntryModel.run_id == run_id,
                    PayrollEntryModel.status.in_(_UNDELETABLE_ENTRIES),
                )
                .limit(1)
            ).scalar_one_or_none()
            if blocking is not None:
                raise RunNotDeletableError(str(run_id), f"{run.status} (entry {blocking})")

            entry_ids = select(PayrollEntryModel.id).where(PayrollEntryModel.run_id == run_id)
            self._session.execute(
                delete(PayrollEntryLineModel)
                .where(PayrollEntryLineModel.entry_id.in_(entry_ids))
                .execution_options(synchronize_session=False)
            )
            self._session.execute(
                delete(PayrollEntryModel)
                .where(PayrollEntryModel.run_id == run_id)
                .execution_options(synchronize_session=False)
            )
            pay_period = run.pay_period
            status = run.status
            self._session.delete(run)
            self._notify(
                "payroll.run.deleted",
                organization_id,
                "payroll_run",
                run_id,
                decision="delete",
                actor_id=actor_id,
                payload={"pay_period": pay_period, "status": status},
            )
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        logger.info(
            "payroll_run_deleted",
            extra={
                "organization_id": str(organization_id),
                "run_id": str(run_id),
                "pay_period": pay_period,
                "status": status,
                "actor_id": str(actor_id),
            },
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def submit_run(self, organization_id: UUID, run_id: UUID, actor_id: UUID) -> PayrollRun:
        """completed -> under_review."""
        return self._transition_run(organization_id, run_id, RunStatus.UNDER_REVIEW, actor_id)

    def approve_run(self, organization_id: UUID, run_id: UUID, actor_id: UUID) -> PayrollRun:
        """under_review -> approved."""
        return self._transition_run(organization_id, run_id, RunStatus.APPROVED, actor_id)

    def reject_run(self, organization_id: UUID, run_id: UUID, actor_id: UUID) -> PayrollRun:
        """under_review | approved -> rejected."""
        return self._transition_run(organization_id, run_id, RunStatus.REJECTED, actor_id)

    def resubmit_run(self, organization_id: UUID, run_id: UUID, actor_id: UUID) -> PayrollRun:
        """rejected -> under_review."""
        return self._transition_run(
            organization_id, run_id, RunStatus.UNDER_REVIEW, actor_id,
            expected_status=RunStatus.REJECTED,
        )

    def lock_run(self, organization_id: UUID, run_id: UUID, actor_id: UUID) -> PayrollRun:
        """approved -> locked; publishes the ledger posting after commit."""
        return self._transition_run(organization_id, run_id, RunStatus.LOCKED, actor_id)

    def transition_entry(
        self,
        organization_id: UUID,
        entry_id: UUID,
        target: EntryStatus,
        actor_id: UUID,
        expected_status: EntryStatus | None = None,
    ) -> PayrollEntry:
        """Move a single entry, committed."""
        require_context(organization_id, actor_id, f"transition_entry:{target.value}")
        try:
            entry = self._lifecycle.transition_entry(
                organization_id, entry_id, target, actor_id, expected_status=expected_status,
            )
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise
        return entry

    def _transition_run(
        self,
        organization_id: UUID,
        run_id: UUID,
        target: RunStatus,
        actor_id: UUID,
        expected_status: RunStatus | None = None,
    ) -> PayrollRun:
        require_context(organization_id, actor_id, f"transition_run:{target.value}")
        try:
            run = self._lifecycle.transition_run(
                organization_id, run_id, target, actor_id, expected_status=expected_status,
            )
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise
        return run

    # =========================================================================
    # Helpers
    # =========================================================================

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
            self._session,
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
