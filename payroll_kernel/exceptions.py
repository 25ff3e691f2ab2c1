"""
Typed Exception Hierarchy for the Payroll Engine.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Payroll errors must be handled precisely. An operator who sees "run already
exists" must not retry blindly; a batch caller who sees "currently being
processed" may retry later, while "already processed" means the work is done.
Parsing message strings for that distinction is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        service.generate_run(org_id, "2024-06", actor_id=actor)
    except DuplicateRunError as e:
        api_response(code=e.code, run_id=e.existing_run_id)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from PayrollKernelError:

    PayrollKernelError (base)
    |
    +-- PayrollValidationError
    |   +-- MissingOrganizationError
    |   +-- UnauthenticatedActorError
    |   +-- MalformedPeriodError
    |
    +-- RunError
    |   +-- DuplicateRunError
    |   +-- RunNotFoundError
    |   +-- PartialPersistenceError
    |   +-- RunNotDeletableError
    |   +-- RunNotLockedError
    |
    +-- EntryError
    |   +-- EntryNotFoundError
    |   +-- EntryLockedError
    |
    +-- LifecycleError
    |   +-- InvalidTransitionError
    |
    +-- ConcurrencyError
    |   +-- AlreadyProcessedError
    |   +-- CurrentlyProcessingError
    |
    +-- ComputationAnomaly
    |   +-- ZeroWorkingDaysError
    |   +-- NegativeAmountError
    |
    +-- CompensationError
    |   +-- OverlappingStructureError
    |
    +-- TaxConfigurationError
    |   +-- TaxRegimeNotFoundError
    |   +-- InvalidTaxRegimeError
    |
    +-- DisputeError
    |   +-- DisputeNotFoundError
    |   +-- DisputeStageError
    |   +-- EntryNotDisputableError
    |   +-- DisputeAlreadyOpenError
    |   +-- EntryAlreadyRevisedError
    |
    +-- DeclarationError
        +-- DeclarationNotFoundError
        +-- DeclarationAlreadyReviewedError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | MISSING_ORGANIZATION        | No organization id on the request
                | UNAUTHENTICATED_ACTOR       | No actor id on a mutating request
                | MALFORMED_PERIOD            | Period is not YYYY-MM
----------------|-----------------------------|-----------------------------------------
Run             | DUPLICATE_RUN               | Run exists for (organization, period)
                | RUN_NOT_FOUND               | Run id unknown in this organization
                | PARTIAL_PERSISTENCE         | Entries failed to persist, run failed
                | RUN_NOT_DELETABLE           | Run approved/locked, cannot delete
                | RUN_NOT_LOCKED              | Bank file requested before lock
----------------|-----------------------------|-----------------------------------------
Entry           | ENTRY_NOT_FOUND             | Entry id unknown in this organization
                | ENTRY_LOCKED                | Entry no longer editable
----------------|-----------------------------|-----------------------------------------
Lifecycle       | INVALID_TRANSITION          | Out-of-order status change
----------------|-----------------------------|-----------------------------------------
Concurrency     | ALREADY_PROCESSED           | Member already at/after target status
                | CURRENTLY_PROCESSING        | Member locked by another caller
----------------|-----------------------------|-----------------------------------------
Computation     | ZERO_WORKING_DAYS           | Proration undefined for the period
                | NEGATIVE_AMOUNT             | Component amount below zero
----------------|-----------------------------|-----------------------------------------
Compensation    | OVERLAPPING_STRUCTURE       | Effective ranges overlap
----------------|-----------------------------|-----------------------------------------
Tax             | TAX_REGIME_NOT_FOUND        | No regime for code/date
                | INVALID_TAX_REGIME          | Slabs overlap, bad rate, etc.
----------------|-----------------------------|-----------------------------------------
Dispute         | DISPUTE_NOT_FOUND           | Dispute id unknown
                | DISPUTE_STAGE_MISMATCH      | Decision does not match current stage
                | ENTRY_NOT_DISPUTABLE        | Entry not locked
                | DISPUTE_ALREADY_OPEN        | Entry already has an open dispute
                | ENTRY_ALREADY_REVISED       | Entry superseded by a correction
----------------|-----------------------------|-----------------------------------------
Declaration     | DECLARATION_NOT_FOUND       | Declaration id unknown
                | DECLARATION_ALREADY_REVIEWED| Declaration no longer submitted

===============================================================================
DESIGN DECISIONS
===============================================================================

1. ComputationAnomaly is an exception type so engines can stay pure and
   raise; RunAggregator catches it per employee and records the anomaly on
   the run instead of aborting.

2. ConcurrencyError subclasses are reported per batch member; they are
   never raised for a whole batch.
"""

from __future__ import annotations


class PayrollKernelError(Exception):
    """
    Base exception for all payroll engine errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "PAYROLL_KERNEL_ERROR"


# Validation exceptions


class PayrollValidationError(PayrollKernelError):
    """Request rejected before any computation."""

    code: str = "PAYROLL_VALIDATION_ERROR"


class MissingOrganizationError(PayrollValidationError):
    """Organization identifier missing from the request."""

    code: str = "MISSING_ORGANIZATION"

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Organization id is required for {operation}")


class UnauthenticatedActorError(PayrollValidationError):
    """Mutating request made without an actor."""

    code: str = "UNAUTHENTICATED_ACTOR"

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Authenticated actor is required for {operation}")


class MalformedPeriodError(PayrollValidationError):
    """Pay period is not a valid YYYY-MM string."""

    code: str = "MALFORMED_PERIOD"

    def __init__(self, period: str):
        self.period = period
        super().__init__(f"Malformed pay period {period!r}, expected YYYY-MM")


# Run exceptions


class RunError(PayrollKernelError):
    """Base exception for payroll run errors."""

    code: str = "RUN_ERROR"


class DuplicateRunError(RunError):
    """A run already exists for the organization and period."""

    code: str = "DUPLICATE_RUN"

    def __init__(
        self,
        organization_id: str,
        pay_period: str,
        existing_run_id: str | None = None,
    ):
        self.organization_id = organization_id
        self.pay_period = pay_period
        self.existing_run_id = existing_run_id
        super().__init__(
            f"Payroll run for {pay_period} already exists "
            f"in organization {organization_id}"
        )


class RunNotFoundError(RunError):
    """Run id does not exist within the organization."""

    code: str = "RUN_NOT_FOUND"

    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(f"Payroll run not found: {run_id}")


class PartialPersistenceError(RunError):
    """
    Entries could not be persisted; the run was marked failed.

    Fatal for the run. The run is left in status ``failed`` with the
    reason recorded, never ``completed`` with incomplete totals.
    """

    code: str = "PARTIAL_PERSISTENCE"

    def __init__(self, run_id: str, reason: str):
        self.run_id = run_id
        self.reason = reason
        super().__init__(f"Payroll run {run_id} failed during persistence: {reason}")


class RunNotDeletableError(RunError):
    """Run has progressed too far to be deleted."""

    code: str = "RUN_NOT_DELETABLE"

    def __init__(self, run_id: str, status: str):
        self.run_id = run_id
        self.status = status
        super().__init__(f"Payroll run {run_id} in status {status} cannot be deleted")


class RunNotLockedError(RunError):
    """Operation requires a locked run (e.g. bank transfer file)."""

    code: str = "RUN_NOT_LOCKED"

    def __init__(self, run_id: str, status: str):
        self.run_id = run_id
        self.status = status
        super().__init__(f"Payroll run {run_id} is {status}, expected locked")


# Entry exceptions


class EntryError(PayrollKernelError):
    """Base exception for payroll entry errors."""

    code: str = "ENTRY_ERROR"


class EntryNotFoundError(EntryError):
    """Entry id does not exist within the organization."""

    code: str = "ENTRY_NOT_FOUND"

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"Payroll entry not found: {entry_id}")


class EntryLockedError(EntryError):
    """Entry is past the stage where its figures may be edited."""

    code: str = "ENTRY_LOCKED"

    def __init__(self, entry_id: str, status: str):
        self.entry_id = entry_id
        self.status = status
        super().__init__(f"Payroll entry {entry_id} in status {status} is not editable")


# Lifecycle exceptions


class LifecycleError(PayrollKernelError):
    """Base exception for state machine errors."""

    code: str = "LIFECYCLE_ERROR"


class InvalidTransitionError(LifecycleError):
    """Requested status change is not a transition of the workflow."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, entity_type: str, entity_id: str, from_status: str, to_status: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid {entity_type} transition {from_status} -> {to_status} "
            f"for {entity_id}"
        )


# Concurrency exceptions


class ConcurrencyError(PayrollKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"

    def __init__(self, entity_type: str, entity_id: str, message: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(message)


class AlreadyProcessedError(ConcurrencyError):
    """Member already reached (or passed) the requested status."""

    code: str = "ALREADY_PROCESSED"

    def __init__(self, entity_type: str, entity_id: str, current_status: str):
        self.current_status = current_status
        super().__init__(
            entity_type,
            entity_id,
            f"{entity_type} {entity_id} already processed (status {current_status})",
        )


class CurrentlyProcessingError(ConcurrencyError):
    """Member is held by another caller's in-flight transition."""

    code: str = "CURRENTLY_PROCESSING"

    def __init__(self, entity_type: str, entity_id: str):
        super().__init__(
            entity_type,
            entity_id,
            f"{entity_type} {entity_id} is currently being processed",
        )


# Computation anomalies


class ComputationAnomaly(PayrollKernelError):
    """
    Employee-level computation cannot proceed.

    Never fatal for a run: the employee is excluded and flagged.
    """

    code: str = "COMPUTATION_ANOMALY"


class ZeroWorkingDaysError(ComputationAnomaly):
    """Period has no working days; proration undefined."""

    code: str = "ZERO_WORKING_DAYS"

    def __init__(self, pay_period: str | None = None):
        self.pay_period = pay_period
        super().__init__(f"No working days in period {pay_period}; proration undefined")


class NegativeAmountError(ComputationAnomaly):
    """A component carries a negative amount."""

    code: str = "NEGATIVE_AMOUNT"

    def __init__(self, component_name: str, amount: str):
        self.component_name = component_name
        self.amount = amount
        super().__init__(f"Component {component_name!r} has negative amount {amount}")


# Compensation exceptions


class CompensationError(PayrollKernelError):
    """Base exception for compensation structure errors."""

    code: str = "COMPENSATION_ERROR"


class OverlappingStructureError(CompensationError):
    """Effective date ranges for one employee overlap."""

    code: str = "OVERLAPPING_STRUCTURE"

    def __init__(self, employee_id: str, conflicting_structure_id: str):
        self.employee_id = employee_id
        self.conflicting_structure_id = conflicting_structure_id
        super().__init__(
            f"Compensation structure for employee {employee_id} overlaps "
            f"structure {conflicting_structure_id}"
        )


# Tax configuration exceptions


class TaxConfigurationError(PayrollKernelError):
    """Base exception for tax reference data errors."""

    code: str = "TAX_CONFIGURATION_ERROR"


class TaxRegimeNotFoundError(TaxConfigurationError):
    """No regime matches the code on the requested date."""

    code: str = "TAX_REGIME_NOT_FOUND"

    def __init__(self, regime_code: str, as_of: str):
        self.regime_code = regime_code
        self.as_of = as_of
        super().__init__(f"No tax regime {regime_code!r} effective on {as_of}")


class InvalidTaxRegimeError(TaxConfigurationError):
    """Regime definition is internally inconsistent."""

    code: str = "INVALID_TAX_REGIME"

    def __init__(self, regime_code: str, reason: str):
        self.regime_code = regime_code
        self.reason = reason
        super().__init__(f"Invalid tax regime {regime_code!r}: {reason}")


# Dispute exceptions


class DisputeError(PayrollKernelError):
    """Base exception for payslip dispute errors."""

    code: str = "DISPUTE_ERROR"


class DisputeNotFoundError(DisputeError):
    """Dispute id does not exist within the organization."""

    code: str = "DISPUTE_NOT_FOUND"

    def __init__(self, dispute_id: str):
        self.dispute_id = dispute_id
        super().__init__(f"Payslip dispute not found: {dispute_id}")


class DisputeStageError(DisputeError):
    """Decision was made against a dispute not at the expected stage."""

    code: str = "DISPUTE_STAGE_MISMATCH"

    def __init__(self, dispute_id: str, expected_status: str, actual_status: str):
        self.dispute_id = dispute_id
        self.expected_status = expected_status
        self.actual_status = actual_status
        super().__init__(
            f"Dispute {dispute_id} is {actual_status}, expected {expected_status}"
        )


class EntryNotDisputableError(DisputeError):
    """Only locked entries can be disputed."""

    code: str = "ENTRY_NOT_DISPUTABLE"

    def __init__(self, entry_id: str, status: str):
        self.entry_id = entry_id
        self.status = status
        super().__init__(f"Entry {entry_id} in status {status} cannot be disputed")


class DisputeAlreadyOpenError(DisputeError):
    """Entry already has a dispute under review."""

    code: str = "DISPUTE_ALREADY_OPEN"

    def __init__(self, entry_id: str, dispute_id: str):
        self.entry_id = entry_id
        self.dispute_id = dispute_id
        super().__init__(f"Entry {entry_id} already has open dispute {dispute_id}")


class EntryAlreadyRevisedError(DisputeError):
    """Entry was already superseded by a correction entry."""

    code: str = "ENTRY_ALREADY_REVISED"

    def __init__(self, entry_id: str, revision_id: str):
        self.entry_id = entry_id
        self.revision_id = revision_id
        super().__init__(f"Entry {entry_id} already revised by {revision_id}")


# Investment declaration exceptions


class DeclarationError(PayrollKernelError):
    """Base exception for investment declaration errors."""

    code: str = "DECLARATION_ERROR"


class DeclarationNotFoundError(DeclarationError):
    """Declaration id does not exist within the organization."""

    code: str = "DECLARATION_NOT_FOUND"

    def __init__(self, declaration_id: str):
        self.declaration_id = declaration_id
        super().__init__(f"Investment declaration not found: {declaration_id}")


class DeclarationAlreadyReviewedError(DeclarationError):
    """Declaration has already been approved or rejected."""

    code: str = "DECLARATION_ALREADY_REVIEWED"

    def __init__(self, declaration_id: str, status: str):
        self.declaration_id = declaration_id
        self.status = status
        super().__init__(f"Investment declaration {declaration_id} already {status}")
