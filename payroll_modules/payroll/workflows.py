"""Payroll Workflows.

State machines for the payroll run and for the entries it contains.

The entry lifecycle is derived from the run lifecycle: a run transition
moves the run's current entries along with it.  Entries may also be moved
individually (BatchProcessor), which is why the two workflows are declared
separately.
"""

from payroll_kernel.domain.workflow import Guard, Transition, Workflow
from payroll_kernel.logging_config import get_logger

logger = get_logger("modules.payroll.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

ENTRIES_PERSISTED = Guard(
    name="entries_persisted",
    description="All entries and exact-sum totals persisted in one commit",
)

ALL_ENTRIES_APPROVED = Guard(
    name="all_entries_approved",
    description="Every current entry of the run is approved",
)

logger.info(
    "payroll_workflow_guards_defined",
    extra={"guards": [ENTRIES_PERSISTED.name, ALL_ENTRIES_APPROVED.name]},
)


# -----------------------------------------------------------------------------
# Payroll Run Workflow
# -----------------------------------------------------------------------------

RUN_STATES = (
    "failed",
    "processing",
    "completed",
    "rejected",
    "under_review",
    "approved",
    "locked",
)

RUN_TRANSITIONS = (
    Transition("processing", "completed", action="complete", guard=ENTRIES_PERSISTED),
    Transition("processing", "failed", action="fail"),
    Transition("completed", "under_review", action="submit"),
    Transition("under_review", "approved", action="approve"),
    Transition("approved", "locked", action="lock", guard=ALL_ENTRIES_APPROVED, posts_to_ledger=True),
    Transition("under_review", "rejected", action="reject"),
    Transition("approved", "rejected", action="reject"),
    Transition("rejected", "under_review", action="resubmit"),
)

RUN_WORKFLOW = Workflow(
    name="payroll_run",
    description="Payroll run from generation through review, approval and lock",
    initial_state="processing",
    states=RUN_STATES,
    transitions=RUN_TRANSITIONS,
    terminal_states=("failed", "locked"),
    side_states=("rejected",),
)


# -----------------------------------------------------------------------------
# Payroll Entry Workflow
# -----------------------------------------------------------------------------

ENTRY_STATES = (
    "computed",
    "rejected",
    "under_review",
    "approved",
    "locked",
)

ENTRY_TRANSITIONS = (
    Transition("computed", "under_review", action="submit"),
    Transition("under_review", "approved", action="approve"),
    Transition("approved", "locked", action="lock"),
    Transition("under_review", "rejected", action="reject"),
    Transition("approved", "rejected", action="reject"),
    Transition("rejected", "under_review", action="resubmit"),
)

ENTRY_WORKFLOW = Workflow(
    name="payroll_entry",
    description="Single payroll entry, normally advanced together with its run",
    initial_state="computed",
    states=ENTRY_STATES,
    transitions=ENTRY_TRANSITIONS,
    terminal_states=("locked",),
    side_states=("rejected",),
)

# Entry statuses from which figures may still be edited
EDITABLE_ENTRY_STATES = frozenset({"computed", "rejected"})


def entry_status_for_run(run_status: str) -> str | None:
    """Entry status that corresponds to a run status (None: no entry move)."""
    if run_status == "completed":
        return "computed"
    if run_status in ENTRY_STATES:
        return run_status
    return None


logger.info(
    "payroll_workflows_defined",
    extra={
        "run_transitions": len(RUN_WORKFLOW.transitions),
        "entry_transitions": len(ENTRY_WORKFLOW.transitions),
    },
)
