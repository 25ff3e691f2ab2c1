"""Payslip Dispute Workflow.

Three review stages in a fixed order.  Every open stage can reject; only
the last stage can approve.
"""

from payroll_kernel.domain.workflow import Guard, Transition, Workflow
from payroll_kernel.logging_config import get_logger

logger = get_logger("modules.disputes.workflows")


CORRECTION_PROVIDED = Guard(
    name="correction_provided",
    description="Finance approval carries the correction to apply",
)

logger.info(
    "dispute_workflow_guards_defined",
    extra={"guards": [CORRECTION_PROVIDED.name]},
)


DISPUTE_STATES = (
    "pending_first_line",
    "pending_people_ops",
    "pending_finance",
    "rejected",
    "approved",
)

DISPUTE_TRANSITIONS = (
    Transition("pending_first_line", "pending_people_ops", action="forward"),
    Transition("pending_first_line", "rejected", action="reject"),
    Transition("pending_people_ops", "pending_finance", action="forward"),
    Transition("pending_people_ops", "rejected", action="reject"),
    Transition("pending_finance", "approved", action="approve", guard=CORRECTION_PROVIDED),
    Transition("pending_finance", "rejected", action="reject"),
)

DISPUTE_WORKFLOW = Workflow(
    name="payslip_dispute",
    description="Employee payslip dispute from first-line review to finance decision",
    initial_state="pending_first_line",
    states=DISPUTE_STATES,
    transitions=DISPUTE_TRANSITIONS,
    terminal_states=("approved", "rejected"),
    side_states=("rejected",),
)

logger.info(
    "dispute_workflow_defined",
    extra={"transitions": len(DISPUTE_WORKFLOW.transitions)},
)
