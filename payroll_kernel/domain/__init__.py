"""
Pure domain layer.

Value objects with NO dependencies on the ORM, the database, or I/O:
clock abstraction, pay-period arithmetic and workflow definitions.
"""

from payroll_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from payroll_kernel.domain.periods import PayPeriod, clip_range
from payroll_kernel.domain.workflow import Guard, Transition, Workflow

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "PayPeriod",
    "clip_range",
    "Guard",
    "Transition",
    "Workflow",
]
