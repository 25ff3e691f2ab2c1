"""
payroll_engines -- Pure computation engines.

No I/O, no database access, no clock.  Inputs are value objects, outputs are
frozen result dataclasses.

    attendance   Absence-day union of unpaid leave and marked absences
    proration    Pay ratio and per-component prorated amounts
    withholding  Progressive slab withholding spread over remaining periods
"""

from payroll_engines.attendance import AbsenceSummary, LeaveSpan, summarize_absences
from payroll_engines.proration import (
    ComponentKind,
    ComponentSpec,
    ProratedComponent,
    ProrationEngine,
    ProrationResult,
)
from payroll_engines.withholding import (
    SlabTax,
    TaxRegime,
    TaxSlab,
    WithholdingEngine,
    WithholdingInput,
    WithholdingResult,
)

__all__ = [
    "AbsenceSummary",
    "LeaveSpan",
    "summarize_absences",
    "ComponentKind",
    "ComponentSpec",
    "ProratedComponent",
    "ProrationEngine",
    "ProrationResult",
    "SlabTax",
    "TaxRegime",
    "TaxSlab",
    "WithholdingEngine",
    "WithholdingInput",
    "WithholdingResult",
]
