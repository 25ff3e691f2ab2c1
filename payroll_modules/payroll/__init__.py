"""Payroll runs, entries and their lifecycle (``payroll_modules.payroll``)."""

from payroll_modules.payroll.calculation import (
    ComputedEntry,
    EntryComputationInput,
    compute_entry,
)
from payroll_modules.payroll.config import PayrollConfig
from payroll_modules.payroll.export import RunExporter
from payroll_modules.payroll.inputs import PayrollInputAssembler, PeriodInputs
from payroll_modules.payroll.lifecycle import LifecycleController, resolve_transition
from payroll_modules.payroll.models import (
    AbsenceImpact,
    CorrectionRequest,
    DepartmentCost,
    EntryLine,
    EntryStatus,
    PayrollEntry,
    PayrollRun,
    PeriodCost,
    RunAnomaly,
    RunStatus,
    RunTotals,
    WithholdingPoint,
)
from payroll_modules.payroll.selectors import PayrollAnalyticsSelector, PayrollRunSelector
from payroll_modules.payroll.service import PayrollRunService
from payroll_modules.payroll.workflows import ENTRY_WORKFLOW, RUN_WORKFLOW

__all__ = [
    "ComputedEntry",
    "EntryComputationInput",
    "compute_entry",
    "PayrollConfig",
    "RunExporter",
    "PayrollInputAssembler",
    "PeriodInputs",
    "LifecycleController",
    "resolve_transition",
    "AbsenceImpact",
    "CorrectionRequest",
    "DepartmentCost",
    "EntryLine",
    "EntryStatus",
    "PayrollEntry",
    "PayrollRun",
    "PeriodCost",
    "RunAnomaly",
    "RunStatus",
    "RunTotals",
    "WithholdingPoint",
    "PayrollAnalyticsSelector",
    "PayrollRunSelector",
    "PayrollRunService",
    "ENTRY_WORKFLOW",
    "RUN_WORKFLOW",
]
