"""
Payroll Domain Models (``payroll_modules.payroll.models``).

Responsibility
--------------
Frozen dataclass value objects for payroll runs, their entries, the typed
per-component breakdown lines, anomalies recorded during generation,
correction requests and the analytics read models.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.

Invariants enforced
-------------------
* All models are ``frozen=True``.
* All monetary fields use ``Decimal`` -- NEVER ``float``.
* Entry invariants (checked by ``PayrollEntry.check_invariants``):
  ``paid_days + lwp_days == working_days``,
  ``gross_earnings == sum(earning lines)``,
  ``base_deductions == sum(deduction lines)``,
  ``total_deductions == base_deductions + tax_withheld``,
  ``net_pay == gross_earnings - total_deductions``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Iterable, Mapping
from uuid import UUID

from payroll_engines.proration import ComponentKind
from payroll_kernel.db.types import ZERO


class RunStatus(Enum):
    """Payroll run lifecycle states."""
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    LOCKED = "locked"


class EntryStatus(Enum):
    """Payroll entry lifecycle states."""
    COMPUTED = "computed"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    LOCKED = "locked"


@dataclass(frozen=True)
class EntryLine:
    """One component of an entry's breakdown."""
    name: str
    kind: ComponentKind
    annual_amount: Decimal
    prorated_amount: Decimal
    taxable: bool
    display_order: int

    @property
    def is_earning(self) -> bool:
        return self.kind == ComponentKind.EARNING


@dataclass(frozen=True)
class PayrollEntry:
    """One employee's pay for one run."""
    id: UUID
    organization_id: UUID
    run_id: UUID
    employee_id: UUID
    structure_id: UUID
    working_days: int
    lwp_days: int
    paid_days: int
    pay_ratio: Decimal
    lines: tuple[EntryLine, ...]
    gross_earnings: Decimal
    base_deductions: Decimal
    tax_withheld: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    absence_deduction: Decimal
    annual_cost: Decimal
    status: EntryStatus
    revises_entry_id: UUID | None = None
    version: int = 1

    @property
    def earnings(self) -> tuple[EntryLine, ...]:
        return tuple(line for line in self.lines if line.is_earning)

    @property
    def deductions(self) -> tuple[EntryLine, ...]:
        return tuple(line for line in self.lines if not line.is_earning)

    def check_invariants(self) -> list[str]:
        """Names of violated invariants (empty when consistent)."""
        problems = []
        if self.paid_days + self.lwp_days != self.working_days:
            problems.append("paid_days + lwp_days != working_days")
        if self.gross_earnings != sum((line.prorated_amount for line in self.earnings), ZERO):
            problems.append("gross_earnings != sum(earnings)")
        if self.base_deductions != sum((line.prorated_amount for line in self.deductions), ZERO):
            problems.append("base_deductions != sum(deductions)")
        if self.total_deductions != self.base_deductions + self.tax_withheld:
            problems.append("total_deductions != base_deductions + tax_withheld")
        if self.net_pay != self.gross_earnings - self.total_deductions:
            problems.append("net_pay != gross_earnings - total_deductions")
        return problems


@dataclass(frozen=True)
class RunAnomaly:
    """An employee excluded from a run and why."""
    employee_id: UUID
    code: str
    message: str


@dataclass(frozen=True)
class RunTotals:
    """Exact sums over a run's current entries."""
    gross_earnings: Decimal = ZERO
    base_deductions: Decimal = ZERO
    tax_withheld: Decimal = ZERO
    total_deductions: Decimal = ZERO
    net_pay: Decimal = ZERO
    employee_count: int = 0

    @classmethod
    def of(cls, entries: Iterable[PayrollEntry]) -> RunTotals:
        entries = list(entries)
        return cls(
            gross_earnings=sum((e.gross_earnings for e in entries), ZERO),
            base_deductions=sum((e.base_deductions for e in entries), ZERO),
            tax_withheld=sum((e.tax_withheld for e in entries), ZERO),
            total_deductions=sum((e.total_deductions for e in entries), ZERO),
            net_pay=sum((e.net_pay for e in entries), ZERO),
            employee_count=len(entries),
        )


@dataclass(frozen=True)
class PayrollRun:
    """One payroll cycle for an organization and period."""
    id: UUID
    organization_id: UUID
    pay_period: str
    status: RunStatus
    totals: RunTotals
    anomaly_count: int
    generated_by: UUID
    generated_at: datetime | None = None
    locked_at: datetime | None = None
    locked_by: UUID | None = None
    failure_reason: str | None = None
    version: int = 1
    anomalies: tuple[RunAnomaly, ...] = ()

    @property
    def employee_count(self) -> int:
        return self.totals.employee_count


@dataclass(frozen=True)
class CorrectionRequest:
    """What an approved dispute changes on the superseding entry."""
    reason: str
    lwp_days: int | None = None
    component_overrides: Mapping[str, Decimal] = field(default_factory=dict)
    tax_override: Decimal | None = None

    def __post_init__(self):
        if self.lwp_days is not None and self.lwp_days < 0:
            raise ValueError("lwp_days cannot be negative")
        if self.tax_override is not None and self.tax_override < ZERO:
            raise ValueError("tax_override cannot be negative")
        for name, amount in self.component_overrides.items():
            if amount < ZERO:
                raise ValueError(f"override for {name!r} cannot be negative")


# -----------------------------------------------------------------------------
# Analytics read models
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class PeriodCost:
    pay_period: str
    gross_earnings: Decimal
    total_deductions: Decimal
    tax_withheld: Decimal
    net_pay: Decimal
    employee_count: int


@dataclass(frozen=True)
class DepartmentCost:
    department: str
    employee_count: int
    gross_earnings: Decimal
    net_pay: Decimal


@dataclass(frozen=True)
class WithholdingPoint:
    pay_period: str
    tax_withheld: Decimal
    employee_count: int


@dataclass(frozen=True)
class AbsenceImpact:
    pay_period: str
    lwp_days: int
    absence_deduction: Decimal
    affected_employees: int
