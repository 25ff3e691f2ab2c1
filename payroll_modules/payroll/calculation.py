"""
Per-employee entry computation (``payroll_modules.payroll.calculation``).

Pure -- no I/O.  Combines the proration and withholding engines into the
figures of one payroll entry.  The same function serves run generation,
absence-day adjustment and dispute corrections, so an entry is always
computed one way.

Order of operations (per employee):
    absence days -> proration -> withholding -> cap -> totals

Rules:
    - Annual income for withholding is the structure's taxable annual
      earnings; prior-employer figures come from the tax profile.
    - Tax withheld is capped at ``gross - base_deductions`` so net pay is
      never negative because of tax.
    - Base deductions exceeding gross earnings is a ``NegativeAmountError``
      (the employee is excluded and flagged, never paid a negative amount).
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Mapping
from uuid import UUID

from payroll_engines.proration import ComponentKind, ProrationEngine, ProrationResult
from payroll_engines.withholding import (
    TaxRegime,
    WithholdingEngine,
    WithholdingInput,
    WithholdingResult,
)
from payroll_kernel.db.types import ZERO
from payroll_kernel.exceptions import NegativeAmountError, TaxRegimeNotFoundError
from payroll_modules.compensation.models import CompensationStructure
from payroll_modules.payroll.models import EntryLine
from payroll_modules.tax.models import TaxProfile

_proration = ProrationEngine()
_withholding = WithholdingEngine()


@dataclass(frozen=True)
class EntryComputationInput:
    """Everything needed to compute one entry."""

    employee_id: UUID
    pay_period: str
    structure: CompensationStructure
    working_days: int
    absence_days: int
    regime: TaxRegime | None
    profile: TaxProfile
    tax_already_withheld: Decimal
    remaining_periods: int
    component_overrides: Mapping[str, Decimal] = field(default_factory=dict)
    tax_override: Decimal | None = None


@dataclass(frozen=True)
class ComputedEntry:
    """Figures of one entry, ready to persist."""

    employee_id: UUID
    structure_id: UUID
    annual_cost: Decimal
    proration: ProrationResult
    withholding: WithholdingResult | None
    tax_withheld: Decimal
    total_deductions: Decimal
    net_pay: Decimal

    @property
    def lines(self) -> tuple[EntryLine, ...]:
        return tuple(
            EntryLine(
                name=c.name,
                kind=c.kind,
                annual_amount=c.annual_amount,
                prorated_amount=c.prorated_amount,
                taxable=c.taxable,
                display_order=c.display_order,
            )
            for c in self.proration.components
        )


def _apply_overrides(inp: EntryComputationInput):
    specs = inp.structure.component_specs()
    if not inp.component_overrides:
        return specs
    known = {s.name for s in specs}
    unknown = set(inp.component_overrides) - known
    if unknown:
        raise ValueError(f"Unknown components in override: {sorted(unknown)}")
    return [
        replace(s, annual_amount=inp.component_overrides[s.name])
        if s.name in inp.component_overrides else s
        for s in specs
    ]


def compute_entry(inp: EntryComputationInput) -> ComputedEntry:
    """
    Compute one entry.

    Raises:
        ZeroWorkingDaysError, NegativeAmountError: ComputationAnomaly for
            this employee only.
        TaxRegimeNotFoundError: no regime in force and no tax override.
        ValueError: an override names a component the structure lacks.
    """
    specs = _apply_overrides(inp)
    proration = _proration.prorate(
        working_days=inp.working_days,
        absence_days=inp.absence_days,
        components=specs,
        pay_period=inp.pay_period,
    )

    available = proration.gross_earnings - proration.base_deductions
    if available < ZERO:
        raise NegativeAmountError("net_pay", str(available))

    withholding: WithholdingResult | None = None
    if inp.tax_override is not None:
        tax = inp.tax_override
    else:
        profile = inp.profile
        if inp.regime is None:
            raise TaxRegimeNotFoundError(profile.regime_code, inp.pay_period)
        withholding = _withholding.compute(
            WithholdingInput(
                annual_income=proration.taxable_annual_earnings,
                regime=inp.regime,
                section_deductions=profile.approved_sections,
                housing_exemption=profile.housing_exemption,
                other_deductions=profile.other_deductions,
                prior_employer_income=profile.prior_employer_income,
                prior_employer_tax=profile.prior_employer_tax,
                tax_already_withheld=inp.tax_already_withheld,
                remaining_periods=inp.remaining_periods,
            )
        )
        tax = withholding.period_withholding
    tax = min(tax, available)

    total_deductions = proration.base_deductions + tax
    if inp.component_overrides:
        annual_cost = sum((s.annual_amount for s in specs if s.kind == ComponentKind.EARNING), ZERO)
    else:
        annual_cost = inp.structure.annual_cost

    return ComputedEntry(
        employee_id=inp.employee_id,
        structure_id=inp.structure.id,
        annual_cost=annual_cost,
        proration=proration,
        withholding=withholding,
        tax_withheld=tax,
        total_deductions=total_deductions,
        net_pay=proration.gross_earnings - total_deductions,
    )
