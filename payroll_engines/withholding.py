"""
Withholding Engine - Periodic statutory tax withholding from annualized income.

Pure functions with no I/O - regimes, slabs and deductions provided as
parameters.

Usage:
    from decimal import Decimal
    from payroll_engines.withholding import (
        TaxRegime, TaxSlab, WithholdingEngine, WithholdingInput,
    )

    regime = TaxRegime(
        code="new",
        name="Simplified regime",
        standard_deduction=Decimal("50000"),
        permits_itemized_deductions=False,
        slabs=(
            TaxSlab(Decimal("0"), Decimal("300000"), Decimal("0")),
            TaxSlab(Decimal("300000"), None, Decimal("0.05"), Decimal("0.04")),
        ),
    )
    result = WithholdingEngine().compute(
        WithholdingInput(annual_income=Decimal("600000"), regime=regime,
                         remaining_periods=12),
    )
    print(result.period_withholding)

Algorithm (in order):
    1. gross = annual income + prior-employer income
    2. minus standard deduction
    3. if the regime permits itemized deductions: minus each approved
       section amount capped at the section ceiling, the housing-allowance
       exemption and other approved deductions
    4. floor at zero
    5. progressive slab tax over bands ``(lower, upper]``
    6. cess = slab tax x cess percentage, per slab
    7. minus tax already withheld this fiscal year (this employer + prior)
    8. spread across the remaining periods (>= 1), round half up, never negative

Properties:
    - Slab tax is monotonic non-decreasing in taxable income (rates >= 0).
    - Taxable income at or below the first slab's lower bound yields zero
      slab tax.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Mapping

from payroll_kernel.db.types import ZERO, round_money, round_to_unit
from payroll_kernel.exceptions import InvalidTaxRegimeError
from payroll_kernel.logging_config import get_logger

logger = get_logger("engines.withholding")

ONE = Decimal("1")


@dataclass(frozen=True)
class TaxSlab:
    """
    One income band.

    Income in ``(lower, upper]`` is taxed at ``rate``; ``upper=None`` means
    unbounded.  ``cess_rate`` is applied to the tax this band produces.
    """

    lower: Decimal
    upper: Decimal | None
    rate: Decimal
    cess_rate: Decimal = ZERO

    def portion_of(self, taxable_income: Decimal) -> Decimal:
        """Part of ``taxable_income`` that falls inside this band."""
        if taxable_income <= self.lower:
            return ZERO
        top = taxable_income if self.upper is None else min(taxable_income, self.upper)
        return top - self.lower


@dataclass(frozen=True)
class TaxRegime:
    """
    Named rule set: standard deduction, itemization policy, section
    ceilings and ordered slabs.

    Invariants (validated at construction):
        - at least one slab, ordered by lower bound, bands never overlap
        - only the last slab may be unbounded
        - rates and cess rates within [0, 1]
        - standard deduction and ceilings non-negative
    """

    code: str
    name: str
    slabs: tuple[TaxSlab, ...]
    standard_deduction: Decimal = ZERO
    permits_itemized_deductions: bool = False
    section_ceilings: Mapping[str, Decimal] = field(default_factory=dict)
    effective_from: date | None = None

    def __post_init__(self) -> None:
        if not self.code:
            raise InvalidTaxRegimeError(self.code, "code is required")
        if not self.slabs:
            raise InvalidTaxRegimeError(self.code, "at least one slab is required")
        if self.standard_deduction < ZERO:
            raise InvalidTaxRegimeError(self.code, "standard deduction cannot be negative")
        for section, ceiling in self.section_ceilings.items():
            if ceiling < ZERO:
                raise InvalidTaxRegimeError(self.code, f"ceiling for {section} is negative")

        previous_upper: Decimal | None = None
        for index, slab in enumerate(self.slabs):
            if slab.lower < ZERO:
                raise InvalidTaxRegimeError(self.code, f"slab {index} has negative lower bound")
            if slab.upper is not None and slab.upper <= slab.lower:
                raise InvalidTaxRegimeError(self.code, f"slab {index} upper <= lower")
            if slab.upper is None and index != len(self.slabs) - 1:
                raise InvalidTaxRegimeError(self.code, "only the last slab may be unbounded")
            if not ZERO <= slab.rate <= ONE:
                raise InvalidTaxRegimeError(self.code, f"slab {index} rate outside [0, 1]")
            if not ZERO <= slab.cess_rate <= ONE:
                raise InvalidTaxRegimeError(self.code, f"slab {index} cess outside [0, 1]")
            if index > 0 and previous_upper is not None and slab.lower < previous_upper:
                raise InvalidTaxRegimeError(self.code, f"slab {index} overlaps slab {index - 1}")
            previous_upper = slab.upper

    @property
    def first_lower_bound(self) -> Decimal:
        return self.slabs[0].lower

    def ceiling_for(self, section: str) -> Decimal | None:
        return self.section_ceilings.get(section)


@dataclass(frozen=True)
class WithholdingInput:
    """Everything the engine needs for one employee and period."""

    annual_income: Decimal
    regime: TaxRegime
    section_deductions: Mapping[str, Decimal] = field(default_factory=dict)
    housing_exemption: Decimal = ZERO
    other_deductions: Decimal = ZERO
    prior_employer_income: Decimal = ZERO
    prior_employer_tax: Decimal = ZERO
    tax_already_withheld: Decimal = ZERO
    remaining_periods: int = 1


@dataclass(frozen=True)
class SlabTax:
    """Tax produced by one slab."""

    lower: Decimal
    upper: Decimal | None
    rate: Decimal
    taxable_portion: Decimal
    tax: Decimal
    cess: Decimal


@dataclass(frozen=True)
class WithholdingResult:
    """
    Complete withholding computation.

    Annual figures are reported to two places; ``period_withholding`` is in
    whole currency units.
    """

    regime_code: str
    gross_income: Decimal
    standard_deduction: Decimal
    itemized_deductions: Decimal
    taxable_income: Decimal
    slab_breakdown: tuple[SlabTax, ...]
    slab_tax: Decimal
    cess: Decimal
    annual_liability: Decimal
    already_withheld: Decimal
    remaining_liability: Decimal
    remaining_periods: int
    period_withholding: Decimal


class WithholdingEngine:
    """
    Compute the current period's statutory withholding.

    Pure - no I/O, no database access.
    """

    def itemized_deductions(self, inp: WithholdingInput) -> Decimal:
        """Step 3: capped section deductions plus exemptions (0 if not permitted)."""
        regime = inp.regime
        if not regime.permits_itemized_deductions:
            return ZERO
        total = ZERO
        for section, amount in inp.section_deductions.items():
            claimed = max(amount, ZERO)
            ceiling = regime.ceiling_for(section)
            total += claimed if ceiling is None else min(claimed, ceiling)
        total += max(inp.housing_exemption, ZERO)
        total += max(inp.other_deductions, ZERO)
        return total

    def taxable_income(self, inp: WithholdingInput) -> Decimal:
        """Steps 1-4."""
        gross = inp.annual_income + inp.prior_employer_income
        taxable = gross - inp.regime.standard_deduction - self.itemized_deductions(inp)
        return max(taxable, ZERO)

    def slab_tax(self, taxable_income: Decimal, regime: TaxRegime) -> tuple[SlabTax, ...]:
        """Steps 5-6: per-slab tax and cess, in slab order."""
        lines: list[SlabTax] = []
        for slab in regime.slabs:
            portion = slab.portion_of(taxable_income)
            if portion <= ZERO:
                break
            tax = portion * slab.rate
            lines.append(
                SlabTax(
                    lower=slab.lower,
                    upper=slab.upper,
                    rate=slab.rate,
                    taxable_portion=portion,
                    tax=tax,
                    cess=tax * slab.cess_rate,
                )
            )
        return tuple(lines)

    def annual_liability(self, taxable_income: Decimal, regime: TaxRegime) -> Decimal:
        """Slab tax plus cess for a full fiscal year."""
        lines = self.slab_tax(taxable_income, regime)
        return sum((line.tax + line.cess for line in lines), ZERO)

    def compute(self, inp: WithholdingInput) -> WithholdingResult:
        """
        Run the full algorithm.

        Raises:
            ValueError: remaining_periods < 1 or negative incomes.
        """
        t0 = time.monotonic()
        if inp.remaining_periods < 1:
            raise ValueError(f"remaining_periods must be >= 1, got {inp.remaining_periods}")
        if inp.annual_income < ZERO or inp.prior_employer_income < ZERO:
            raise ValueError("Income figures cannot be negative")

        gross = inp.annual_income + inp.prior_employer_income
        itemized = self.itemized_deductions(inp)
        taxable = self.taxable_income(inp)
        breakdown = self.slab_tax(taxable, inp.regime)
        slab_tax = sum((line.tax for line in breakdown), ZERO)
        cess = sum((line.cess for line in breakdown), ZERO)
        liability = slab_tax + cess

        already = max(inp.tax_already_withheld, ZERO) + max(inp.prior_employer_tax, ZERO)
        remaining = max(liability - already, ZERO)
        per_period = max(round_to_unit(remaining / Decimal(inp.remaining_periods)), ZERO)

        result = WithholdingResult(
            regime_code=inp.regime.code,
            gross_income=gross,
            standard_deduction=inp.regime.standard_deduction,
            itemized_deductions=itemized,
            taxable_income=taxable,
            slab_breakdown=breakdown,
            slab_tax=round_money(slab_tax),
            cess=round_money(cess),
            annual_liability=round_money(liability),
            already_withheld=already,
            remaining_liability=round_money(remaining),
            remaining_periods=inp.remaining_periods,
            period_withholding=per_period,
        )

        logger.debug(
            "withholding_computed",
            extra={
                "regime_code": inp.regime.code,
                "taxable_income": str(taxable),
                "annual_liability": str(result.annual_liability),
                "already_withheld": str(already),
                "remaining_periods": inp.remaining_periods,
                "period_withholding": str(per_period),
                "duration_ms": round((time.monotonic() - t0) * 1000, 2),
            },
        )
        return result
