"""
Proration Engine - Scale compensation components by days actually paid.

Pure functions with no I/O.  Working days, absence days and the component
list are provided as parameters.

Usage:
    from decimal import Decimal
    from payroll_engines.proration import ComponentKind, ComponentSpec, ProrationEngine

    engine = ProrationEngine()
    result = engine.prorate(
        working_days=22,
        absence_days=2,
        components=[
            ComponentSpec("Basic", ComponentKind.EARNING, Decimal("600000")),
        ],
    )
    print(result.gross_earnings)  # Decimal("45455")

Rounding:
    Each component is rounded independently to the whole currency unit
    with ROUND_HALF_UP, computed as ``annual * paid_days / (12 * working_days)``
    so no intermediate monthly figure is rounded twice.  Totals are sums of
    rounded components, which keeps gross/deduction totals reproducible.

Absence deduction:
    Exactly one formula: full-period earnings (each earning rounded from
    ``annual / 12``) minus prorated earnings.  It reports the monetary impact
    of the absence days and is NOT subtracted again from net pay; proration
    already reduced gross.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Sequence

from payroll_kernel.db.types import ZERO, round_to_unit
from payroll_kernel.exceptions import NegativeAmountError, ZeroWorkingDaysError
from payroll_kernel.logging_config import get_logger

logger = get_logger("engines.proration")

MONTHS_PER_YEAR = Decimal("12")


class ComponentKind(str, Enum):
    """Closed set of component variants."""

    EARNING = "earning"
    DEDUCTION = "deduction"


@dataclass(frozen=True)
class ComponentSpec:
    """
    One compensation component as configured on a structure.

    ``display_order`` drives output order; ``sequence`` (insertion order)
    breaks ties so the breakdown is reproducible.
    """

    name: str
    kind: ComponentKind
    annual_amount: Decimal
    taxable: bool = True
    display_order: int = 0
    sequence: int = 0
    percentage_of_basic: Decimal | None = None


@dataclass(frozen=True)
class ProratedComponent:
    """A component after proration -- one typed line of the pay breakdown."""

    name: str
    kind: ComponentKind
    annual_amount: Decimal
    full_monthly_amount: Decimal
    prorated_amount: Decimal
    taxable: bool
    display_order: int

    @property
    def is_earning(self) -> bool:
        return self.kind == ComponentKind.EARNING


@dataclass(frozen=True)
class ProrationResult:
    """
    Complete proration result for one employee and period.

    Invariants:
        paid_days + lwp_days == working_days
        gross_earnings == sum(prorated earnings)
        base_deductions == sum(prorated deductions)
    """

    working_days: int
    lwp_days: int
    paid_days: int
    pay_ratio: Decimal
    components: tuple[ProratedComponent, ...]
    gross_earnings: Decimal
    base_deductions: Decimal
    full_period_earnings: Decimal
    absence_deduction: Decimal

    @property
    def earnings(self) -> tuple[ProratedComponent, ...]:
        return tuple(c for c in self.components if c.kind == ComponentKind.EARNING)

    @property
    def deductions(self) -> tuple[ProratedComponent, ...]:
        return tuple(c for c in self.components if c.kind == ComponentKind.DEDUCTION)

    @property
    def taxable_annual_earnings(self) -> Decimal:
        """Annualized taxable income contributed by this structure."""
        return sum((c.annual_amount for c in self.earnings if c.taxable), ZERO)


def order_components(components: Sequence[ComponentSpec]) -> list[ComponentSpec]:
    """Sort by display order, ties broken by insertion sequence."""
    return sorted(components, key=lambda c: (c.display_order, c.sequence))


class ProrationEngine:
    """
    Compute pay ratio and prorated monthly component amounts.

    Pure - no I/O, no database access.

    Raises ComputationAnomaly subclasses rather than faulting, so that the
    caller can exclude a single employee and keep the run going.
    """

    def prorate(
        self,
        working_days: int,
        absence_days: int,
        components: Sequence[ComponentSpec],
        pay_period: str | None = None,
    ) -> ProrationResult:
        """
        Prorate ``components`` for a period.

        Args:
            working_days: Non-weekend days in the period; must be > 0.
            absence_days: Unpaid absence days (clamped to ``working_days``).
            components: Structure components, any order.
            pay_period: Only used for error context.

        Raises:
            ZeroWorkingDaysError: working_days <= 0.
            NegativeAmountError: a component's annual amount is negative.
            ValueError: absence_days is negative.
        """
        t0 = time.monotonic()
        if working_days <= 0:
            logger.warning(
                "proration_zero_working_days",
                extra={"pay_period": pay_period, "working_days": working_days},
            )
            raise ZeroWorkingDaysError(pay_period)
        if absence_days < 0:
            raise ValueError(f"absence_days cannot be negative, got {absence_days}")

        for spec in components:
            if spec.annual_amount < ZERO:
                raise NegativeAmountError(spec.name, str(spec.annual_amount))

        paid_days = max(working_days - absence_days, 0)
        lwp_days = working_days - paid_days
        pay_ratio = Decimal(paid_days) / Decimal(working_days)

        lines: list[ProratedComponent] = []
        for spec in order_components(components):
            full_monthly = round_to_unit(spec.annual_amount / MONTHS_PER_YEAR)
            prorated = self.prorated_amount(spec.annual_amount, paid_days, working_days)
            lines.append(
                ProratedComponent(
                    name=spec.name,
                    kind=spec.kind,
                    annual_amount=spec.annual_amount,
                    full_monthly_amount=full_monthly,
                    prorated_amount=prorated,
                    taxable=spec.taxable,
                    display_order=spec.display_order,
                )
            )

        gross = sum((c.prorated_amount for c in lines if c.is_earning), ZERO)
        base_deductions = sum(
            (c.prorated_amount for c in lines if not c.is_earning), ZERO
        )
        full_earnings = sum((c.full_monthly_amount for c in lines if c.is_earning), ZERO)

        result = ProrationResult(
            working_days=working_days,
            lwp_days=lwp_days,
            paid_days=paid_days,
            pay_ratio=pay_ratio,
            components=tuple(lines),
            gross_earnings=gross,
            base_deductions=base_deductions,
            full_period_earnings=full_earnings,
            absence_deduction=full_earnings - gross,
        )

        logger.debug(
            "proration_completed",
            extra={
                "pay_period": pay_period,
                "working_days": working_days,
                "lwp_days": lwp_days,
                "paid_days": paid_days,
                "component_count": len(lines),
                "gross_earnings": str(gross),
                "base_deductions": str(base_deductions),
                "duration_ms": round((time.monotonic() - t0) * 1000, 2),
            },
        )
        return result

    @staticmethod
    def prorated_amount(annual_amount: Decimal, paid_days: int, working_days: int) -> Decimal:
        """``round_half_up(annual / 12 * paid_days / working_days)``."""
        if paid_days == working_days:
            return round_to_unit(annual_amount / MONTHS_PER_YEAR)
        return round_to_unit(
            annual_amount * Decimal(paid_days) / (MONTHS_PER_YEAR * Decimal(working_days))
        )
