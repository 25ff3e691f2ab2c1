"""
PayrollInputAssembler -- bulk reads feeding ``compute_entry``.

Gathers, for one organization and pay period, every input the pure
computation needs: compensation structures (as of the period end), absence
summaries, tax profiles, the regimes in force, tax already withheld earlier
in the fiscal year, working days and remaining periods.  One query per
source, regardless of head count.

Run generation reads everything up front and then computes in a thread
pool without touching the session; absence-day adjustments and dispute
corrections read the same bundle for a single employee.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from payroll_engines.attendance import AbsenceSummary
from payroll_engines.withholding import TaxRegime
from payroll_kernel.db.types import ZERO
from payroll_kernel.domain.periods import PayPeriod
from payroll_kernel.logging_config import get_logger
from payroll_modules.attendance.selectors import AttendanceResolver
from payroll_modules.compensation.models import CompensationStructure
from payroll_modules.compensation.selectors import CompensationResolver
from payroll_modules.payroll.calculation import EntryComputationInput
from payroll_modules.payroll.config import PayrollConfig
from payroll_modules.payroll.selectors import PayrollRunSelector
from payroll_modules.tax.models import TaxProfile
from payroll_modules.tax.selectors import TaxProfileSelector, TaxReferenceSelector

logger = get_logger("modules.payroll.inputs")


@dataclass(frozen=True)
class PeriodInputs:
    """Everything read for one period; immutable so worker threads can share it."""

    period: PayPeriod
    working_days: int
    remaining_periods: int
    structures: dict[UUID, CompensationStructure]
    absences: dict[UUID, AbsenceSummary]
    profiles: dict[UUID, TaxProfile]
    regimes: dict[str, TaxRegime]
    tax_to_date: dict[UUID, Decimal]

    @property
    def employee_ids(self) -> list[UUID]:
        return sorted(self.structures, key=str)

    def absence_days(self, employee_id: UUID) -> int:
        summary = self.absences.get(employee_id)
        return summary.absence_days if summary is not None else 0

    def entry_input(
        self,
        employee_id: UUID,
        structure: CompensationStructure | None = None,
        absence_days: int | None = None,
        component_overrides=None,
        tax_override: Decimal | None = None,
    ) -> EntryComputationInput:
        """Input for one employee; ``regime`` is None when the employee's
        regime is not in force on the period end."""
        profile = self.profiles[employee_id]
        return EntryComputationInput(
            employee_id=employee_id,
            pay_period=self.period.code,
            structure=structure or self.structures[employee_id],
            working_days=self.working_days,
            absence_days=self.absence_days(employee_id) if absence_days is None else absence_days,
            regime=self.regimes.get(profile.regime_code),
            profile=profile,
            tax_already_withheld=self.tax_to_date.get(employee_id, ZERO),
            remaining_periods=self.remaining_periods,
            component_overrides=component_overrides or {},
            tax_override=tax_override,
        )


class PayrollInputAssembler:
    """Read side of run generation."""

    def __init__(self, session: Session, config: PayrollConfig):
        self.session = session
        self.config = config

    def read(
        self,
        organization_id: UUID,
        period: PayPeriod,
        employee_ids: Iterable[UUID] | None = None,
    ) -> PeriodInputs:
        """Bulk-read inputs; ``employee_ids`` None means every employee with
        a structure covering the period end."""
        config = self.config
        start_month = config.fiscal_year_start_month

        structures = CompensationResolver(self.session).resolve_all(
            organization_id, period.end, employee_ids,
        )
        ids = list(structures) if employee_ids is None else list(employee_ids)

        absences = AttendanceResolver(self.session).resolve(
            organization_id, ids, period, weekend=config.weekend_days,
        )
        fiscal_year = period.fiscal_year_label(start_month)
        profiles = TaxProfileSelector(self.session).profiles(
            organization_id, ids, fiscal_year, config.default_regime_code,
        )
        regimes = TaxReferenceSelector(self.session).regimes_as_of(period.end)
        earlier = [p.code for p in period.fiscal_year_periods_before(start_month)]
        tax_to_date = PayrollRunSelector(self.session).tax_withheld_to_date(
            organization_id, ids, earlier,
        )

        inputs = PeriodInputs(
            period=period,
            working_days=period.working_days(config.weekend_days),
            remaining_periods=period.remaining_periods_in_fiscal_year(start_month),
            structures=structures,
            absences=absences,
            profiles=profiles,
            regimes=regimes,
            tax_to_date=tax_to_date,
        )

        logger.info(
            "payroll_inputs_read",
            extra={
                "organization_id": str(organization_id),
                "pay_period": period.code,
                "fiscal_year": fiscal_year,
                "employee_count": len(structures),
                "working_days": inputs.working_days,
                "remaining_periods": inputs.remaining_periods,
                "regime_codes": sorted(regimes),
            },
        )
        return inputs
