"""
Payroll selectors (``payroll_modules.payroll.selectors``).

Read side of runs and entries, plus the analytics read models.

    PayrollRunSelector        -- runs, entries, revisions, year-to-date tax
    PayrollAnalyticsSelector  -- cost, department, withholding and absence trends

Only *current* entries (not superseded by a correction) count towards any
total or trend.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal
from uuid import UUID

from sqlalchemy import case, func, select
from sqlalchemy.orm import selectinload

from payroll_kernel.db.types import ZERO
from payroll_kernel.exceptions import EntryNotFoundError, RunNotFoundError
from payroll_kernel.selectors.base import BaseSelector
from payroll_modules.employees.orm import EmployeeProfileModel
from payroll_modules.payroll.models import (
    AbsenceImpact,
    DepartmentCost,
    PayrollEntry,
    PayrollRun,
    PeriodCost,
    RunAnomaly,
    RunStatus,
    RunTotals,
    WithholdingPoint,
)
from payroll_modules.payroll.orm import (
    PayrollEntryModel,
    PayrollRunModel,
    RunAnomalyModel,
    is_current_entry,
)

UNASSIGNED_DEPARTMENT = "Unassigned"

# Runs whose entries count as paid (or about to be paid)
_REPORTABLE_STATUSES = (
    RunStatus.COMPLETED.value,
    RunStatus.UNDER_REVIEW.value,
    RunStatus.APPROVED.value,
    RunStatus.REJECTED.value,
    RunStatus.LOCKED.value,
)


def _dec(value) -> Decimal:
    return Decimal(str(value)) if value is not None else ZERO


class PayrollRunSelector(BaseSelector[PayrollRunModel]):
    """Runs and entries within one organization."""

    def find_run(self, organization_id: UUID, run_id: UUID) -> PayrollRun | None:
        model = self.session.execute(
            select(PayrollRunModel)
            .options(selectinload(PayrollRunModel.anomalies))
            .where(
                PayrollRunModel.organization_id == organization_id,
                PayrollRunModel.id == run_id,
            )
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def get_run(self, organization_id: UUID, run_id: UUID) -> PayrollRun:
        """
        Raises:
            RunNotFoundError: unknown id, or the run belongs to another organization.
        """
        run = self.find_run(organization_id, run_id)
        if run is None:
            raise RunNotFoundError(str(run_id))
        return run

    def find_run_for_period(self, organization_id: UUID, pay_period: str) -> PayrollRun | None:
        model = self.session.execute(
            select(PayrollRunModel)
            .options(selectinload(PayrollRunModel.anomalies))
            .where(
                PayrollRunModel.organization_id == organization_id,
                PayrollRunModel.pay_period == pay_period,
            )
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def list_runs(
        self,
        organization_id: UUID,
        status: RunStatus | None = None,
    ) -> list[PayrollRun]:
        """Runs newest period first."""
        stmt = (
            select(PayrollRunModel)
            .options(selectinload(PayrollRunModel.anomalies))
            .where(PayrollRunModel.organization_id == organization_id)
            .order_by(PayrollRunModel.pay_period.desc())
        )
        if status is not None:
            stmt = stmt.where(PayrollRunModel.status == status.value)
        return [m.to_dto() for m in self.session.execute(stmt).scalars()]

    def entries(
        self,
        organization_id: UUID,
        run_id: UUID,
        current_only: bool = True,
    ) -> list[PayrollEntry]:
        """Entries of a run; superseded entries included only on request."""
        stmt = (
            select(PayrollEntryModel)
            .options(selectinload(PayrollEntryModel.lines))
            .where(
                PayrollEntryModel.organization_id == organization_id,
                PayrollEntryModel.run_id == run_id,
            )
            .order_by(PayrollEntryModel.created_at, PayrollEntryModel.id)
        )
        if current_only:
            stmt = stmt.where(is_current_entry())
        return [m.to_dto() for m in self.session.execute(stmt).scalars()]

    def get_entry(self, organization_id: UUID, entry_id: UUID) -> PayrollEntry:
        """
        Raises:
            EntryNotFoundError: unknown id within the organization.
        """
        model = self.session.execute(
            select(PayrollEntryModel)
            .options(selectinload(PayrollEntryModel.lines))
            .where(
                PayrollEntryModel.organization_id == organization_id,
                PayrollEntryModel.id == entry_id,
            )
        ).scalar_one_or_none()
        if model is None:
            raise EntryNotFoundError(str(entry_id))
        return model.to_dto()

    def revision_of(self, organization_id: UUID, entry_id: UUID) -> PayrollEntry | None:
        """The correction that supersedes ``entry_id``, if any."""
        model = self.session.execute(
            select(PayrollEntryModel)
            .options(selectinload(PayrollEntryModel.lines))
            .where(
                PayrollEntryModel.organization_id == organization_id,
                PayrollEntryModel.revises_entry_id == entry_id,
            )
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def anomalies(self, organization_id: UUID, run_id: UUID) -> list[RunAnomaly]:
        models = self.session.execute(
            select(RunAnomalyModel)
            .where(
                RunAnomalyModel.organization_id == organization_id,
                RunAnomalyModel.run_id == run_id,
            )
            .order_by(RunAnomalyModel.created_at, RunAnomalyModel.id)
        ).scalars()
        return [m.to_dto() for m in models]

    def run_totals(self, organization_id: UUID, run_id: UUID) -> RunTotals:
        """Exact sums over the run's current entries (computed in SQL)."""
        row = self.session.execute(
            select(
                func.sum(PayrollEntryModel.gross_earnings),
                func.sum(PayrollEntryModel.base_deductions),
                func.sum(PayrollEntryModel.tax_withheld),
                func.sum(PayrollEntryModel.total_deductions),
                func.sum(PayrollEntryModel.net_pay),
                func.count(PayrollEntryModel.id),
            ).where(
                PayrollEntryModel.organization_id == organization_id,
                PayrollEntryModel.run_id == run_id,
                is_current_entry(),
            )
        ).one()
        return RunTotals(
            gross_earnings=_dec(row[0]),
            base_deductions=_dec(row[1]),
            tax_withheld=_dec(row[2]),
            total_deductions=_dec(row[3]),
            net_pay=_dec(row[4]),
            employee_count=row[5] or 0,
        )

    def tax_withheld_to_date(
        self,
        organization_id: UUID,
        employee_ids: Iterable[UUID],
        pay_periods: Iterable[str],
    ) -> dict[UUID, Decimal]:
        """Tax withheld by this employer over ``pay_periods``, per employee.

        Failed and in-flight runs never count.
        """
        ids = list(employee_ids)
        periods = list(pay_periods)
        if not ids or not periods:
            return {}
        rows = self.session.execute(
            select(PayrollEntryModel.employee_id, func.sum(PayrollEntryModel.tax_withheld))
            .join(PayrollRunModel, PayrollRunModel.id == PayrollEntryModel.run_id)
            .where(
                PayrollEntryModel.organization_id == organization_id,
                PayrollEntryModel.employee_id.in_(ids),
                PayrollRunModel.pay_period.in_(periods),
                PayrollRunModel.status.in_(_REPORTABLE_STATUSES),
                is_current_entry(),
            )
            .group_by(PayrollEntryModel.employee_id)
        ).all()
        return {employee_id: _dec(total) for employee_id, total in rows}


class PayrollAnalyticsSelector(BaseSelector[PayrollEntryModel]):
    """Trends over reportable runs, oldest period first."""

    def _base(self, organization_id: UUID, *columns):
        return (
            select(*columns)
            .join(PayrollRunModel, PayrollRunModel.id == PayrollEntryModel.run_id)
            .where(
                PayrollEntryModel.organization_id == organization_id,
                PayrollRunModel.status.in_(_REPORTABLE_STATUSES),
                is_current_entry(),
            )
        )

    @staticmethod
    def _between(stmt, from_period: str | None, to_period: str | None):
        if from_period is not None:
            stmt = stmt.where(PayrollRunModel.pay_period >= from_period)
        if to_period is not None:
            stmt = stmt.where(PayrollRunModel.pay_period <= to_period)
        return stmt

    def cost_trend(
        self,
        organization_id: UUID,
        from_period: str | None = None,
        to_period: str | None = None,
    ) -> list[PeriodCost]:
        stmt = self._base(
            organization_id,
            PayrollRunModel.pay_period,
            func.sum(PayrollEntryModel.gross_earnings),
            func.sum(PayrollEntryModel.total_deductions),
            func.sum(PayrollEntryModel.tax_withheld),
            func.sum(PayrollEntryModel.net_pay),
            func.count(PayrollEntryModel.id),
        )
        stmt = self._between(stmt, from_period, to_period)
        rows = self.session.execute(
            stmt.group_by(PayrollRunModel.pay_period).order_by(PayrollRunModel.pay_period)
        ).all()
        return [
            PeriodCost(
                pay_period=period,
                gross_earnings=_dec(gross),
                total_deductions=_dec(deductions),
                tax_withheld=_dec(tax),
                net_pay=_dec(net),
                employee_count=count,
            )
            for period, gross, deductions, tax, net, count in rows
        ]

    def department_costs(self, organization_id: UUID, run_id: UUID) -> list[DepartmentCost]:
        """Totals per department for one run; employees without a profile
        are grouped under ``Unassigned``."""
        department = func.coalesce(EmployeeProfileModel.department, UNASSIGNED_DEPARTMENT)
        rows = self.session.execute(
            select(
                department,
                func.count(PayrollEntryModel.id),
                func.sum(PayrollEntryModel.gross_earnings),
                func.sum(PayrollEntryModel.net_pay),
            )
            .outerjoin(
                EmployeeProfileModel,
                EmployeeProfileModel.id == PayrollEntryModel.employee_id,
            )
            .where(
                PayrollEntryModel.organization_id == organization_id,
                PayrollEntryModel.run_id == run_id,
                is_current_entry(),
            )
            .group_by(department)
            .order_by(department)
        ).all()
        return [
            DepartmentCost(
                department=name,
                employee_count=count,
                gross_earnings=_dec(gross),
                net_pay=_dec(net),
            )
            for name, count, gross, net in rows
        ]

    def withholding_trend(
        self,
        organization_id: UUID,
        from_period: str | None = None,
        to_period: str | None = None,
    ) -> list[WithholdingPoint]:
        stmt = self._base(
            organization_id,
            PayrollRunModel.pay_period,
            func.sum(PayrollEntryModel.tax_withheld),
            func.count(PayrollEntryModel.id),
        )
        stmt = self._between(stmt, from_period, to_period)
        rows = self.session.execute(
            stmt.group_by(PayrollRunModel.pay_period).order_by(PayrollRunModel.pay_period)
        ).all()
        return [
            WithholdingPoint(pay_period=period, tax_withheld=_dec(tax), employee_count=count)
            for period, tax, count in rows
        ]

    def absence_impact_trend(
        self,
        organization_id: UUID,
        from_period: str | None = None,
        to_period: str | None = None,
    ) -> list[AbsenceImpact]:
        affected = func.sum(case((PayrollEntryModel.lwp_days > 0, 1), else_=0))
        stmt = self._base(
            organization_id,
            PayrollRunModel.pay_period,
            func.sum(PayrollEntryModel.lwp_days),
            func.sum(PayrollEntryModel.absence_deduction),
            affected,
        )
        stmt = self._between(stmt, from_period, to_period)
        rows = self.session.execute(
            stmt.group_by(PayrollRunModel.pay_period).order_by(PayrollRunModel.pay_period)
        ).all()
        return [
            AbsenceImpact(
                pay_period=period,
                lwp_days=int(days or 0),
                absence_deduction=_dec(deduction),
                affected_employees=int(count or 0),
            )
            for period, days, deduction, count in rows
        ]
