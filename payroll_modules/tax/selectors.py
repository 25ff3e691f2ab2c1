"""
Tax selectors (``payroll_modules.tax.selectors``).

Read side of tax reference data and per-employee tax inputs.

    TaxReferenceSelector  -- regime in force for a code on a date
    TaxProfileSelector    -- settings + approved declarations per employee
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import selectinload

from payroll_engines.withholding import TaxRegime
from payroll_kernel.db.types import ZERO
from payroll_kernel.exceptions import TaxRegimeNotFoundError
from payroll_kernel.selectors.base import BaseSelector
from payroll_modules.tax.models import (
    DeclarationStatus,
    EmployeeTaxSettings,
    InvestmentDeclaration,
    TaxProfile,
)
from payroll_modules.tax.orm import (
    EmployeeTaxSettingsModel,
    InvestmentDeclarationModel,
    TaxRegimeModel,
)


class TaxReferenceSelector(BaseSelector[TaxRegimeModel]):
    """Statutory regimes by code and effective date."""

    def regimes_as_of(self, as_of: date) -> dict[str, TaxRegime]:
        """Latest version of every regime effective on ``as_of``."""
        models = self.session.execute(
            select(TaxRegimeModel)
            .options(selectinload(TaxRegimeModel.slabs))
            .where(TaxRegimeModel.effective_from <= as_of)
            .order_by(TaxRegimeModel.code, TaxRegimeModel.effective_from.desc())
        ).scalars()
        regimes: dict[str, TaxRegime] = {}
        for model in models:
            if model.code not in regimes:
                regimes[model.code] = model.to_engine()
        return regimes

    def regime(self, code: str, as_of: date) -> TaxRegime:
        """
        Raises:
            TaxRegimeNotFoundError: no version of ``code`` is effective yet.
        """
        regime = self.regimes_as_of(as_of).get(code)
        if regime is None:
            raise TaxRegimeNotFoundError(code, as_of.isoformat())
        return regime


class TaxProfileSelector(BaseSelector[EmployeeTaxSettingsModel]):
    """Per-employee tax inputs for one fiscal year."""

    def settings(
        self,
        organization_id: UUID,
        employee_id: UUID,
        fiscal_year: str,
    ) -> EmployeeTaxSettings | None:
        model = self.session.execute(
            select(EmployeeTaxSettingsModel).where(
                EmployeeTaxSettingsModel.organization_id == organization_id,
                EmployeeTaxSettingsModel.employee_id == employee_id,
                EmployeeTaxSettingsModel.fiscal_year == fiscal_year,
            )
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def approved_sections(
        self,
        organization_id: UUID,
        employee_ids: Iterable[UUID],
        fiscal_year: str,
    ) -> dict[UUID, dict[str, Decimal]]:
        """Sum of approved amounts per employee per section."""
        ids = list(employee_ids)
        if not ids:
            return {}
        rows = self.session.execute(
            select(
                InvestmentDeclarationModel.employee_id,
                InvestmentDeclarationModel.section,
                func.sum(InvestmentDeclarationModel.approved_amount),
            )
            .where(
                InvestmentDeclarationModel.organization_id == organization_id,
                InvestmentDeclarationModel.employee_id.in_(ids),
                InvestmentDeclarationModel.fiscal_year == fiscal_year,
                InvestmentDeclarationModel.status == DeclarationStatus.APPROVED.value,
            )
            .group_by(InvestmentDeclarationModel.employee_id, InvestmentDeclarationModel.section)
        ).all()
        sections: dict[UUID, dict[str, Decimal]] = defaultdict(dict)
        for employee_id, section, amount in rows:
            sections[employee_id][section] = Decimal(str(amount or ZERO))
        return dict(sections)

    def profiles(
        self,
        organization_id: UUID,
        employee_ids: Iterable[UUID],
        fiscal_year: str,
        default_regime_code: str,
    ) -> dict[UUID, TaxProfile]:
        """Resolved tax profile for every employee (defaults when no settings)."""
        ids = list(employee_ids)
        if not ids:
            return {}
        settings = {
            m.employee_id: m.to_dto()
            for m in self.session.execute(
                select(EmployeeTaxSettingsModel).where(
                    EmployeeTaxSettingsModel.organization_id == organization_id,
                    EmployeeTaxSettingsModel.employee_id.in_(ids),
                    EmployeeTaxSettingsModel.fiscal_year == fiscal_year,
                )
            ).scalars()
        }
        sections = self.approved_sections(organization_id, ids, fiscal_year)

        profiles: dict[UUID, TaxProfile] = {}
        for employee_id in ids:
            s = settings.get(employee_id)
            if s is None:
                profiles[employee_id] = TaxProfile(
                    employee_id=employee_id,
                    fiscal_year=fiscal_year,
                    regime_code=default_regime_code,
                    approved_sections=sections.get(employee_id, {}),
                )
                continue
            profiles[employee_id] = TaxProfile(
                employee_id=employee_id,
                fiscal_year=fiscal_year,
                regime_code=s.regime_code,
                approved_sections=sections.get(employee_id, {}),
                housing_exemption=s.housing_exemption,
                other_deductions=s.other_deductions,
                prior_employer_income=s.prior_employer_income,
                prior_employer_tax=s.prior_employer_tax,
            )
        return profiles

    def declarations(
        self,
        organization_id: UUID,
        fiscal_year: str | None = None,
        employee_id: UUID | None = None,
        status: DeclarationStatus | None = None,
    ) -> list[InvestmentDeclaration]:
        stmt = select(InvestmentDeclarationModel).where(
            InvestmentDeclarationModel.organization_id == organization_id,
        )
        if fiscal_year is not None:
            stmt = stmt.where(InvestmentDeclarationModel.fiscal_year == fiscal_year)
        if employee_id is not None:
            stmt = stmt.where(InvestmentDeclarationModel.employee_id == employee_id)
        if status is not None:
            stmt = stmt.where(InvestmentDeclarationModel.status == status.value)
        stmt = stmt.order_by(InvestmentDeclarationModel.created_at, InvestmentDeclarationModel.id)
        return [m.to_dto() for m in self.session.execute(stmt).scalars()]
