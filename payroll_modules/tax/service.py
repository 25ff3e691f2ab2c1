"""
Tax write services (``payroll_modules.tax.service``).

    TaxReferenceService  -- persist statutory regimes (from YAML or code)
    EmployeeTaxService   -- employee settings and investment declarations

Transaction boundary: each public method commits on success and rolls back
and re-raises on failure.

Invariants enforced:
    - A declaration is reviewed once: approve/reject is a compare-and-set on
      ``status = 'submitted'`` (``DeclarationAlreadyReviewedError``).
    - An approved amount never exceeds the declared amount.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from payroll_engines.withholding import TaxRegime
from payroll_kernel.db.types import ZERO
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.exceptions import (
    DeclarationAlreadyReviewedError,
    DeclarationNotFoundError,
)
from payroll_kernel.logging_config import get_logger
from payroll_modules._validation import require_context
from payroll_modules.tax.models import (
    DeclarationStatus,
    EmployeeTaxSettings,
    InvestmentDeclaration,
)
from payroll_modules.tax.orm import (
    EmployeeTaxSettingsModel,
    InvestmentDeclarationModel,
    TaxRegimeModel,
    amounts_to_json,
)

logger = get_logger("modules.tax.service")


class TaxReferenceService:
    """Register statutory regimes; existing (code, effective_from) rows are kept."""

    def __init__(self, session: Session):
        self._session = session

    def register_regimes(self, regimes: Iterable[TaxRegime], actor_id: UUID) -> int:
        """Persist regimes not yet stored. Returns the number added.

        Raises:
            ValueError: a regime has no ``effective_from``.
        """
        added = 0
        try:
            for regime in regimes:
                if regime.effective_from is None:
                    raise ValueError(f"Regime {regime.code!r} needs effective_from to be stored")
                exists = self._session.execute(
                    select(TaxRegimeModel.id).where(
                        TaxRegimeModel.code == regime.code,
                        TaxRegimeModel.effective_from == regime.effective_from,
                    )
                ).scalar_one_or_none()
                if exists is not None:
                    continue
                self._session.add(TaxRegimeModel.from_engine(regime, created_by_id=actor_id))
                added += 1
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        logger.info("tax_regimes_registered", extra={"added": added})
        return added


class EmployeeTaxService:
    """Employee tax settings and investment declaration review."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    def save_settings(self, settings: EmployeeTaxSettings, actor_id: UUID) -> EmployeeTaxSettings:
        """Create or replace settings for (organization, employee, fiscal year)."""
        require_context(settings.organization_id, actor_id, "save_tax_settings")
        try:
            model = self._session.execute(
                select(EmployeeTaxSettingsModel).where(
                    EmployeeTaxSettingsModel.organization_id == settings.organization_id,
                    EmployeeTaxSettingsModel.employee_id == settings.employee_id,
                    EmployeeTaxSettingsModel.fiscal_year == settings.fiscal_year,
                )
            ).scalar_one_or_none()
            if model is None:
                model = EmployeeTaxSettingsModel(
                    organization_id=settings.organization_id,
                    employee_id=settings.employee_id,
                    fiscal_year=settings.fiscal_year,
                    created_by_id=actor_id,
                )
                self._session.add(model)
            else:
                model.updated_by_id = actor_id
            model.regime_code = settings.regime_code
            model.declared_sections = amounts_to_json(settings.declared_sections)
            model.housing_exemption = settings.housing_exemption
            model.other_deductions = settings.other_deductions
            model.prior_employer_income = settings.prior_employer_income
            model.prior_employer_tax = settings.prior_employer_tax
            self._session.flush()
            result = model.to_dto()
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        logger.info(
            "tax_settings_saved",
            extra={
                "employee_id": str(settings.employee_id),
                "fiscal_year": settings.fiscal_year,
                "regime_code": settings.regime_code,
            },
        )
        return result

    def submit_declaration(
        self,
        organization_id: UUID,
        employee_id: UUID,
        fiscal_year: str,
        section: str,
        declared_amount: Decimal,
        actor_id: UUID,
    ) -> InvestmentDeclaration:
        require_context(organization_id, actor_id, "submit_declaration")
        if declared_amount < ZERO:
            raise ValueError("declared_amount cannot be negative")
        try:
            model = InvestmentDeclarationModel(
                organization_id=organization_id,
                employee_id=employee_id,
                fiscal_year=fiscal_year,
                section=section,
                declared_amount=declared_amount,
                status=DeclarationStatus.SUBMITTED.value,
                created_by_id=actor_id,
            )
            self._session.add(model)
            self._session.flush()
            result = model.to_dto()
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        logger.info(
            "declaration_submitted",
            extra={
                "declaration_id": str(result.id),
                "employee_id": str(employee_id),
                "section": section,
                "declared_amount": str(declared_amount),
            },
        )
        return result

    def approve_declaration(
        self,
        organization_id: UUID,
        declaration_id: UUID,
        actor_id: UUID,
        approved_amount: Decimal | None = None,
        notes: str | None = None,
    ) -> InvestmentDeclaration:
        """Approve, optionally for less than declared (defaults to declared)."""
        require_context(organization_id, actor_id, "approve_declaration")
        current = self._get(organization_id, declaration_id)
        amount = current.declared_amount if approved_amount is None else approved_amount
        if amount < ZERO or amount > current.declared_amount:
            raise ValueError(
                f"approved_amount {amount} must be between 0 and {current.declared_amount}"
            )
        return self._review(
            organization_id, declaration_id, actor_id,
            DeclarationStatus.APPROVED, amount, notes,
        )

    def reject_declaration(
        self,
        organization_id: UUID,
        declaration_id: UUID,
        actor_id: UUID,
        notes: str | None = None,
    ) -> InvestmentDeclaration:
        require_context(organization_id, actor_id, "reject_declaration")
        self._get(organization_id, declaration_id)
        return self._review(
            organization_id, declaration_id, actor_id,
            DeclarationStatus.REJECTED, ZERO, notes,
        )

    def _get(self, organization_id: UUID, declaration_id: UUID) -> InvestmentDeclaration:
        model = self._session.execute(
            select(InvestmentDeclarationModel).where(
                InvestmentDeclarationModel.organization_id == organization_id,
                InvestmentDeclarationModel.id == declaration_id,
            )
        ).scalar_one_or_none()
        if model is None:
            raise DeclarationNotFoundError(str(declaration_id))
        return model.to_dto()

    def _review(
        self,
        organization_id: UUID,
        declaration_id: UUID,
        actor_id: UUID,
        status: DeclarationStatus,
        approved_amount: Decimal,
        notes: str | None,
    ) -> InvestmentDeclaration:
        try:
            result = self._session.execute(
                update(InvestmentDeclarationModel)
                .where(
                    InvestmentDeclarationModel.organization_id == organization_id,
                    InvestmentDeclarationModel.id == declaration_id,
                    InvestmentDeclarationModel.status == DeclarationStatus.SUBMITTED.value,
                )
                .values(
                    status=status.value,
                    approved_amount=approved_amount,
                    reviewed_by=actor_id,
                    reviewed_at=self._clock.now(),
                    review_notes=notes,
                    updated_by_id=actor_id,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                actual = self._session.execute(
                    select(InvestmentDeclarationModel.status).where(
                        InvestmentDeclarationModel.id == declaration_id,
                    )
                ).scalar_one()
                raise DeclarationAlreadyReviewedError(str(declaration_id), actual)
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        self._session.expire_all()
        reviewed = self._get(organization_id, declaration_id)
        logger.info(
            "declaration_reviewed",
            extra={
                "declaration_id": str(declaration_id),
                "status": status.value,
                "approved_amount": str(approved_amount),
                "reviewer_id": str(actor_id),
            },
        )
        return reviewed
