"""
Tax ORM Persistence Models (``payroll_modules.tax.orm``).

Invariants enforced:
    - Regimes are unique per (code, effective_from); a new statutory year is
      a new row, never an edit of a row already used by a run.
    - Slab rates and cess rates are Numeric(9, 6) fractions.
    - Mappings of section -> amount are stored as JSON with amounts as
      strings, so no value passes through float.
    - Settings are unique per (organization, employee, fiscal year).
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payroll_kernel.db.base import TrackedBase


def amounts_to_json(amounts) -> dict[str, str]:
    return {str(k): str(v) for k, v in (amounts or {}).items()}


def amounts_from_json(data) -> dict[str, Decimal]:
    return {str(k): Decimal(str(v)) for k, v in (data or {}).items()}


class TaxRegimeModel(TrackedBase):
    """ORM model for the engine's ``TaxRegime``."""

    __tablename__ = "payroll_tax_regimes"

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    effective_from: Mapped[date] = mapped_column(Date, nullable=False)
    standard_deduction: Mapped[Decimal] = mapped_column(nullable=False)
    permits_itemized_deductions: Mapped[bool] = mapped_column(Boolean, nullable=False)
    section_ceilings: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    slabs: Mapped[list["TaxSlabModel"]] = relationship(
        back_populates="regime",
        cascade="all, delete-orphan",
        order_by=lambda: TaxSlabModel.sequence,
    )

    __table_args__ = (
        UniqueConstraint("code", "effective_from", name="uq_payroll_tax_regime_code_from"),
    )

    def to_engine(self):
        from payroll_engines.withholding import TaxRegime, TaxSlab
        return TaxRegime(
            code=self.code,
            name=self.name,
            slabs=tuple(
                TaxSlab(lower=s.lower, upper=s.upper, rate=s.rate, cess_rate=s.cess_rate)
                for s in self.slabs
            ),
            standard_deduction=self.standard_deduction,
            permits_itemized_deductions=self.permits_itemized_deductions,
            section_ceilings=amounts_from_json(self.section_ceilings),
            effective_from=self.effective_from,
        )

    @classmethod
    def from_engine(cls, regime, created_by_id: UUID) -> "TaxRegimeModel":
        return cls(
            code=regime.code,
            name=regime.name,
            effective_from=regime.effective_from,
            standard_deduction=regime.standard_deduction,
            permits_itemized_deductions=regime.permits_itemized_deductions,
            section_ceilings=amounts_to_json(regime.section_ceilings),
            created_by_id=created_by_id,
            slabs=[
                TaxSlabModel(
                    sequence=index,
                    lower=slab.lower,
                    upper=slab.upper,
                    rate=slab.rate,
                    cess_rate=slab.cess_rate,
                    created_by_id=created_by_id,
                )
                for index, slab in enumerate(regime.slabs)
            ],
        )

    def __repr__(self) -> str:
        return f"<TaxRegimeModel {self.code} from {self.effective_from}>"


class TaxSlabModel(TrackedBase):
    """ORM model for the engine's ``TaxSlab``."""

    __tablename__ = "payroll_tax_slabs"

    regime_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_tax_regimes.id", ondelete="CASCADE"), nullable=False,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    lower: Mapped[Decimal] = mapped_column(nullable=False)
    upper: Mapped[Decimal | None] = mapped_column(nullable=True)
    rate: Mapped[Decimal] = mapped_column(Numeric(9, 6), nullable=False)
    cess_rate: Mapped[Decimal] = mapped_column(Numeric(9, 6), nullable=False)

    regime: Mapped[TaxRegimeModel] = relationship(back_populates="slabs")

    __table_args__ = (
        UniqueConstraint("regime_id", "sequence", name="uq_payroll_tax_slab_sequence"),
    )

    def __repr__(self) -> str:
        return f"<TaxSlabModel ({self.lower}, {self.upper}] @ {self.rate}>"


class EmployeeTaxSettingsModel(TrackedBase):
    """ORM model for ``EmployeeTaxSettings``."""

    __tablename__ = "payroll_employee_tax_settings"

    organization_id: Mapped[UUID] = mapped_column(nullable=False)
    employee_id: Mapped[UUID] = mapped_column(nullable=False)
    fiscal_year: Mapped[str] = mapped_column(String(10), nullable=False)
    regime_code: Mapped[str] = mapped_column(String(50), nullable=False)
    declared_sections: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    housing_exemption: Mapped[Decimal] = mapped_column(nullable=False)
    other_deductions: Mapped[Decimal] = mapped_column(nullable=False)
    prior_employer_income: Mapped[Decimal] = mapped_column(nullable=False)
    prior_employer_tax: Mapped[Decimal] = mapped_column(nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "organization_id", "employee_id", "fiscal_year",
            name="uq_payroll_tax_settings_employee_year",
        ),
    )

    def to_dto(self):
        from payroll_modules.tax.models import EmployeeTaxSettings
        return EmployeeTaxSettings(
            id=self.id,
            organization_id=self.organization_id,
            employee_id=self.employee_id,
            fiscal_year=self.fiscal_year,
            regime_code=self.regime_code,
            declared_sections=amounts_from_json(self.declared_sections),
            housing_exemption=self.housing_exemption,
            other_deductions=self.other_deductions,
            prior_employer_income=self.prior_employer_income,
            prior_employer_tax=self.prior_employer_tax,
        )

    def __repr__(self) -> str:
        return f"<EmployeeTaxSettingsModel {self.employee_id} {self.fiscal_year} {self.regime_code}>"


class InvestmentDeclarationModel(TrackedBase):
    """ORM model for ``InvestmentDeclaration``."""

    __tablename__ = "payroll_investment_declarations"

    organization_id: Mapped[UUID] = mapped_column(nullable=False)
    employee_id: Mapped[UUID] = mapped_column(nullable=False)
    fiscal_year: Mapped[str] = mapped_column(String(10), nullable=False)
    section: Mapped[str] = mapped_column(String(50), nullable=False)
    declared_amount: Mapped[Decimal] = mapped_column(nullable=False)
    approved_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    reviewed_by: Mapped[UUID | None] = mapped_column(nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    review_notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    __table_args__ = (
        Index(
            "idx_payroll_declaration_lookup",
            "organization_id", "fiscal_year", "status", "employee_id",
        ),
    )

    def to_dto(self):
        from payroll_modules.tax.models import DeclarationStatus, InvestmentDeclaration
        return InvestmentDeclaration(
            id=self.id,
            organization_id=self.organization_id,
            employee_id=self.employee_id,
            fiscal_year=self.fiscal_year,
            section=self.section,
            declared_amount=self.declared_amount,
            approved_amount=self.approved_amount,
            status=DeclarationStatus(self.status),
            reviewed_by=self.reviewed_by,
            reviewed_at=self.reviewed_at,
            review_notes=self.review_notes,
        )

    def __repr__(self) -> str:
        return (
            f"<InvestmentDeclarationModel {self.section} {self.declared_amount} "
            f"({self.status})>"
        )
