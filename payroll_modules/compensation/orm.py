"""
Compensation ORM Persistence Models (``payroll_modules.compensation.orm``).

Invariants enforced:
    - All monetary fields use Decimal -- NEVER float.
    - ``kind`` stored as String(50) containing the ComponentKind .value.
    - Components carry an explicit ``sequence`` (insertion order) so that
      ordering ties on ``display_order`` resolve the same way every time.
    - Overlap of effective ranges is enforced by ``CompensationService``;
      ``idx_payroll_structure_lookup`` serves the as-of lookup.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payroll_kernel.db.base import TrackedBase


class CompensationStructureModel(TrackedBase):
    """ORM model for ``CompensationStructure``."""

    __tablename__ = "payroll_compensation_structures"

    organization_id: Mapped[UUID] = mapped_column(nullable=False)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_employee_profiles.id"), nullable=False,
    )
    annual_cost: Mapped[Decimal] = mapped_column(nullable=False)
    effective_from: Mapped[date] = mapped_column(Date, nullable=False)
    effective_to: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    revision: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    components: Mapped[list["CompensationComponentModel"]] = relationship(
        back_populates="structure",
        cascade="all, delete-orphan",
        order_by=lambda: [
            CompensationComponentModel.display_order,
            CompensationComponentModel.sequence,
        ],
    )

    __table_args__ = (
        UniqueConstraint(
            "employee_id", "revision", name="uq_payroll_structure_employee_revision",
        ),
        Index(
            "idx_payroll_structure_lookup",
            "organization_id", "employee_id", "is_active", "effective_from",
        ),
    )

    def to_dto(self):
        from payroll_modules.compensation.models import CompensationStructure
        return CompensationStructure(
            id=self.id,
            organization_id=self.organization_id,
            employee_id=self.employee_id,
            annual_cost=self.annual_cost,
            effective_from=self.effective_from,
            effective_to=self.effective_to,
            is_active=self.is_active,
            revision=self.revision,
            components=tuple(c.to_dto() for c in self.components),
        )

    def __repr__(self) -> str:
        return (
            f"<CompensationStructureModel employee={self.employee_id} "
            f"rev={self.revision} {self.effective_from}..{self.effective_to}>"
        )


class CompensationComponentModel(TrackedBase):
    """ORM model for ``CompensationComponent``."""

    __tablename__ = "payroll_compensation_components"

    organization_id: Mapped[UUID] = mapped_column(nullable=False)
    structure_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_compensation_structures.id", ondelete="CASCADE"), nullable=False,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    kind: Mapped[str] = mapped_column(String(50), nullable=False)
    annual_amount: Mapped[Decimal] = mapped_column(nullable=False)
    percentage_of_basic: Mapped[Decimal | None] = mapped_column(Numeric(9, 6), nullable=True)
    taxable: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    display_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    structure: Mapped[CompensationStructureModel] = relationship(back_populates="components")

    __table_args__ = (
        UniqueConstraint("structure_id", "sequence", name="uq_payroll_component_sequence"),
    )

    def to_dto(self):
        from payroll_engines.proration import ComponentKind
        from payroll_modules.compensation.models import CompensationComponent
        return CompensationComponent(
            id=self.id,
            name=self.name,
            kind=ComponentKind(self.kind),
            annual_amount=self.annual_amount,
            taxable=self.taxable,
            display_order=self.display_order,
            sequence=self.sequence,
            percentage_of_basic=self.percentage_of_basic,
        )

    def __repr__(self) -> str:
        return f"<CompensationComponentModel {self.name} {self.kind} {self.annual_amount}>"
