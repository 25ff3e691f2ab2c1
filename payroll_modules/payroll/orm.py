"""
Payroll ORM Persistence Models (``payroll_modules.payroll.orm``).

Responsibility:
    SQLAlchemy ORM models that persist payroll runs, entries, the typed
    breakdown lines of each entry and the anomalies recorded while a run was
    generated.  Each ORM class provides ``to_dto()``.

Invariants enforced:
    - One run per (organization, pay period): ``uq_payroll_run_org_period``
      is the serialization point for run generation.
    - An entry is revised at most once: ``revises_entry_id`` is UNIQUE.  The
      "current" entries of a run are those no other entry revises.
    - All monetary fields use Decimal -- NEVER float.
    - Enum fields stored as String(50) containing the enum .value string.
    - ``version`` increases on every status change (compare-and-set updates
      bump it explicitly).

Audit relevance:
    A locked entry is never updated or deleted.  Corrections insert a new
    entry pointing at the original, so the original remains queryable.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    exists,
)
from sqlalchemy.orm import Mapped, aliased, mapped_column, relationship

from payroll_kernel.db.base import TrackedBase

# ---------------------------------------------------------------------------
# PayrollRunModel
# ---------------------------------------------------------------------------


class PayrollRunModel(TrackedBase):
    """
    ORM model for ``PayrollRun``.

    Guarantees:
        - Totals are written in the same commit as the entries they sum.
        - ``failure_reason`` is set exactly when status is ``failed``.
    """

    __tablename__ = "payroll_runs"

    organization_id: Mapped[UUID] = mapped_column(nullable=False)
    pay_period: Mapped[str] = mapped_column(String(7), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    total_gross: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_base_deductions: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_tax: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_deductions: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_net: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    employee_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    anomaly_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    generated_by: Mapped[UUID] = mapped_column(nullable=False)
    locked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    locked_by: Mapped[UUID | None] = mapped_column(nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    anomalies: Mapped[list["RunAnomalyModel"]] = relationship(
        back_populates="run",
        cascade="all, delete-orphan",
        order_by=lambda: RunAnomalyModel.created_at,
    )

    __table_args__ = (
        UniqueConstraint("organization_id", "pay_period", name="uq_payroll_run_org_period"),
        Index("idx_payroll_run_status", "organization_id", "status"),
    )

    def to_dto(self):
        from payroll_modules.payroll.models import PayrollRun, RunStatus, RunTotals
        return PayrollRun(
            id=self.id,
            organization_id=self.organization_id,
            pay_period=self.pay_period,
            status=RunStatus(self.status),
            totals=RunTotals(
                gross_earnings=self.total_gross,
                base_deductions=self.total_base_deductions,
                tax_withheld=self.total_tax,
                total_deductions=self.total_deductions,
                net_pay=self.total_net,
                employee_count=self.employee_count,
            ),
            anomaly_count=self.anomaly_count,
            generated_by=self.generated_by,
            generated_at=self.created_at,
            locked_at=self.locked_at,
            locked_by=self.locked_by,
            failure_reason=self.failure_reason,
            version=self.version,
            anomalies=tuple(a.to_dto() for a in self.anomalies),
        )

    def __repr__(self) -> str:
        return f"<PayrollRunModel {self.pay_period} ({self.status}) v{self.version}>"


# ---------------------------------------------------------------------------
# PayrollEntryModel
# ---------------------------------------------------------------------------


class PayrollEntryModel(TrackedBase):
    """
    ORM model for ``PayrollEntry``.

    Contract:
        ``lines`` holds the ordered breakdown, one row per component.
        ``revises_entry_id`` links a correction to the entry it supersedes.
    """

    __tablename__ = "payroll_entries"

    organization_id: Mapped[UUID] = mapped_column(nullable=False)
    run_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_runs.id", ondelete="CASCADE"), nullable=False,
    )
    employee_id: Mapped[UUID] = mapped_column(nullable=False)
    structure_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_compensation_structures.id"), nullable=False,
    )
    working_days: Mapped[int] = mapped_column(Integer, nullable=False)
    lwp_days: Mapped[int] = mapped_column(Integer, nullable=False)
    paid_days: Mapped[int] = mapped_column(Integer, nullable=False)
    pay_ratio: Mapped[Decimal] = mapped_column(Numeric(12, 8), nullable=False)
    gross_earnings: Mapped[Decimal] = mapped_column(nullable=False)
    base_deductions: Mapped[Decimal] = mapped_column(nullable=False)
    tax_withheld: Mapped[Decimal] = mapped_column(nullable=False)
    total_deductions: Mapped[Decimal] = mapped_column(nullable=False)
    net_pay: Mapped[Decimal] = mapped_column(nullable=False)
    absence_deduction: Mapped[Decimal] = mapped_column(nullable=False)
    annual_cost: Mapped[Decimal] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    revises_entry_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("payroll_entries.id"), nullable=True, unique=True,
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    lines: Mapped[list["PayrollEntryLineModel"]] = relationship(
        back_populates="entry",
        cascade="all, delete-orphan",
        order_by=lambda: PayrollEntryLineModel.position,
    )

    __table_args__ = (
        Index("idx_payroll_entry_run", "organization_id", "run_id", "status"),
        Index("idx_payroll_entry_employee", "organization_id", "employee_id"),
    )

    def to_dto(self):
        from payroll_modules.payroll.models import EntryStatus, PayrollEntry
        return PayrollEntry(
            id=self.id,
            organization_id=self.organization_id,
            run_id=self.run_id,
            employee_id=self.employee_id,
            structure_id=self.structure_id,
            working_days=self.working_days,
            lwp_days=self.lwp_days,
            paid_days=self.paid_days,
            pay_ratio=self.pay_ratio,
            lines=tuple(line.to_dto() for line in self.lines),
            gross_earnings=self.gross_earnings,
            base_deductions=self.base_deductions,
            tax_withheld=self.tax_withheld,
            total_deductions=self.total_deductions,
            net_pay=self.net_pay,
            absence_deduction=self.absence_deduction,
            annual_cost=self.annual_cost,
            status=EntryStatus(self.status),
            revises_entry_id=self.revises_entry_id,
            version=self.version,
        )

    @classmethod
    def from_computed(
        cls,
        computed,
        organization_id: UUID,
        run_id: UUID,
        status: str,
        created_by_id: UUID,
        revises_entry_id: UUID | None = None,
    ) -> "PayrollEntryModel":
        """Build an entry (and its lines) from a ``ComputedEntry``."""
        proration = computed.proration
        model = cls(
            organization_id=organization_id,
            run_id=run_id,
            employee_id=computed.employee_id,
            structure_id=computed.structure_id,
            working_days=proration.working_days,
            lwp_days=proration.lwp_days,
            paid_days=proration.paid_days,
            pay_ratio=proration.pay_ratio,
            gross_earnings=proration.gross_earnings,
            base_deductions=proration.base_deductions,
            tax_withheld=computed.tax_withheld,
            total_deductions=computed.total_deductions,
            net_pay=computed.net_pay,
            absence_deduction=proration.absence_deduction,
            annual_cost=computed.annual_cost,
            status=status,
            revises_entry_id=revises_entry_id,
            version=1,
            created_by_id=created_by_id,
        )
        model.lines = [
            PayrollEntryLineModel(
                organization_id=organization_id,
                position=position,
                name=line.name,
                kind=line.kind.value,
                annual_amount=line.annual_amount,
                prorated_amount=line.prorated_amount,
                taxable=line.taxable,
                display_order=line.display_order,
                created_by_id=created_by_id,
            )
            for position, line in enumerate(computed.lines)
        ]
        return model

    def apply_computed(self, computed, updated_by_id: UUID) -> None:
        """Overwrite figures and lines in place (editable entries only)."""
        proration = computed.proration
        self.working_days = proration.working_days
        self.lwp_days = proration.lwp_days
        self.paid_days = proration.paid_days
        self.pay_ratio = proration.pay_ratio
        self.gross_earnings = proration.gross_earnings
        self.base_deductions = proration.base_deductions
        self.tax_withheld = computed.tax_withheld
        self.total_deductions = computed.total_deductions
        self.net_pay = computed.net_pay
        self.absence_deduction = proration.absence_deduction
        self.annual_cost = computed.annual_cost
        self.version = self.version + 1
        self.updated_by_id = updated_by_id
        for line, prorated in zip(self.lines, computed.lines):
            line.prorated_amount = prorated.prorated_amount
            line.updated_by_id = updated_by_id

    def __repr__(self) -> str:
        return (
            f"<PayrollEntryModel employee={self.employee_id} net={self.net_pay} "
            f"({self.status})>"
        )


class PayrollEntryLineModel(TrackedBase):
    """ORM model for ``EntryLine``."""

    __tablename__ = "payroll_entry_lines"

    organization_id: Mapped[UUID] = mapped_column(nullable=False)
    entry_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_entries.id", ondelete="CASCADE"), nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    kind: Mapped[str] = mapped_column(String(50), nullable=False)
    annual_amount: Mapped[Decimal] = mapped_column(nullable=False)
    prorated_amount: Mapped[Decimal] = mapped_column(nullable=False)
    taxable: Mapped[bool] = mapped_column(Boolean, nullable=False)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False)

    entry: Mapped[PayrollEntryModel] = relationship(back_populates="lines")

    __table_args__ = (
        UniqueConstraint("entry_id", "position", name="uq_payroll_entry_line_position"),
    )

    def to_dto(self):
        from payroll_engines.proration import ComponentKind
        from payroll_modules.payroll.models import EntryLine
        return EntryLine(
            name=self.name,
            kind=ComponentKind(self.kind),
            annual_amount=self.annual_amount,
            prorated_amount=self.prorated_amount,
            taxable=self.taxable,
            display_order=self.display_order,
        )


# ---------------------------------------------------------------------------
# RunAnomalyModel
# ---------------------------------------------------------------------------


class RunAnomalyModel(TrackedBase):
    """An employee excluded from a run (ComputationAnomaly or missing tax data)."""

    __tablename__ = "payroll_run_anomalies"

    organization_id: Mapped[UUID] = mapped_column(nullable=False)
    run_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_runs.id", ondelete="CASCADE"), nullable=False,
    )
    employee_id: Mapped[UUID] = mapped_column(nullable=False)
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    message: Mapped[str] = mapped_column(String(2000), nullable=False)

    run: Mapped[PayrollRunModel] = relationship(back_populates="anomalies")

    def to_dto(self):
        from payroll_modules.payroll.models import RunAnomaly
        return RunAnomaly(employee_id=self.employee_id, code=self.code, message=self.message)


def is_current_entry():
    """SQL predicate: the entry has not been superseded by a correction."""
    revision = aliased(PayrollEntryModel)
    return ~exists().where(revision.revises_entry_id == PayrollEntryModel.id)
