"""
Compensation Domain Models (``payroll_modules.compensation.models``).

Responsibility
--------------
Frozen value objects for an employee's compensation structure: the annual
cost figure plus an ordered list of earning/deduction components.

Invariants enforced
-------------------
* All models are ``frozen=True``.
* Monetary fields are ``Decimal`` -- never ``float``.
* ``components`` is always ordered by (display_order, sequence).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from payroll_engines.proration import ComponentKind, ComponentSpec, order_components


@dataclass(frozen=True)
class CompensationComponent:
    """One earning or deduction line of a structure.

    ``percentage_of_basic`` (e.g. ``Decimal("40")``) derives the annual
    amount from the structure's Basic component when the structure is
    written; the resolved ``annual_amount`` is what payroll uses.
    """
    name: str
    kind: ComponentKind
    annual_amount: Decimal
    taxable: bool = True
    display_order: int = 0
    sequence: int = 0
    percentage_of_basic: Decimal | None = None
    id: UUID | None = None

    def to_spec(self) -> ComponentSpec:
        return ComponentSpec(
            name=self.name,
            kind=self.kind,
            annual_amount=self.annual_amount,
            taxable=self.taxable,
            display_order=self.display_order,
            sequence=self.sequence,
            percentage_of_basic=self.percentage_of_basic,
        )


@dataclass(frozen=True)
class CompensationStructure:
    """The compensation in force for one employee over a date range."""
    id: UUID
    organization_id: UUID
    employee_id: UUID
    annual_cost: Decimal
    effective_from: date
    effective_to: date | None
    is_active: bool
    revision: int
    components: tuple[CompensationComponent, ...] = ()

    def covers(self, as_of: date) -> bool:
        if not self.is_active or as_of < self.effective_from:
            return False
        return self.effective_to is None or as_of <= self.effective_to

    def component_specs(self) -> list[ComponentSpec]:
        return order_components([c.to_spec() for c in self.components])
