"""
CompensationService -- write side of compensation structures.

Contract:
    Flush-only (``BaseService``): the caller commits.  Creating or revising a
    structure never leaves two active structures covering the same date for
    one employee.

Invariants enforced:
    - Effective ranges for one employee never overlap
      (``OverlappingStructureError``).
    - Percentage-of-basic components are resolved to an annual amount from
      the structure's Basic earning at write time, rounded to whole units.
    - Revision numbers increase by one per employee.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, or_, select

from payroll_engines.proration import ComponentKind
from payroll_kernel.db.types import ZERO, round_to_unit
from payroll_kernel.exceptions import NegativeAmountError, OverlappingStructureError
from payroll_kernel.logging_config import get_logger
from payroll_kernel.services.base import BaseService
from payroll_modules.compensation.models import CompensationComponent, CompensationStructure
from payroll_modules.compensation.orm import (
    CompensationComponentModel,
    CompensationStructureModel,
)

logger = get_logger("modules.compensation.service")

BASIC_COMPONENT_NAME = "basic"
HUNDRED = Decimal("100")


def resolve_percentage_components(
    components: Sequence[CompensationComponent],
) -> list[CompensationComponent]:
    """Fill in annual amounts derived from the Basic component.

    Raises:
        ValueError: a percentage component exists but no Basic earning does.
    """
    basic = next(
        (
            c for c in components
            if c.name.strip().lower() == BASIC_COMPONENT_NAME
            and c.kind == ComponentKind.EARNING
            and c.percentage_of_basic is None
        ),
        None,
    )
    resolved = []
    for index, component in enumerate(components):
        component = replace(component, sequence=index)
        if component.percentage_of_basic is not None:
            if basic is None:
                raise ValueError(
                    f"Component {component.name!r} is a percentage of basic "
                    "but the structure has no Basic earning"
                )
            component = replace(
                component,
                annual_amount=round_to_unit(
                    basic.annual_amount * component.percentage_of_basic / HUNDRED
                ),
            )
        resolved.append(component)
    return resolved


class CompensationService(BaseService[CompensationStructureModel]):
    """Create, revise and deactivate compensation structures."""

    def create_structure(
        self,
        organization_id: UUID,
        employee_id: UUID,
        effective_from: date,
        components: Sequence[CompensationComponent],
        actor_id: UUID,
        effective_to: date | None = None,
        annual_cost: Decimal | None = None,
    ) -> CompensationStructure:
        """
        Add a structure for ``employee_id``.

        ``annual_cost`` defaults to the sum of annual earnings.

        Raises:
            OverlappingStructureError: another active structure overlaps.
            NegativeAmountError: a component amount is negative.
            ValueError: inverted date range or unresolvable percentage.
        """
        if effective_to is not None and effective_to < effective_from:
            raise ValueError(f"effective_to {effective_to} precedes effective_from {effective_from}")

        resolved = resolve_percentage_components(components)
        for component in resolved:
            if component.annual_amount < ZERO:
                raise NegativeAmountError(component.name, str(component.annual_amount))

        conflict = self._find_overlap(organization_id, employee_id, effective_from, effective_to)
        if conflict is not None:
            logger.warning(
                "compensation_overlap_rejected",
                extra={
                    "employee_id": str(employee_id),
                    "conflicting_structure_id": str(conflict),
                    "effective_from": effective_from.isoformat(),
                },
            )
            raise OverlappingStructureError(str(employee_id), str(conflict))

        revision = self._next_revision(employee_id)
        if annual_cost is None:
            annual_cost = sum(
                (c.annual_amount for c in resolved if c.kind == ComponentKind.EARNING), ZERO,
            )

        model = CompensationStructureModel(
            organization_id=organization_id,
            employee_id=employee_id,
            annual_cost=annual_cost,
            effective_from=effective_from,
            effective_to=effective_to,
            is_active=True,
            revision=revision,
            created_by_id=actor_id,
            components=[
                CompensationComponentModel(
                    organization_id=organization_id,
                    name=c.name,
                    kind=c.kind.value,
                    annual_amount=c.annual_amount,
                    percentage_of_basic=c.percentage_of_basic,
                    taxable=c.taxable,
                    display_order=c.display_order,
                    sequence=c.sequence,
                    created_by_id=actor_id,
                )
                for c in resolved
            ],
        )
        self.session.add(model)
        self.session.flush()

        logger.info(
            "compensation_structure_created",
            extra={
                "structure_id": str(model.id),
                "employee_id": str(employee_id),
                "revision": revision,
                "annual_cost": str(annual_cost),
                "component_count": len(resolved),
            },
        )
        return model.to_dto()

    def revise_structure(
        self,
        organization_id: UUID,
        employee_id: UUID,
        effective_from: date,
        components: Sequence[CompensationComponent],
        actor_id: UUID,
        annual_cost: Decimal | None = None,
    ) -> CompensationStructure:
        """
        Close the structure in force and start a new revision.

        The prior structure ends the day before ``effective_from``.

        Raises:
            OverlappingStructureError: a later structure already exists.
        """
        prior = self.session.execute(
            select(CompensationStructureModel)
            .where(
                CompensationStructureModel.organization_id == organization_id,
                CompensationStructureModel.employee_id == employee_id,
                CompensationStructureModel.is_active.is_(True),
                CompensationStructureModel.effective_from < effective_from,
                or_(
                    CompensationStructureModel.effective_to.is_(None),
                    CompensationStructureModel.effective_to >= effective_from,
                ),
            )
        ).scalar_one_or_none()

        if prior is not None:
            prior.effective_to = effective_from - timedelta(days=1)
            prior.updated_by_id = actor_id
            self.session.flush()
            logger.info(
                "compensation_structure_closed",
                extra={
                    "structure_id": str(prior.id),
                    "employee_id": str(employee_id),
                    "effective_to": prior.effective_to.isoformat(),
                },
            )

        return self.create_structure(
            organization_id=organization_id,
            employee_id=employee_id,
            effective_from=effective_from,
            components=components,
            actor_id=actor_id,
            annual_cost=annual_cost,
        )

    def deactivate_structure(
        self,
        organization_id: UUID,
        structure_id: UUID,
        actor_id: UUID,
    ) -> None:
        model = self.session.execute(
            select(CompensationStructureModel).where(
                CompensationStructureModel.organization_id == organization_id,
                CompensationStructureModel.id == structure_id,
            )
        ).scalar_one()
        model.is_active = False
        model.updated_by_id = actor_id
        self.session.flush()
        logger.info("compensation_structure_deactivated", extra={"structure_id": str(structure_id)})

    def _find_overlap(
        self,
        organization_id: UUID,
        employee_id: UUID,
        effective_from: date,
        effective_to: date | None,
    ) -> UUID | None:
        stmt = select(CompensationStructureModel.id).where(
            CompensationStructureModel.organization_id == organization_id,
            CompensationStructureModel.employee_id == employee_id,
            CompensationStructureModel.is_active.is_(True),
            or_(
                CompensationStructureModel.effective_to.is_(None),
                CompensationStructureModel.effective_to >= effective_from,
            ),
        )
        if effective_to is not None:
            stmt = stmt.where(CompensationStructureModel.effective_from <= effective_to)
        return self.session.execute(stmt.limit(1)).scalar_one_or_none()

    def _next_revision(self, employee_id: UUID) -> int:
        current = self.session.execute(
            select(func.max(CompensationStructureModel.revision)).where(
                CompensationStructureModel.employee_id == employee_id,
            )
        ).scalar_one()
        return (current or 0) + 1
