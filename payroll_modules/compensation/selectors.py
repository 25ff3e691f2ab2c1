"""
CompensationResolver -- the active structure for an employee on a date.

Read-only.  "No active structure" is a distinct ``None`` result, not an
error: the run aggregator simply leaves that employee out of the run.

Selection rule:
    active AND effective_from <= as_of AND (effective_to IS NULL OR
    effective_to >= as_of).  Overlap is prevented on write; should two rows
    still match, the latest ``effective_from`` (then highest revision) wins
    and a warning is logged.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.orm import selectinload

from payroll_kernel.logging_config import get_logger
from payroll_kernel.selectors.base import BaseSelector
from payroll_modules.compensation.models import CompensationStructure
from payroll_modules.compensation.orm import CompensationStructureModel

logger = get_logger("modules.compensation.selectors")


class CompensationResolver(BaseSelector[CompensationStructureModel]):
    """Resolve compensation structures as of a date."""

    def _covering(self, organization_id: UUID, as_of: date):
        return (
            select(CompensationStructureModel)
            .options(selectinload(CompensationStructureModel.components))
            .where(
                CompensationStructureModel.organization_id == organization_id,
                CompensationStructureModel.is_active.is_(True),
                CompensationStructureModel.effective_from <= as_of,
                or_(
                    CompensationStructureModel.effective_to.is_(None),
                    CompensationStructureModel.effective_to >= as_of,
                ),
            )
            .order_by(
                CompensationStructureModel.employee_id,
                CompensationStructureModel.effective_from.desc(),
                CompensationStructureModel.revision.desc(),
            )
        )

    def resolve(
        self,
        organization_id: UUID,
        employee_id: UUID,
        as_of: date,
    ) -> CompensationStructure | None:
        """The structure covering ``as_of``, or None."""
        return self.resolve_all(organization_id, as_of, [employee_id]).get(employee_id)

    def resolve_all(
        self,
        organization_id: UUID,
        as_of: date,
        employee_ids: Iterable[UUID] | None = None,
    ) -> dict[UUID, CompensationStructure]:
        """Structures covering ``as_of`` keyed by employee (bulk read)."""
        stmt = self._covering(organization_id, as_of)
        if employee_ids is not None:
            ids = list(employee_ids)
            if not ids:
                return {}
            stmt = stmt.where(CompensationStructureModel.employee_id.in_(ids))

        resolved: dict[UUID, CompensationStructure] = {}
        for model in self.session.execute(stmt).scalars():
            if model.employee_id in resolved:
                logger.warning(
                    "compensation_overlap_detected",
                    extra={
                        "employee_id": str(model.employee_id),
                        "kept_structure_id": str(resolved[model.employee_id].id),
                        "ignored_structure_id": str(model.id),
                    },
                )
                continue
            resolved[model.employee_id] = model.to_dto()

        logger.debug(
            "compensation_resolved",
            extra={"as_of": as_of.isoformat(), "structure_count": len(resolved)},
        )
        return resolved

    def get_structure(
        self,
        organization_id: UUID,
        structure_id: UUID,
    ) -> CompensationStructure | None:
        model = self.session.execute(
            select(CompensationStructureModel)
            .options(selectinload(CompensationStructureModel.components))
            .where(
                CompensationStructureModel.organization_id == organization_id,
                CompensationStructureModel.id == structure_id,
            )
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def history(self, organization_id: UUID, employee_id: UUID) -> list[CompensationStructure]:
        """All revisions for an employee, oldest first."""
        models = self.session.execute(
            select(CompensationStructureModel)
            .options(selectinload(CompensationStructureModel.components))
            .where(
                CompensationStructureModel.organization_id == organization_id,
                CompensationStructureModel.employee_id == employee_id,
            )
            .order_by(CompensationStructureModel.revision)
        ).scalars()
        return [m.to_dto() for m in models]
