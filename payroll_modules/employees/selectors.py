"""
Employee selectors (``payroll_modules.employees.selectors``).

Read-only lookups of employee profiles, always scoped to one organization.
"""

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import select

from payroll_kernel.selectors.base import BaseSelector
from payroll_modules.employees.models import EmployeeProfile
from payroll_modules.employees.orm import EmployeeProfileModel


class EmployeeSelector(BaseSelector[EmployeeProfileModel]):
    """Profiles by id within an organization."""

    def get(self, organization_id: UUID, employee_id: UUID) -> EmployeeProfile | None:
        model = self.session.execute(
            select(EmployeeProfileModel).where(
                EmployeeProfileModel.organization_id == organization_id,
                EmployeeProfileModel.id == employee_id,
            )
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def profiles(
        self,
        organization_id: UUID,
        employee_ids: Iterable[UUID],
    ) -> dict[UUID, EmployeeProfile]:
        ids = list(employee_ids)
        if not ids:
            return {}
        models = self.session.execute(
            select(EmployeeProfileModel).where(
                EmployeeProfileModel.organization_id == organization_id,
                EmployeeProfileModel.id.in_(ids),
            )
        ).scalars()
        return {m.id: m.to_dto() for m in models}
