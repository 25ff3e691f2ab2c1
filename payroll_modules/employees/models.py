"""
Employee Domain Models (``payroll_modules.employees.models``).

Read-only reference data owned by the HR side of the product.  The payroll
engine uses it for export columns, bank transfer files and for routing a
dispute to the employee's first-line reviewer.
"""

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True)
class EmployeeProfile:
    """An employee as payroll sees them."""
    id: UUID
    organization_id: UUID
    full_name: str
    email: str | None = None
    department: str | None = None
    job_title: str | None = None
    manager_id: UUID | None = None  # first-line dispute reviewer
    bank_account_number: str | None = None
    is_active: bool = True
