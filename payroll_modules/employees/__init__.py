"""Employee profiles (``payroll_modules.employees``)."""

from payroll_modules.employees.models import EmployeeProfile

__all__ = ["EmployeeProfile"]
