"""Compensation structures (``payroll_modules.compensation``)."""

from payroll_modules.compensation.models import CompensationComponent, CompensationStructure
from payroll_modules.compensation.selectors import CompensationResolver
from payroll_modules.compensation.service import CompensationService

__all__ = [
    "CompensationComponent",
    "CompensationStructure",
    "CompensationResolver",
    "CompensationService",
]
