"""Tax reference data, employee settings and declarations (``payroll_modules.tax``)."""

from payroll_modules.tax.models import (
    DeclarationStatus,
    EmployeeTaxSettings,
    InvestmentDeclaration,
    TaxProfile,
)
from payroll_modules.tax.selectors import TaxProfileSelector, TaxReferenceSelector
from payroll_modules.tax.service import EmployeeTaxService, TaxReferenceService

__all__ = [
    "DeclarationStatus",
    "EmployeeTaxSettings",
    "InvestmentDeclaration",
    "TaxProfile",
    "TaxProfileSelector",
    "TaxReferenceSelector",
    "EmployeeTaxService",
    "TaxReferenceService",
]
