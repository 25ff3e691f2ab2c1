"""
Tax Domain Models (``payroll_modules.tax.models``).

Responsibility
--------------
Per-employee tax inputs: the yearly settings (regime choice, exemptions,
prior-employer figures) and investment declarations with their review
status.  Regimes and slabs themselves are the engine's ``TaxRegime`` /
``TaxSlab`` value objects.

Invariants enforced
-------------------
* Only APPROVED declarations contribute to ``TaxProfile.approved_sections``.
* Fiscal years are labelled ``YYYY-YY`` (``2024-25``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Mapping
from uuid import UUID

from payroll_kernel.db.types import ZERO


class DeclarationStatus(Enum):
    """Investment declaration review states."""
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass(frozen=True)
class EmployeeTaxSettings:
    """One employee's tax choices for one fiscal year.

    ``declared_sections`` is what the employee declared up front and is kept
    for reference; withholding uses approved declarations only.
    """
    organization_id: UUID
    employee_id: UUID
    fiscal_year: str
    regime_code: str
    declared_sections: Mapping[str, Decimal] = field(default_factory=dict)
    housing_exemption: Decimal = ZERO
    other_deductions: Decimal = ZERO
    prior_employer_income: Decimal = ZERO
    prior_employer_tax: Decimal = ZERO
    id: UUID | None = None


@dataclass(frozen=True)
class InvestmentDeclaration:
    """A claimed deduction under one statutory section."""
    id: UUID
    organization_id: UUID
    employee_id: UUID
    fiscal_year: str
    section: str
    declared_amount: Decimal
    status: DeclarationStatus
    approved_amount: Decimal | None = None
    reviewed_by: UUID | None = None
    reviewed_at: datetime | None = None
    review_notes: str | None = None


@dataclass(frozen=True)
class TaxProfile:
    """Everything about an employee the withholding engine needs, resolved."""
    employee_id: UUID
    fiscal_year: str
    regime_code: str
    approved_sections: Mapping[str, Decimal] = field(default_factory=dict)
    housing_exemption: Decimal = ZERO
    other_deductions: Decimal = ZERO
    prior_employer_income: Decimal = ZERO
    prior_employer_tax: Decimal = ZERO
