"""
Run exports (``payroll_modules.payroll.export``).

Tabular views of a run's current entries for finance teams:

  - run register as CSV or XLSX (one row per employee);
  - bank transfer file as CSV (locked runs only).

Column order is fixed; downstream spreadsheets address columns by position.
XLSX support requires openpyxl, imported only when an XLSX file is written.
"""

from __future__ import annotations

import csv
import io
from decimal import Decimal
from pathlib import Path
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from payroll_kernel.db.types import round_money
from payroll_kernel.exceptions import RunNotLockedError
from payroll_kernel.logging_config import get_logger
from payroll_modules.employees.selectors import EmployeeSelector
from payroll_modules.payroll.models import RunStatus
from payroll_modules.payroll.selectors import PayrollRunSelector

logger = get_logger("modules.payroll.export")

RUN_COLUMNS = (
    "Employee Name",
    "Department",
    "Job Title",
    "Annual CTC",
    "Gross Earnings",
    "Total Deductions",
    "Tax Withheld",
    "LWP Days",
    "LWP Deduction",
    "Working Days",
    "Paid Days",
    "Net Pay",
)

BANK_COLUMNS = ("Beneficiary Name", "Amount", "Remarks")


def _money(value: Decimal) -> str:
    return str(round_money(value))


class RunExporter:
    """Build export rows from the read side; never writes to the database."""

    def __init__(self, session: Session):
        self._runs = PayrollRunSelector(session)
        self._employees = EmployeeSelector(session)

    def rows(self, organization_id: UUID, run_id: UUID) -> list[dict[str, Any]]:
        """Register rows keyed by column name, ordered by employee name."""
        self._runs.get_run(organization_id, run_id)
        entries = self._runs.entries(organization_id, run_id)
        profiles = self._employees.profiles(organization_id, [e.employee_id for e in entries])

        rows = []
        for entry in entries:
            profile = profiles.get(entry.employee_id)
            rows.append({
                "Employee Name": profile.full_name if profile else str(entry.employee_id),
                "Department": (profile.department if profile else None) or "",
                "Job Title": (profile.job_title if profile else None) or "",
                "Annual CTC": entry.annual_cost,
                "Gross Earnings": entry.gross_earnings,
                "Total Deductions": entry.total_deductions,
                "Tax Withheld": entry.tax_withheld,
                "LWP Days": entry.lwp_days,
                "LWP Deduction": entry.absence_deduction,
                "Working Days": entry.working_days,
                "Paid Days": entry.paid_days,
                "Net Pay": entry.net_pay,
            })
        rows.sort(key=lambda r: r["Employee Name"].lower())
        return rows

    def to_csv(self, organization_id: UUID, run_id: UUID) -> str:
        """Run register as CSV text."""
        rows = self.rows(organization_id, run_id)
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(RUN_COLUMNS)
        for row in rows:
            writer.writerow(
                _money(row[c]) if isinstance(row[c], Decimal) else row[c]
                for c in RUN_COLUMNS
            )
        logger.info(
            "run_exported",
            extra={"run_id": str(run_id), "format": "csv", "row_count": len(rows)},
        )
        return buffer.getvalue()

    def to_xlsx(self, organization_id: UUID, run_id: UUID, destination: Path) -> Path:
        """Run register as an XLSX workbook written to ``destination``."""
        try:
            import openpyxl
        except ImportError as e:
            raise ImportError("XLSX export requires openpyxl. Install with: pip install openpyxl") from e

        run = self._runs.get_run(organization_id, run_id)
        rows = self.rows(organization_id, run_id)

        wb = openpyxl.Workbook()
        sheet = wb.active
        sheet.title = f"Payroll {run.pay_period}"
        sheet.append(list(RUN_COLUMNS))
        for row in rows:
            sheet.append([
                round_money(row[c]) if isinstance(row[c], Decimal) else row[c]
                for c in RUN_COLUMNS
            ])
        destination = Path(destination)
        wb.save(destination)

        logger.info(
            "run_exported",
            extra={
                "run_id": str(run_id),
                "format": "xlsx",
                "row_count": len(rows),
                "path": str(destination),
            },
        )
        return destination

    def bank_transfer_csv(self, organization_id: UUID, run_id: UUID) -> str:
        """
        Transfer instructions for a locked run; employees with nothing to
        pay are left out.

        Raises:
            RunNotLockedError: the run is not locked yet.
        """
        run = self._runs.get_run(organization_id, run_id)
        if run.status != RunStatus.LOCKED:
            raise RunNotLockedError(str(run_id), run.status.value)

        entries = self._runs.entries(organization_id, run_id)
        profiles = self._employees.profiles(organization_id, [e.employee_id for e in entries])

        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(BANK_COLUMNS)
        count = 0
        for entry in sorted(entries, key=lambda e: str(e.employee_id)):
            if entry.net_pay <= 0:
                continue
            profile = profiles.get(entry.employee_id)
            writer.writerow((
                profile.full_name if profile else str(entry.employee_id),
                _money(entry.net_pay),
                f"Salary {run.pay_period}",
            ))
            count += 1

        logger.info(
            "bank_transfer_exported",
            extra={"run_id": str(run_id), "row_count": count},
        )
        return buffer.getvalue()
