"""Run register and bank transfer exports, and the analytics read side."""

import csv
import io
from datetime import date
from decimal import Decimal
from uuid import uuid4

import openpyxl
import pytest

from payroll_kernel.exceptions import PartialPersistenceError, RunNotFoundError, RunNotLockedError
from payroll_modules.payroll.export import BANK_COLUMNS, RUN_COLUMNS, RunExporter
from payroll_modules.payroll.selectors import PayrollAnalyticsSelector
from tests.conftest import standard_components


def _read_csv(text):
    return list(csv.reader(io.StringIO(text)))


class TestRunRegister:

    def test_csv_header_and_rows(self, session, locked_run, org_id):
        rows = _read_csv(RunExporter(session).to_csv(org_id, locked_run.id))

        assert tuple(rows[0]) == RUN_COLUMNS
        assert [r[0] for r in rows[1:]] == ["Asha Rao", "Vikram Shah"]
        assert rows[1] == [
            "Asha Rao", "Engineering", "Engineer", "600000.00", "50000.00", "1300.00",
            "1300.00", "0", "0.00", "20", "20", "48700.00",
        ]

    def test_register_available_before_lock(self, session, run_service, create_employee, tax_regimes, org_id, test_actor_id):
        create_employee("Zoya Khan")
        create_employee("arjun Mehta")
        run = run_service.generate_run(org_id, "2024-06", actor_id=test_actor_id)

        rows = RunExporter(session).rows(org_id, run.id)

        assert [r["Employee Name"] for r in rows] == ["arjun Mehta", "Zoya Khan"]

    def test_xlsx(self, session, locked_run, org_id, tmp_path):
        path = RunExporter(session).to_xlsx(org_id, locked_run.id, tmp_path / "register.xlsx")

        sheet = openpyxl.load_workbook(path).active
        values = list(sheet.iter_rows(values_only=True))
        assert sheet.title == "Payroll 2024-06"
        assert values[0] == RUN_COLUMNS
        assert len(values) == 3
        assert values[1][0] == "Asha Rao"
        assert Decimal(str(values[1][-1])) == Decimal("48700")

    def test_unknown_run(self, session, org_id):
        with pytest.raises(RunNotFoundError):
            RunExporter(session).to_csv(org_id, uuid4())


class TestBankTransfer:

    def test_locked_run_rows(self, session, locked_run, org_id):
        rows = _read_csv(RunExporter(session).bank_transfer_csv(org_id, locked_run.id))

        assert tuple(rows[0]) == BANK_COLUMNS
        assert sorted(rows[1:]) == [
            ["Asha Rao", "48700.00", "Salary 2024-06"],
            ["Vikram Shah", "54411.00", "Salary 2024-06"],
        ]

    def test_requires_locked_run(self, session, run_service, create_employee, tax_regimes, org_id, test_actor_id):
        create_employee("Asha Rao")
        run = run_service.generate_run(org_id, "2024-06", actor_id=test_actor_id)

        with pytest.raises(RunNotLockedError) as exc_info:
            RunExporter(session).bank_transfer_csv(org_id, run.id)

        assert exc_info.value.code == "RUN_NOT_LOCKED"


class TestAnalytics:

    @pytest.fixture
    def two_periods(self, run_service, create_employee, add_unpaid_leave, tax_regimes, org_id, test_actor_id):
        asha = create_employee("Asha Rao", "Engineering")
        create_employee("Vikram Shah", "Finance", components=standard_components())
        create_employee("Nikhil Das", None)
        add_unpaid_leave(asha, date(2024, 6, 3), date(2024, 6, 4))
        april = run_service.generate_run(org_id, "2024-04", actor_id=test_actor_id)
        june = run_service.generate_run(org_id, "2024-06", actor_id=test_actor_id)
        return april, june

    def test_cost_trend(self, session, two_periods, org_id):
        trend = PayrollAnalyticsSelector(session).cost_trend(org_id)

        assert [p.pay_period for p in trend] == ["2024-04", "2024-06"]
        assert [p.employee_count for p in trend] == [3, 3]
        # Asha loses two of twenty days in June
        assert trend[0].gross_earnings - trend[1].gross_earnings == Decimal("5000")

    def test_period_filter(self, session, two_periods, org_id):
        trend = PayrollAnalyticsSelector(session).cost_trend(org_id, from_period="2024-05")

        assert [p.pay_period for p in trend] == ["2024-06"]

    def test_department_costs(self, session, two_periods, org_id):
        _, june = two_periods

        costs = PayrollAnalyticsSelector(session).department_costs(org_id, june.id)

        assert [(c.department, c.employee_count) for c in costs] == [
            ("Engineering", 1), ("Finance", 1), ("Unassigned", 1),
        ]
        assert costs[0].gross_earnings == Decimal("45000")
        assert costs[1].gross_earnings == Decimal("58000")

    def test_withholding_trend(self, session, two_periods, org_id):
        trend = PayrollAnalyticsSelector(session).withholding_trend(org_id)

        assert [p.pay_period for p in trend] == ["2024-04", "2024-06"]
        assert all(p.tax_withheld > 0 for p in trend)

    def test_absence_impact(self, session, two_periods, org_id):
        impact = PayrollAnalyticsSelector(session).absence_impact_trend(org_id)

        assert [(i.pay_period, i.lwp_days, i.affected_employees) for i in impact] == [
            ("2024-04", 0, 0), ("2024-06", 2, 1),
        ]
        assert impact[1].absence_deduction == Decimal("5000")

    def test_failed_runs_not_reported(
        self, session, run_service, create_employee, tax_regimes, org_id, test_actor_id, monkeypatch,
    ):
        create_employee("Asha Rao")

        def _explode(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(run_service, "_persist_entries", _explode)
        with pytest.raises(PartialPersistenceError):
            run_service.generate_run(org_id, "2024-06", actor_id=test_actor_id)

        assert PayrollAnalyticsSelector(session).cost_trend(org_id) == []
