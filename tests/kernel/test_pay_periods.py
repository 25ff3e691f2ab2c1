"""Tests for payroll_kernel.domain.periods."""

from datetime import date

import pytest

from payroll_kernel.domain.periods import PayPeriod, clip_range
from payroll_kernel.exceptions import MalformedPeriodError


class TestParsing:

    def test_parse_round_trips_code(self):
        period = PayPeriod.parse("2024-06")

        assert (period.year, period.month) == (2024, 6)
        assert str(period) == "2024-06"

    @pytest.mark.parametrize("code", ["2024-6", "2024-13", "24-06", "June 2024", "", None, "2024-00"])
    def test_malformed_codes(self, code):
        with pytest.raises(MalformedPeriodError) as exc_info:
            PayPeriod.parse(code)

        assert exc_info.value.code == "MALFORMED_PERIOD"

    def test_bounds(self):
        feb = PayPeriod.parse("2024-02")

        assert feb.start == date(2024, 2, 1)
        assert feb.end == date(2024, 2, 29)


class TestWorkingDays:

    def test_june_2024(self):
        assert PayPeriod(2024, 6).working_days() == 20

    def test_custom_weekend(self):
        # Sundays only: June 2024 has five
        assert PayPeriod(2024, 6).working_days(weekend={6}) == 25

    def test_clip_range(self):
        june = PayPeriod(2024, 6)

        assert clip_range(date(2024, 5, 20), date(2024, 6, 3), june) == (date(2024, 6, 1), date(2024, 6, 3))
        assert clip_range(date(2024, 7, 1), date(2024, 7, 3), june) is None


class TestFiscalYear:

    def test_label(self):
        assert PayPeriod(2024, 6).fiscal_year_label() == "2024-25"
        assert PayPeriod(2025, 2).fiscal_year_label() == "2024-25"
        assert PayPeriod(2024, 6).fiscal_year_label(start_month=1) == "2024"

    @pytest.mark.parametrize(
        "code, remaining",
        [("2024-04", 12), ("2024-06", 10), ("2025-01", 3), ("2025-03", 1)],
    )
    def test_remaining_periods_count_current(self, code, remaining):
        assert PayPeriod.parse(code).remaining_periods_in_fiscal_year() == remaining

    def test_periods_before(self):
        before = PayPeriod(2024, 6).fiscal_year_periods_before()

        assert [p.code for p in before] == ["2024-04", "2024-05"]

    def test_shift_across_year(self):
        assert PayPeriod(2024, 12).shift(1) == PayPeriod(2025, 1)
        assert PayPeriod(2024, 1).shift(-1) == PayPeriod(2023, 12)
