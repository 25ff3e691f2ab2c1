"""Tests for payroll_engines.proration -- pay ratio and prorated components."""

from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from payroll_engines.proration import (
    ComponentKind,
    ComponentSpec,
    ProrationEngine,
    order_components,
)
from payroll_kernel.exceptions import NegativeAmountError, ZeroWorkingDaysError


@pytest.fixture
def engine() -> ProrationEngine:
    return ProrationEngine()


def earning(name: str, annual: str, **kwargs) -> ComponentSpec:
    return ComponentSpec(name=name, kind=ComponentKind.EARNING, annual_amount=Decimal(annual), **kwargs)


def deduction(name: str, annual: str, **kwargs) -> ComponentSpec:
    return ComponentSpec(name=name, kind=ComponentKind.DEDUCTION, annual_amount=Decimal(annual), **kwargs)


class TestProratedAmounts:
    """Rounding and pay ratio."""

    def test_two_absence_days_in_twenty_two(self, engine):
        result = engine.prorate(22, 2, [earning("Basic", "600000")])

        assert result.paid_days == 20
        assert result.lwp_days == 2
        assert result.gross_earnings == Decimal("45455")
        assert result.pay_ratio == Decimal(20) / Decimal(22)

    def test_no_absence_pays_full_month(self, engine):
        result = engine.prorate(22, 0, [earning("Basic", "600001")])

        assert result.gross_earnings == Decimal("50000")
        assert result.absence_deduction == Decimal("0")

    def test_full_absence_pays_nothing(self, engine):
        result = engine.prorate(
            21, 21, [earning("Basic", "600000"), deduction("Provident Fund", "21600")],
        )

        assert result.paid_days == 0
        assert result.gross_earnings == Decimal("0")
        assert result.base_deductions == Decimal("0")
        assert result.absence_deduction == Decimal("50000")

    def test_absence_beyond_working_days_is_clamped(self, engine):
        result = engine.prorate(20, 25, [earning("Basic", "120000")])

        assert result.lwp_days == 20
        assert result.paid_days == 0

    def test_half_unit_rounds_up(self):
        # 6 / 12 = 0.5 rounds up; 30 / 24 = 1.25 rounds down
        assert ProrationEngine.prorated_amount(Decimal("6"), 1, 1) == Decimal("1")
        assert ProrationEngine.prorated_amount(Decimal("30"), 1, 2) == Decimal("1")

    def test_absence_deduction_is_full_minus_prorated(self, engine):
        result = engine.prorate(
            20, 2, [earning("Basic", "480000"), earning("HRA", "192000")],
        )

        assert result.full_period_earnings == Decimal("56000")
        assert result.gross_earnings == Decimal("36000") + Decimal("14400")
        assert result.absence_deduction == result.full_period_earnings - result.gross_earnings


class TestComponentOrdering:

    def test_components_ordered_by_display_order_then_sequence(self, engine):
        specs = [
            deduction("Provident Fund", "21600", display_order=10),
            earning("HRA", "192000", display_order=2, sequence=1),
            earning("Basic", "480000", display_order=1),
            earning("Bonus", "12000", display_order=2, sequence=0),
        ]
        result = engine.prorate(20, 0, specs)

        assert [c.name for c in result.components] == ["Basic", "Bonus", "HRA", "Provident Fund"]
        assert [s.name for s in order_components(specs)] == [c.name for c in result.components]

    def test_taxable_annual_earnings_skip_non_taxable_and_deductions(self, engine):
        result = engine.prorate(
            20, 5,
            [
                earning("Basic", "480000"),
                earning("Meal Allowance", "24000", taxable=False),
                deduction("Provident Fund", "21600"),
            ],
        )

        assert result.taxable_annual_earnings == Decimal("480000")


class TestProrationAnomalies:

    def test_zero_working_days(self, engine):
        with pytest.raises(ZeroWorkingDaysError) as exc_info:
            engine.prorate(0, 0, [earning("Basic", "600000")], pay_period="2024-06")

        assert exc_info.value.code == "ZERO_WORKING_DAYS"

    def test_negative_component(self, engine):
        with pytest.raises(NegativeAmountError):
            engine.prorate(20, 0, [earning("Basic", "-1")])

    def test_negative_absence_rejected(self, engine):
        with pytest.raises(ValueError):
            engine.prorate(20, -1, [earning("Basic", "600000")])


class TestProrationProperties:

    @given(
        annual=st.integers(min_value=0, max_value=50_000_000),
        working=st.integers(min_value=1, max_value=23),
        absence=st.integers(min_value=0, max_value=30),
    )
    @settings(max_examples=200, deadline=None)
    def test_prorated_never_exceeds_full_month(self, annual, working, absence):
        result = ProrationEngine().prorate(working, absence, [earning("Basic", str(annual))])

        assert Decimal("0") <= result.gross_earnings <= result.full_period_earnings
        assert result.paid_days + result.lwp_days == working
        assert result.gross_earnings == result.gross_earnings.to_integral_value()
