"""Tests for payroll_engines.withholding -- slab tax and period withholding."""

from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from payroll_config import load_tax_regimes
from payroll_engines.withholding import (
    TaxRegime,
    TaxSlab,
    WithholdingEngine,
    WithholdingInput,
)
from payroll_kernel.exceptions import InvalidTaxRegimeError

REGIMES = {r.code: r for r in load_tax_regimes()}
NEW = REGIMES["new"]
OLD = REGIMES["old"]


@pytest.fixture
def engine() -> WithholdingEngine:
    return WithholdingEngine()


class TestSlabTax:

    def test_new_regime_liability(self, engine):
        # 600000 - 50000 standard = 550000; 250000 at 5% = 12500; cess 4% = 500
        result = engine.compute(
            WithholdingInput(annual_income=Decimal("600000"), regime=NEW, remaining_periods=10)
        )

        assert result.taxable_income == Decimal("550000")
        assert result.slab_tax == Decimal("12500.00")
        assert result.cess == Decimal("500.00")
        assert result.annual_liability == Decimal("13000.00")
        assert result.period_withholding == Decimal("1300")

    def test_breakdown_stops_at_taxable_income(self, engine):
        lines = engine.slab_tax(Decimal("622000"), NEW)

        assert [line.lower for line in lines] == [Decimal("0"), Decimal("300000"), Decimal("600000")]
        assert lines[-1].taxable_portion == Decimal("22000")
        assert sum(line.tax for line in lines) == Decimal("17200")

    def test_income_below_standard_deduction_owes_nothing(self, engine):
        result = engine.compute(WithholdingInput(annual_income=Decimal("40000"), regime=NEW))

        assert result.taxable_income == Decimal("0")
        assert result.period_withholding == Decimal("0")


class TestItemizedDeductions:

    def test_old_regime_caps_sections(self, engine):
        inp = WithholdingInput(
            annual_income=Decimal("900000"),
            regime=OLD,
            section_deductions={"80C": Decimal("200000")},
            remaining_periods=12,
        )

        assert engine.itemized_deductions(inp) == Decimal("150000")
        result = engine.compute(inp)
        # 700000 taxable: 12500 + 40000 = 52500, cess 2100
        assert result.taxable_income == Decimal("700000")
        assert result.annual_liability == Decimal("54600.00")
        assert result.period_withholding == Decimal("4550")

    def test_new_regime_ignores_declarations(self, engine):
        inp = WithholdingInput(
            annual_income=Decimal("900000"),
            regime=NEW,
            section_deductions={"80C": Decimal("150000")},
            housing_exemption=Decimal("60000"),
        )

        assert engine.itemized_deductions(inp) == Decimal("0")

    def test_prior_employer_income_and_tax(self, engine):
        result = engine.compute(
            WithholdingInput(
                annual_income=Decimal("600000"),
                regime=NEW,
                prior_employer_income=Decimal("300000"),
                prior_employer_tax=Decimal("5000"),
                remaining_periods=4,
            )
        )

        # 850000 taxable: 15000 + 25000 = 40000, cess 1600
        assert result.gross_income == Decimal("900000")
        assert result.annual_liability == Decimal("41600.00")
        assert result.remaining_liability == Decimal("36600.00")
        assert result.period_withholding == Decimal("9150")


class TestWithholdingEdges:

    def test_over_withheld_yields_zero(self, engine):
        result = engine.compute(
            WithholdingInput(
                annual_income=Decimal("600000"),
                regime=NEW,
                tax_already_withheld=Decimal("20000"),
                remaining_periods=3,
            )
        )

        assert result.remaining_liability == Decimal("0.00")
        assert result.period_withholding == Decimal("0")

    def test_zero_remaining_periods_rejected(self, engine):
        with pytest.raises(ValueError):
            engine.compute(
                WithholdingInput(annual_income=Decimal("1"), regime=NEW, remaining_periods=0)
            )

    def test_regime_with_overlapping_slabs_is_invalid(self):
        with pytest.raises(InvalidTaxRegimeError):
            TaxRegime(
                code="bad",
                name="Overlapping",
                slabs=(
                    TaxSlab(Decimal("0"), Decimal("500000"), Decimal("0.1")),
                    TaxSlab(Decimal("400000"), None, Decimal("0.2")),
                ),
            )


class TestWithholdingProperties:

    @given(
        low=st.integers(min_value=0, max_value=5_000_000),
        delta=st.integers(min_value=0, max_value=5_000_000),
    )
    @settings(max_examples=200, deadline=None)
    def test_liability_is_monotonic_in_taxable_income(self, low, delta):
        engine = WithholdingEngine()
        lower = engine.annual_liability(Decimal(low), NEW)
        higher = engine.annual_liability(Decimal(low + delta), NEW)

        assert lower <= higher

    @given(
        income=st.integers(min_value=0, max_value=10_000_000),
        withheld=st.integers(min_value=0, max_value=3_000_000),
        periods=st.integers(min_value=1, max_value=12),
    )
    @settings(max_examples=200, deadline=None)
    def test_period_withholding_never_negative(self, income, withheld, periods):
        result = WithholdingEngine().compute(
            WithholdingInput(
                annual_income=Decimal(income),
                regime=OLD,
                tax_already_withheld=Decimal(withheld),
                remaining_periods=periods,
            )
        )

        assert result.period_withholding >= Decimal("0")
