"""Compensation structures: effective dating, revisions and derived amounts."""

from datetime import date
from decimal import Decimal

import pytest

from payroll_engines.proration import ComponentKind
from payroll_kernel.exceptions import NegativeAmountError, OverlappingStructureError
from payroll_modules.compensation.models import CompensationComponent
from payroll_modules.compensation.selectors import CompensationResolver
from payroll_modules.compensation.service import (
    CompensationService,
    resolve_percentage_components,
)
from tests.conftest import basic_only, standard_components


class TestPercentageComponents:

    def test_percentage_of_basic_resolved(self):
        resolved = resolve_percentage_components(standard_components())

        by_name = {c.name: c for c in resolved}
        assert by_name["HRA"].annual_amount == Decimal("192000")
        assert [c.sequence for c in resolved] == [0, 1, 2, 3]

    def test_percentage_without_basic(self):
        components = [
            CompensationComponent(
                name="HRA", kind=ComponentKind.EARNING, annual_amount=Decimal("0"),
                percentage_of_basic=Decimal("40"),
            ),
        ]

        with pytest.raises(ValueError):
            resolve_percentage_components(components)

    def test_basic_matched_case_insensitively(self):
        components = [
            CompensationComponent(name=" BASIC ", kind=ComponentKind.EARNING, annual_amount=Decimal("100000")),
            CompensationComponent(
                name="Special", kind=ComponentKind.EARNING, annual_amount=Decimal("0"),
                percentage_of_basic=Decimal("12.5"),
            ),
        ]

        assert resolve_percentage_components(components)[1].annual_amount == Decimal("12500")


class TestStructureDating:

    def test_annual_cost_defaults_to_earnings(self, session, create_employee, org_id):
        employee = create_employee("Vikram Shah", components=standard_components())

        structure = CompensationResolver(session).resolve(org_id, employee, date(2024, 6, 1))

        # 480000 + 192000 + 24000; provident fund is a deduction
        assert structure.annual_cost == Decimal("696000")
        assert structure.revision == 1

    def test_overlap_rejected(self, session, create_employee, org_id, test_actor_id):
        employee = create_employee("Asha Rao")

        with pytest.raises(OverlappingStructureError) as exc_info:
            CompensationService(session).create_structure(
                org_id, employee, date(2024, 9, 1), basic_only("700000"), actor_id=test_actor_id,
            )

        assert exc_info.value.code == "OVERLAPPING_STRUCTURE"

    def test_revision_closes_prior_structure(self, session, create_employee, org_id, test_actor_id):
        employee = create_employee("Asha Rao")

        revised = CompensationService(session).revise_structure(
            org_id, employee, date(2024, 9, 1), basic_only("720000"), actor_id=test_actor_id,
        )
        session.commit()

        resolver = CompensationResolver(session)
        history = resolver.history(org_id, employee)
        assert [s.revision for s in history] == [1, 2]
        assert history[0].effective_to == date(2024, 8, 31)
        assert revised.effective_to is None
        assert resolver.resolve(org_id, employee, date(2024, 8, 31)).annual_cost == Decimal("600000")
        assert resolver.resolve(org_id, employee, date(2024, 9, 1)).annual_cost == Decimal("720000")

    def test_nothing_covers_dates_before_first_structure(self, session, create_employee, org_id):
        employee = create_employee("Asha Rao")

        assert CompensationResolver(session).resolve(org_id, employee, date(2024, 3, 31)) is None

    def test_inverted_range(self, session, create_employee, org_id, test_actor_id):
        employee = create_employee("Asha Rao", effective_from=date(2025, 1, 1))

        with pytest.raises(ValueError):
            CompensationService(session).create_structure(
                org_id, employee, date(2024, 6, 1), basic_only(), actor_id=test_actor_id,
                effective_to=date(2024, 5, 1),
            )

    def test_negative_component(self, session, create_employee, org_id, test_actor_id):
        employee = create_employee("Asha Rao", effective_from=date(2025, 1, 1))

        with pytest.raises(NegativeAmountError):
            CompensationService(session).create_structure(
                org_id, employee, date(2024, 4, 1), basic_only("-1"), actor_id=test_actor_id,
                effective_to=date(2024, 12, 31),
            )
