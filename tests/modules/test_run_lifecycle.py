"""
Run lifecycle: review, approval, rejection, lock, adjustment and deletion.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from payroll_kernel.exceptions import (
    AlreadyProcessedError,
    EntryLockedError,
    EntryNotFoundError,
    InvalidTransitionError,
    RunNotDeletableError,
    RunNotFoundError,
    UnauthenticatedActorError,
)
from payroll_modules.payroll.models import EntryStatus, RunStatus
from payroll_modules.payroll.selectors import PayrollRunSelector
from tests.conftest import standard_components


@pytest.fixture
def completed_run(run_service, create_employee, tax_regimes, org_id, test_actor_id):
    """A June 2024 run in ``completed`` with Asha and Vikram."""
    create_employee("Asha Rao", "Engineering")
    create_employee("Vikram Shah", "Finance", components=standard_components())
    return run_service.generate_run(org_id, "2024-06", actor_id=test_actor_id)


def _statuses(session, org_id, run_id):
    return {e.status for e in PayrollRunSelector(session).entries(org_id, run_id)}


class TestReviewPath:

    def test_submit_moves_entries(self, session, run_service, completed_run, org_id, test_actor_id):
        run = run_service.submit_run(org_id, completed_run.id, actor_id=test_actor_id)

        assert run.status == RunStatus.UNDER_REVIEW
        assert run.version == completed_run.version + 1
        assert _statuses(session, org_id, run.id) == {EntryStatus.UNDER_REVIEW}

    def test_full_path_to_lock(
        self, session, locked_run, org_id, test_actor_id, deterministic_clock, notifier,
    ):
        assert locked_run.status == RunStatus.LOCKED
        assert locked_run.locked_by == test_actor_id
        # SQLite returns naive datetimes
        assert locked_run.locked_at.replace(tzinfo=None) == deterministic_clock.now().replace(tzinfo=None)
        assert _statuses(session, org_id, locked_run.id) == {EntryStatus.LOCKED}
        assert notifier.event_types() == [
            "payroll.run.generated",
            "payroll.run.under_review",
            "payroll.run.approved",
            "payroll.run.locked",
        ]

    def test_reject_then_resubmit(self, session, run_service, completed_run, org_id, test_actor_id):
        run_service.submit_run(org_id, completed_run.id, actor_id=test_actor_id)

        rejected = run_service.reject_run(org_id, completed_run.id, actor_id=test_actor_id)
        assert rejected.status == RunStatus.REJECTED
        assert _statuses(session, org_id, completed_run.id) == {EntryStatus.REJECTED}

        resubmitted = run_service.resubmit_run(org_id, completed_run.id, actor_id=test_actor_id)
        assert resubmitted.status == RunStatus.UNDER_REVIEW
        assert _statuses(session, org_id, completed_run.id) == {EntryStatus.UNDER_REVIEW}

    def test_approved_run_can_still_be_rejected(self, run_service, completed_run, org_id, test_actor_id):
        run_service.submit_run(org_id, completed_run.id, actor_id=test_actor_id)
        run_service.approve_run(org_id, completed_run.id, actor_id=test_actor_id)

        run = run_service.reject_run(org_id, completed_run.id, actor_id=test_actor_id)

        assert run.status == RunStatus.REJECTED


class TestInvalidTransitions:

    def test_cannot_skip_review(self, session, run_service, completed_run, org_id, test_actor_id):
        with pytest.raises(InvalidTransitionError):
            run_service.approve_run(org_id, completed_run.id, actor_id=test_actor_id)

        run = PayrollRunSelector(session).get_run(org_id, completed_run.id)
        assert run.status == RunStatus.COMPLETED

    def test_repeat_submit_is_already_processed(self, run_service, completed_run, org_id, test_actor_id):
        run_service.submit_run(org_id, completed_run.id, actor_id=test_actor_id)

        with pytest.raises(AlreadyProcessedError) as exc_info:
            run_service.submit_run(org_id, completed_run.id, actor_id=test_actor_id)

        assert exc_info.value.code == "ALREADY_PROCESSED"

    def test_locked_run_is_terminal(self, run_service, locked_run, org_id, test_actor_id):
        with pytest.raises(InvalidTransitionError):
            run_service.reject_run(org_id, locked_run.id, actor_id=test_actor_id)

    def test_unknown_run(self, run_service, org_id, test_actor_id):
        with pytest.raises(RunNotFoundError):
            run_service.submit_run(org_id, uuid4(), actor_id=test_actor_id)

    def test_run_of_another_organization_is_not_found(self, run_service, completed_run, test_actor_id):
        with pytest.raises(RunNotFoundError):
            run_service.submit_run(uuid4(), completed_run.id, actor_id=test_actor_id)

    def test_actor_required(self, run_service, completed_run, org_id):
        with pytest.raises(UnauthenticatedActorError):
            run_service.submit_run(org_id, completed_run.id, actor_id=None)


class TestLock:

    def test_lock_publishes_one_balanced_posting(self, locked_run, ledger):
        (posting,) = ledger.postings

        assert posting.posting_type == "run_lock"
        assert posting.run_id == locked_run.id
        assert posting.pay_period == "2024-06"
        assert posting.currency == "INR"
        assert posting.total_debits == posting.total_credits == Decimal("108000")
        lines = {line.account_role: line for line in posting.lines}
        assert lines["SALARY_EXPENSE"].debit == Decimal("108000")
        assert lines["TAX_PAYABLE"].credit == Decimal("3089")
        assert lines["DEDUCTIONS_PAYABLE"].credit == Decimal("1800")
        assert lines["SALARIES_PAYABLE"].credit == Decimal("103111")

    def test_lock_blocked_until_every_entry_approved(
        self, session, run_service, completed_run, org_id, test_actor_id, publisher, ledger,
    ):
        run_service.submit_run(org_id, completed_run.id, actor_id=test_actor_id)
        run_service.approve_run(org_id, completed_run.id, actor_id=test_actor_id)
        entry = PayrollRunSelector(session).entries(org_id, completed_run.id)[0]
        run_service.transition_entry(org_id, entry.id, EntryStatus.REJECTED, actor_id=test_actor_id)

        with pytest.raises(InvalidTransitionError):
            run_service.lock_run(org_id, completed_run.id, actor_id=test_actor_id)

        publisher.drain()
        assert ledger.postings == []
        assert PayrollRunSelector(session).get_run(org_id, completed_run.id).status == RunStatus.APPROVED

    def test_no_posting_before_lock(self, run_service, completed_run, org_id, test_actor_id, publisher, ledger):
        run_service.submit_run(org_id, completed_run.id, actor_id=test_actor_id)
        run_service.approve_run(org_id, completed_run.id, actor_id=test_actor_id)
        publisher.drain()

        assert ledger.postings == []


class TestAdjustAbsenceDays:

    def test_adjust_recomputes_entry_and_totals(
        self, session, run_service, completed_run, org_id, test_actor_id,
    ):
        selector = PayrollRunSelector(session)
        entry = next(
            e for e in selector.entries(org_id, completed_run.id)
            if e.gross_earnings == Decimal("50000")
        )

        adjusted = run_service.adjust_lwp_days(org_id, entry.id, 2, actor_id=test_actor_id)

        assert adjusted.lwp_days == 2
        assert adjusted.paid_days == 18
        assert adjusted.gross_earnings == Decimal("45000")
        assert adjusted.absence_deduction == Decimal("5000")
        assert adjusted.net_pay == Decimal("43700")
        assert adjusted.version == entry.version + 1
        assert adjusted.check_invariants() == []
        run = selector.get_run(org_id, completed_run.id)
        assert run.totals.net_pay == completed_run.totals.net_pay - Decimal("5000")

    def test_adjust_rejected_entry_allowed(self, session, run_service, completed_run, org_id, test_actor_id):
        run_service.submit_run(org_id, completed_run.id, actor_id=test_actor_id)
        run_service.reject_run(org_id, completed_run.id, actor_id=test_actor_id)
        entry = PayrollRunSelector(session).entries(org_id, completed_run.id)[0]

        adjusted = run_service.adjust_lwp_days(org_id, entry.id, 1, actor_id=test_actor_id)

        assert adjusted.lwp_days == 1

    def test_locked_entry_cannot_be_adjusted(self, session, run_service, locked_run, org_id, test_actor_id):
        entry = PayrollRunSelector(session).entries(org_id, locked_run.id)[0]

        with pytest.raises(EntryLockedError):
            run_service.adjust_lwp_days(org_id, entry.id, 1, actor_id=test_actor_id)

    def test_negative_days_rejected(self, session, run_service, completed_run, org_id, test_actor_id):
        entry = PayrollRunSelector(session).entries(org_id, completed_run.id)[0]

        with pytest.raises(ValueError):
            run_service.adjust_lwp_days(org_id, entry.id, -1, actor_id=test_actor_id)

    def test_unknown_entry(self, run_service, org_id, test_actor_id):
        with pytest.raises(EntryNotFoundError):
            run_service.adjust_lwp_days(org_id, uuid4(), 1, actor_id=test_actor_id)


class TestDeleteRun:

    def test_delete_completed_run(self, session, run_service, completed_run, org_id, test_actor_id, publisher, notifier):
        run_service.delete_run(org_id, completed_run.id, actor_id=test_actor_id)

        selector = PayrollRunSelector(session)
        assert selector.find_run(org_id, completed_run.id) is None
        assert selector.entries(org_id, completed_run.id) == []
        publisher.drain()
        assert "payroll.run.deleted" in notifier.event_types()

    def test_period_free_after_delete(self, run_service, completed_run, org_id, test_actor_id):
        run_service.delete_run(org_id, completed_run.id, actor_id=test_actor_id)

        again = run_service.generate_run(org_id, "2024-06", actor_id=test_actor_id)

        assert again.id != completed_run.id
        assert again.employee_count == 2

    def test_approved_run_not_deletable(self, run_service, completed_run, org_id, test_actor_id):
        run_service.submit_run(org_id, completed_run.id, actor_id=test_actor_id)
        run_service.approve_run(org_id, completed_run.id, actor_id=test_actor_id)

        with pytest.raises(RunNotDeletableError):
            run_service.delete_run(org_id, completed_run.id, actor_id=test_actor_id)

    def test_run_with_an_approved_entry_not_deletable(
        self, session, run_service, completed_run, org_id, test_actor_id,
    ):
        run_service.submit_run(org_id, completed_run.id, actor_id=test_actor_id)
        entry = PayrollRunSelector(session).entries(org_id, completed_run.id)[0]
        run_service.transition_entry(org_id, entry.id, EntryStatus.APPROVED, actor_id=test_actor_id)

        with pytest.raises(RunNotDeletableError):
            run_service.delete_run(org_id, completed_run.id, actor_id=test_actor_id)

    def test_unknown_run(self, run_service, org_id, test_actor_id):
        with pytest.raises(RunNotFoundError):
            run_service.delete_run(org_id, uuid4(), actor_id=test_actor_id)


class TestRunQueries:

    def test_list_runs_by_status(self, session, run_service, completed_run, org_id, test_actor_id):
        run_service.generate_run(org_id, "2024-07", actor_id=test_actor_id)
        run_service.submit_run(org_id, completed_run.id, actor_id=test_actor_id)
        selector = PayrollRunSelector(session)

        assert [r.pay_period for r in selector.list_runs(org_id)] == ["2024-07", "2024-06"]
        assert [r.pay_period for r in selector.list_runs(org_id, RunStatus.UNDER_REVIEW)] == ["2024-06"]
