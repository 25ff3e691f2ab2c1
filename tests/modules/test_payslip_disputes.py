"""
Payslip disputes: three review stages and the correction they authorize.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from payroll_batch import BatchProcessor
from payroll_kernel.exceptions import (
    DisputeAlreadyOpenError,
    DisputeNotFoundError,
    DisputeStageError,
    EntryAlreadyRevisedError,
    EntryLockedError,
    EntryNotDisputableError,
    InvalidTransitionError,
)
from payroll_modules.disputes.models import DisputeCategory, DisputeStatus
from payroll_modules.disputes.selectors import DisputeSelector
from payroll_modules.payroll.models import CorrectionRequest, EntryStatus, RunStatus
from payroll_modules.payroll.selectors import PayrollRunSelector

REVIEWER = uuid4()


def _locked_entry(session, org_id, run, gross):
    return next(
        e for e in PayrollRunSelector(session).entries(org_id, run.id)
        if e.gross_earnings == Decimal(gross)
    )


def _raise(dispute_service, org_id, entry, actor_id):
    return dispute_service.raise_dispute(
        org_id, entry.id, DisputeCategory.SALARY_MISMATCH,
        "Basic should reflect the April revision", actor_id=actor_id,
    )


def _to_finance(dispute_service, org_id, dispute):
    dispute_service.review_first_line(org_id, dispute.id, "forward", reviewer_id=REVIEWER)
    return dispute_service.review_people_ops(org_id, dispute.id, "forward", reviewer_id=REVIEWER)


class TestDisputeChain:

    def test_full_chain_issues_correction(
        self, session, dispute_service, locked_run, org_id, test_actor_id, publisher, ledger, notifier,
    ):
        original = _locked_entry(session, org_id, locked_run, "50000")
        dispute = _raise(dispute_service, org_id, original, test_actor_id)
        assert dispute.status == DisputeStatus.PENDING_FIRST_LINE

        forwarded = _to_finance(dispute_service, org_id, dispute)
        assert forwarded.status == DisputeStatus.PENDING_FINANCE
        assert forwarded.first_line.reviewer_id == REVIEWER
        assert forwarded.people_ops.reviewer_id == REVIEWER

        resolved = dispute_service.review_finance(
            org_id, dispute.id, "approve", reviewer_id=REVIEWER,
            correction=CorrectionRequest(
                reason="April increment missed",
                component_overrides={"Basic": Decimal("720000")},
            ),
        )

        assert resolved.status == DisputeStatus.APPROVED
        assert resolved.resolved_at is not None
        assert resolved.resolution_notes == "Approved by finance; correction entry issued"

        selector = PayrollRunSelector(session)
        revision = selector.get_entry(org_id, resolved.revised_entry_id)
        assert revision.revises_entry_id == original.id
        assert revision.status == EntryStatus.LOCKED
        assert revision.gross_earnings == Decimal("60000")
        assert revision.tax_withheld == Decimal("2288")
        assert revision.net_pay == Decimal("57712")
        assert revision.annual_cost == Decimal("720000")

        untouched = selector.get_entry(org_id, original.id)
        assert untouched.status == EntryStatus.LOCKED
        assert untouched.net_pay == Decimal("48700")

        run = selector.get_run(org_id, locked_run.id)
        assert run.totals.gross_earnings == Decimal("118000")
        assert run.totals.net_pay == Decimal("112123")
        assert original.id not in {e.id for e in selector.entries(org_id, run.id)}

        publisher.drain()
        correction = [p for p in ledger.postings if p.posting_type == "correction_adjustment"]
        assert len(correction) == 1
        lines = {line.account_role: line for line in correction[0].lines}
        assert set(lines) == {"SALARY_EXPENSE", "TAX_PAYABLE", "SALARIES_PAYABLE"}
        assert lines["SALARY_EXPENSE"].debit == Decimal("10000")
        assert lines["TAX_PAYABLE"].credit == Decimal("988")
        assert lines["SALARIES_PAYABLE"].credit == Decimal("9012")
        assert correction[0].entry_id == revision.id
        assert "payroll.entry.corrected" in notifier.event_types()
        assert "payroll.dispute.approve" in notifier.event_types()

    def test_first_line_reject_uses_default_note(
        self, session, dispute_service, locked_run, org_id, test_actor_id,
    ):
        entry = _locked_entry(session, org_id, locked_run, "50000")
        dispute = _raise(dispute_service, org_id, entry, test_actor_id)

        rejected = dispute_service.review_first_line(org_id, dispute.id, "reject", reviewer_id=REVIEWER)

        assert rejected.status == DisputeStatus.REJECTED
        assert rejected.resolution_notes == "Rejected by first-line reviewer"
        assert rejected.revised_entry_id is None

    def test_reviewer_notes_become_resolution(
        self, session, dispute_service, locked_run, org_id, test_actor_id,
    ):
        entry = _locked_entry(session, org_id, locked_run, "50000")
        dispute = _raise(dispute_service, org_id, entry, test_actor_id)
        dispute_service.review_first_line(org_id, dispute.id, "forward", reviewer_id=REVIEWER)

        rejected = dispute_service.review_people_ops(
            org_id, dispute.id, "reject", reviewer_id=REVIEWER, notes="Paid as contracted",
        )

        assert rejected.resolution_notes == "Paid as contracted"
        assert rejected.people_ops.notes == "Paid as contracted"

    def test_dispute_can_be_raised_again_after_rejection(
        self, session, dispute_service, locked_run, org_id, test_actor_id,
    ):
        entry = _locked_entry(session, org_id, locked_run, "50000")
        first = _raise(dispute_service, org_id, entry, test_actor_id)
        dispute_service.review_first_line(org_id, first.id, "reject", reviewer_id=REVIEWER)

        second = _raise(dispute_service, org_id, entry, test_actor_id)

        assert second.id != first.id
        disputes = DisputeSelector(session).list_disputes(org_id)
        assert {d.id for d in disputes} == {first.id, second.id}
        open_ones = DisputeSelector(session).list_disputes(org_id, DisputeStatus.PENDING_FIRST_LINE)
        assert [d.id for d in open_ones] == [second.id]


class TestDisputeGuards:

    def test_wrong_stage(self, session, dispute_service, locked_run, org_id, test_actor_id):
        entry = _locked_entry(session, org_id, locked_run, "50000")
        dispute = _raise(dispute_service, org_id, entry, test_actor_id)

        with pytest.raises(DisputeStageError):
            dispute_service.review_finance(org_id, dispute.id, "reject", reviewer_id=REVIEWER)

    def test_one_open_dispute_per_entry(self, session, dispute_service, locked_run, org_id, test_actor_id):
        entry = _locked_entry(session, org_id, locked_run, "50000")
        _raise(dispute_service, org_id, entry, test_actor_id)

        with pytest.raises(DisputeAlreadyOpenError):
            _raise(dispute_service, org_id, entry, test_actor_id)

    def test_unlocked_entry_not_disputable(
        self, session, dispute_service, run_service, create_employee, tax_regimes, org_id, test_actor_id,
    ):
        create_employee("Asha Rao")
        run = run_service.generate_run(org_id, "2024-06", actor_id=test_actor_id)
        entry = PayrollRunSelector(session).entries(org_id, run.id)[0]

        with pytest.raises(EntryNotDisputableError):
            _raise(dispute_service, org_id, entry, test_actor_id)

    def test_finance_approval_needs_correction(
        self, session, dispute_service, locked_run, org_id, test_actor_id,
    ):
        entry = _locked_entry(session, org_id, locked_run, "50000")
        dispute = _raise(dispute_service, org_id, entry, test_actor_id)
        _to_finance(dispute_service, org_id, dispute)

        with pytest.raises(ValueError):
            dispute_service.review_finance(org_id, dispute.id, "approve", reviewer_id=REVIEWER)

        assert DisputeSelector(session).get(org_id, dispute.id).status == DisputeStatus.PENDING_FINANCE

    def test_unknown_action(self, session, dispute_service, locked_run, org_id, test_actor_id):
        entry = _locked_entry(session, org_id, locked_run, "50000")
        dispute = _raise(dispute_service, org_id, entry, test_actor_id)

        with pytest.raises(InvalidTransitionError):
            dispute_service.review_first_line(org_id, dispute.id, "approve", reviewer_id=REVIEWER)

    def test_revised_entry_cannot_be_disputed_again(
        self, session, dispute_service, locked_run, org_id, test_actor_id,
    ):
        entry = _locked_entry(session, org_id, locked_run, "50000")
        dispute = _raise(dispute_service, org_id, entry, test_actor_id)
        _to_finance(dispute_service, org_id, dispute)
        dispute_service.review_finance(
            org_id, dispute.id, "approve", reviewer_id=REVIEWER,
            correction=CorrectionRequest(reason="recheck", lwp_days=0, tax_override=Decimal("1000")),
        )

        with pytest.raises(EntryAlreadyRevisedError):
            _raise(dispute_service, org_id, entry, test_actor_id)

    def test_empty_description(self, session, dispute_service, locked_run, org_id, test_actor_id):
        entry = _locked_entry(session, org_id, locked_run, "50000")

        with pytest.raises(ValueError):
            dispute_service.raise_dispute(
                org_id, entry.id, DisputeCategory.OTHER, "   ", actor_id=test_actor_id,
            )

    def test_unknown_dispute(self, dispute_service, org_id):
        with pytest.raises(DisputeNotFoundError):
            dispute_service.review_first_line(org_id, uuid4(), "forward", reviewer_id=REVIEWER)


class TestLockedRunAfterCorrection:
    """A correction inside a locked run is itself final."""

    @pytest.fixture
    def revision(self, session, dispute_service, locked_run, org_id, test_actor_id, publisher):
        original = _locked_entry(session, org_id, locked_run, "50000")
        dispute = _raise(dispute_service, org_id, original, test_actor_id)
        _to_finance(dispute_service, org_id, dispute)
        resolved = dispute_service.review_finance(
            org_id, dispute.id, "approve", reviewer_id=REVIEWER,
            correction=CorrectionRequest(
                reason="April increment missed",
                component_overrides={"Basic": Decimal("720000")},
            ),
        )
        publisher.drain()
        return PayrollRunSelector(session).get_entry(org_id, resolved.revised_entry_id)

    def _assert_books_unchanged(self, session, org_id, locked_run, ledger):
        run = PayrollRunSelector(session).get_run(org_id, locked_run.id)
        assert run.status == RunStatus.LOCKED
        assert run.totals.gross_earnings == Decimal("118000")
        assert run.totals.net_pay == Decimal("112123")
        assert [p.posting_type for p in ledger.postings] == ["run_lock", "correction_adjustment"]

    def test_revision_is_locked(self, revision):
        assert revision.status == EntryStatus.LOCKED

    def test_revision_cannot_be_rejected(
        self, session, run_service, revision, locked_run, org_id, test_actor_id, publisher, ledger,
    ):
        with pytest.raises(EntryLockedError):
            run_service.transition_entry(org_id, revision.id, EntryStatus.REJECTED, actor_id=test_actor_id)
        publisher.drain()

        assert PayrollRunSelector(session).get_entry(org_id, revision.id).status == EntryStatus.LOCKED
        self._assert_books_unchanged(session, org_id, locked_run, ledger)

    def test_revision_days_cannot_be_adjusted(
        self, session, run_service, revision, locked_run, org_id, test_actor_id, publisher, ledger,
    ):
        with pytest.raises(EntryLockedError):
            run_service.adjust_lwp_days(org_id, revision.id, 10, actor_id=test_actor_id)
        publisher.drain()

        assert PayrollRunSelector(session).get_entry(org_id, revision.id).net_pay == Decimal("57712")
        self._assert_books_unchanged(session, org_id, locked_run, ledger)

    def test_batch_refuses_entries_of_locked_run(
        self, session, publisher, deterministic_clock, payroll_config,
        revision, locked_run, org_id, test_actor_id, ledger,
    ):
        processor = BatchProcessor(
            session, publisher=publisher, clock=deterministic_clock, config=payroll_config,
        )

        result = processor.transition_entries(
            org_id, [revision.id], EntryStatus.REJECTED, actor_id=test_actor_id,
            expected_status=EntryStatus.LOCKED,
        )
        publisher.drain()

        assert result.result_for(revision.id).error_code == "ENTRY_LOCKED"
        self._assert_books_unchanged(session, org_id, locked_run, ledger)

    def test_revision_can_be_disputed(self, dispute_service, revision, org_id, test_actor_id):
        dispute = _raise(dispute_service, org_id, revision, test_actor_id)

        assert dispute.entry_id == revision.id
        assert dispute.status == DisputeStatus.PENDING_FIRST_LINE
