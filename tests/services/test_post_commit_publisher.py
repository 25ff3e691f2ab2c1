"""
PostCommitPublisher: collaborator calls leave the process only after the
owning transaction commits.
"""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import text

from payroll_batch import BatchProcessor
from payroll_modules.disputes.service import DisputeService
from payroll_modules.payroll.service import PayrollRunService
from payroll_services.collaborators import LedgerLine, LedgerPosting, NotificationEvent
from payroll_services.publisher import PostCommitPublisher, get_default_publisher


def _event(event_type="payroll.run.approved"):
    return NotificationEvent(
        event_type=event_type,
        organization_id=uuid4(),
        entity_type="payroll_run",
        entity_id=uuid4(),
        decision="approve",
        actor_id=uuid4(),
        occurred_at=datetime(2024, 6, 28, tzinfo=timezone.utc),
    )


def _posting():
    return LedgerPosting(
        organization_id=uuid4(),
        run_id=uuid4(),
        pay_period="2024-06",
        posting_type="run_lock",
        lines=(
            LedgerLine(account_role="SALARY_EXPENSE", debit=Decimal("100")),
            LedgerLine(account_role="SALARIES_PAYABLE", credit=Decimal("100")),
        ),
        actor_id=uuid4(),
        currency="INR",
    )


class TestCommitBoundary:

    def test_nothing_delivered_before_commit(self, session, publisher, notifier, ledger):
        session.execute(text("SELECT 1"))
        publisher.publish_notification(session, _event())
        publisher.publish_ledger_posting(session, _posting())
        publisher.drain()

        assert notifier.events == []
        assert ledger.postings == []

        session.commit()
        publisher.drain()

        assert notifier.event_types() == ["payroll.run.approved"]
        assert len(ledger.postings) == 1

    def test_rollback_discards(self, session, publisher, notifier):
        session.execute(text("SELECT 1"))
        publisher.publish_notification(session, _event())

        session.rollback()
        session.commit()
        publisher.drain()

        assert notifier.events == []

    def test_savepoint_release_is_not_a_commit(self, session, publisher, notifier):
        session.execute(text("SELECT 1"))
        with session.begin_nested():
            publisher.publish_notification(session, _event("payroll.entry.approved"))
        publisher.drain()

        assert notifier.events == []

        session.commit()
        publisher.drain()

        assert notifier.event_types() == ["payroll.entry.approved"]

    def test_savepoint_rollback_keeps_outer_queue(self, session, publisher, notifier):
        session.execute(text("SELECT 1"))
        publisher.publish_notification(session, _event("payroll.run.locked"))
        nested = session.begin_nested()
        nested.rollback()

        session.commit()
        publisher.drain()

        assert notifier.event_types() == ["payroll.run.locked"]


class TestCollaboratorFailure:

    def test_failure_is_logged_not_raised(self, session, captured_logs):
        class BrokenNotifier:
            def notify(self, event):
                raise ConnectionError("smtp down")

        publisher = PostCommitPublisher(notifier=BrokenNotifier())
        try:
            session.execute(text("SELECT 1"))
            publisher.publish_notification(session, _event())
            session.commit()
            publisher.drain()
        finally:
            publisher.shutdown()

        failures = [r for r in captured_logs() if r["message"] == "collaborator_call_failed"]
        assert len(failures) == 1
        assert failures[0]["collaborator"] == "notification"
        assert "smtp down" in failures[0]["error"]


class TestPublisherOwnership:

    def test_services_share_default_publisher(self, session):
        shared = get_default_publisher()

        assert PayrollRunService(session)._publisher is shared
        assert DisputeService(session)._publisher is shared
        assert BatchProcessor(session)._publisher is shared
        assert get_default_publisher() is shared

    def test_context_exit_delivers_in_flight_events(self, session, notifier):
        with PostCommitPublisher(notifier=notifier) as publisher:
            session.execute(text("SELECT 1"))
            publisher.publish_notification(session, _event("payroll.run.locked"))
            session.commit()

        assert notifier.event_types() == ["payroll.run.locked"]


class TestPostingValues:

    def test_unbalanced_posting_rejected(self):
        with pytest.raises(ValueError):
            LedgerPosting(
                organization_id=uuid4(),
                run_id=uuid4(),
                pay_period="2024-06",
                posting_type="run_lock",
                lines=(LedgerLine(account_role="SALARY_EXPENSE", debit=Decimal("100")),),
                actor_id=uuid4(),
                currency="INR",
            )

    @pytest.mark.parametrize(
        "debit, credit",
        [(Decimal("-1"), Decimal("0")), (Decimal("1"), Decimal("1"))],
    )
    def test_invalid_line(self, debit, credit):
        with pytest.raises(ValueError):
            LedgerLine(account_role="TAX_PAYABLE", debit=debit, credit=credit)
