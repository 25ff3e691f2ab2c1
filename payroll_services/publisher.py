"""
PostCommitPublisher -- deliver collaborator calls only after commit.

Contract:
    Services call ``publish_notification`` / ``publish_ledger_posting`` while
    their transaction is open.  Events are queued on the session and handed
    to a small worker pool from the session's ``after_commit`` hook.  A
    rollback of the outer transaction discards the queue, so a collaborator
    never hears about work that did not persist.

Architecture: payroll_services.  Imports collaborators and the kernel only.

Invariants enforced:
    - Nothing is delivered before the owning transaction commits.  Releasing
      a SAVEPOINT does not count as a commit.
    - Collaborator failures are logged (``collaborator_call_failed``) and
      never propagate to the caller of the engine.
    - Events queued inside a SAVEPOINT that is later rolled back are the
      caller's responsibility: BatchProcessor queues only after the
      member's savepoint commits.
"""

from __future__ import annotations

import atexit
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any

from sqlalchemy import event
from sqlalchemy.orm import Session

from payroll_kernel.logging_config import get_logger
from payroll_services.collaborators import (
    LedgerPoster,
    LedgerPosting,
    LoggingLedgerPoster,
    LoggingNotifier,
    NotificationEvent,
    Notifier,
)

logger = get_logger("services.publisher")

_PENDING_KEY = "payroll_pending_events"
_HOOKED_KEY = "payroll_publisher_hooked"


class PostCommitPublisher:
    """Queue collaborator calls per session; dispatch them after commit."""

    def __init__(
        self,
        ledger: LedgerPoster | None = None,
        notifier: Notifier | None = None,
        max_workers: int = 2,
    ):
        self._ledger = ledger or LoggingLedgerPoster()
        self._notifier = notifier or LoggingNotifier()
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="payroll-publisher"
        )
        self._futures: list[Future] = []
        self._lock = threading.Lock()

    # -------------------------------------------------------------------------
    # Queueing
    # -------------------------------------------------------------------------

    def publish_notification(self, session: Session, notification: NotificationEvent) -> None:
        self._enqueue(session, ("notification", notification))

    def publish_ledger_posting(self, session: Session, posting: LedgerPosting) -> None:
        self._enqueue(session, ("ledger", posting))

    def _enqueue(self, session: Session, item: tuple[str, Any]) -> None:
        if not session.info.get(_HOOKED_KEY):
            event.listen(session, "after_commit", _dispatch_pending)
            event.listen(session, "after_soft_rollback", _discard_pending)
            session.info[_HOOKED_KEY] = True
        session.info.setdefault(_PENDING_KEY, []).append((self, item))

    # -------------------------------------------------------------------------
    # Delivery
    # -------------------------------------------------------------------------

    def _submit(self, item: tuple[str, Any]) -> None:
        future = self._executor.submit(self._deliver, item)
        with self._lock:
            self._futures = [f for f in self._futures if not f.done()]
            self._futures.append(future)

    def _deliver(self, item: tuple[str, Any]) -> None:
        kind, payload = item
        try:
            if kind == "ledger":
                self._ledger.post(payload)
            else:
                self._notifier.notify(payload)
        except Exception as exc:
            logger.error(
                "collaborator_call_failed",
                extra={
                    "collaborator": kind,
                    "payload_type": type(payload).__name__,
                    "error": str(exc),
                },
                exc_info=True,
            )

    def drain(self, timeout: float = 10.0) -> None:
        """Wait for in-flight deliveries (tests and orderly shutdown)."""
        with self._lock:
            pending = list(self._futures)
        wait(pending, timeout=timeout)

    def shutdown(self) -> None:
        """Finish in-flight deliveries and stop the worker threads."""
        self._executor.shutdown(wait=True)

    def __enter__(self) -> PostCommitPublisher:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()


# Shared by every service constructed without an explicit publisher.
_default_publisher: PostCommitPublisher | None = None
_default_lock = threading.Lock()


def get_default_publisher() -> PostCommitPublisher:
    """The process-wide publisher with logging collaborators."""
    global _default_publisher
    with _default_lock:
        if _default_publisher is None:
            _default_publisher = PostCommitPublisher()
        return _default_publisher


def _atexit_shutdown() -> None:
    """Drain and stop the shared publisher on process exit."""
    if _default_publisher is not None:
        _default_publisher.shutdown()


atexit.register(_atexit_shutdown)


def _dispatch_pending(session: Session) -> None:
    # SAVEPOINT release fires after_commit too; wait for the outermost commit.
    if session.in_nested_transaction():
        return
    pending = session.info.pop(_PENDING_KEY, [])
    if not pending:
        return
    logger.debug("post_commit_dispatch", extra={"event_count": len(pending)})
    for publisher, item in pending:
        publisher._submit(item)


def _discard_pending(session: Session, previous_transaction: Any) -> None:
    if previous_transaction.nested:
        return
    dropped = session.info.pop(_PENDING_KEY, [])
    if dropped:
        logger.debug("post_commit_events_discarded", extra={"event_count": len(dropped)})
