"""
External collaborator contracts (``payroll_services.collaborators``).

Responsibility:
    Value types and Protocols for the two collaborators the payroll engine
    calls into: the general ledger (aggregated debit/credit lines) and the
    notification channel (lifecycle decisions).  The engine never depends on
    how either collaborator delivers; it only hands over a frozen payload.

Architecture position:
    Services -- imported by ``payroll_modules`` and ``payroll_batch``.
    MUST NOT import from modules.

Invariants enforced:
    - A ``LedgerPosting`` balances: total debits == total credits.
    - Amounts are Decimal; lines carry an account ROLE, never an account code.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol, runtime_checkable
from uuid import UUID

from payroll_kernel.db.types import ZERO
from payroll_kernel.logging_config import get_logger

logger = get_logger("services.collaborators")


@dataclass(frozen=True)
class LedgerLine:
    """One side of a ledger posting, addressed by account role."""

    account_role: str
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    memo: str = ""

    def __post_init__(self) -> None:
        if self.debit < ZERO or self.credit < ZERO:
            raise ValueError(f"Ledger line for {self.account_role} has a negative side")
        if self.debit and self.credit:
            raise ValueError(f"Ledger line for {self.account_role} has both debit and credit")


@dataclass(frozen=True)
class LedgerPosting:
    """Aggregated lines for one book-affecting payroll event."""

    organization_id: UUID
    run_id: UUID
    pay_period: str
    posting_type: str  # "run_lock" | "correction_adjustment"
    lines: tuple[LedgerLine, ...]
    actor_id: UUID
    currency: str
    entry_id: UUID | None = None

    def __post_init__(self) -> None:
        if self.total_debits != self.total_credits:
            raise ValueError(
                f"Unbalanced {self.posting_type} posting for run {self.run_id}: "
                f"debits {self.total_debits} != credits {self.total_credits}"
            )

    @property
    def total_debits(self) -> Decimal:
        return sum((line.debit for line in self.lines), ZERO)

    @property
    def total_credits(self) -> Decimal:
        return sum((line.credit for line in self.lines), ZERO)


@dataclass(frozen=True)
class NotificationEvent:
    """Enough context for a collaborator to compose a message."""

    event_type: str  # e.g. "payroll.run.approved", "payroll.dispute.forwarded"
    organization_id: UUID
    entity_type: str
    entity_id: UUID
    decision: str
    actor_id: UUID
    occurred_at: datetime
    payload: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class LedgerPoster(Protocol):
    """General-ledger collaborator."""

    def post(self, posting: LedgerPosting) -> None: ...


@runtime_checkable
class Notifier(Protocol):
    """Notification collaborator."""

    def notify(self, event: NotificationEvent) -> None: ...


class LoggingLedgerPoster:
    """Default ledger collaborator: records the posting in the structured log."""

    def post(self, posting: LedgerPosting) -> None:
        logger.info(
            "ledger_posting_published",
            extra={
                "organization_id": str(posting.organization_id),
                "run_id": str(posting.run_id),
                "posting_type": posting.posting_type,
                "line_count": len(posting.lines),
                "total_debits": str(posting.total_debits),
            },
        )


class LoggingNotifier:
    """Default notification collaborator."""

    def notify(self, event: NotificationEvent) -> None:
        logger.info(
            "notification_published",
            extra={
                "event_type": event.event_type,
                "entity_type": event.entity_type,
                "entity_id": str(event.entity_id),
                "decision": event.decision,
                "actor_id": str(event.actor_id),
            },
        )
