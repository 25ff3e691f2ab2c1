"""
payroll_services -- collaborator contracts and post-commit delivery.

Dependency direction:
    payroll_services/ -> payroll_kernel/   (allowed)
    payroll_modules/  -> payroll_services/ (allowed)
    payroll_kernel/   -> payroll_services/ (FORBIDDEN)
    payroll_engines/  -> payroll_services/ (FORBIDDEN)
"""

from payroll_services.collaborators import (
    LedgerLine,
    LedgerPoster,
    LedgerPosting,
    LoggingLedgerPoster,
    LoggingNotifier,
    NotificationEvent,
    Notifier,
)
from payroll_services.publisher import PostCommitPublisher, get_default_publisher

__all__ = [
    "LedgerLine",
    "LedgerPoster",
    "LedgerPosting",
    "LoggingLedgerPoster",
    "LoggingNotifier",
    "NotificationEvent",
    "Notifier",
    "PostCommitPublisher",
    "get_default_publisher",
]
