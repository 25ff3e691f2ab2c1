"""
BaseService -- abstract base for flush-only services.

Responsibility:
    Common constructor and session-handling contract for services that are
    composed into a larger unit of work.  A BaseService writes through
    ``session.flush()`` and never commits: the module service or batch
    processor that called it owns commit/rollback.

Architecture position:
    Kernel > Services.  ``LifecycleController`` and ``CompensationService``
    extend this class; module facades (``PayrollRunService``,
    ``DisputeService``) own the transaction boundary around them.

Failure modes:
    - A subclass that commits breaks SAVEPOINT-per-member isolation in
      ``BatchProcessor`` and the single-commit correction in
      ``DisputeService``.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from payroll_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for flush-only services.

    Guarantees:
        - Never calls ``session.commit()`` or ``session.rollback()``.

    Non-goals:
        - Read-only queries belong in selectors.
    """

    def __init__(self, session: Session):
        self.session = session
