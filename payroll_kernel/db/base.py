"""
Module: payroll_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.  Provides
    the UUID primary key convention, the type annotation map that keeps column
    types consistent, and the TrackedBase mixin for audit columns.
Architecture position: Kernel > DB.  Lowest-level import target; every ORM
    module imports from here.  MUST NOT import from modules, engines or batch.

Invariants enforced:
    - UUID primary keys generated with uuid4 and stored as String(36) so the
      schema runs unchanged on PostgreSQL and SQLite.
    - Decimal precision: Decimal maps to Numeric(18, 2).  Payroll amounts are
      persisted in whole currency units, the two decimal places only guard
      against silent truncation if a caller forgets to round.
      NEVER use float for monetary amounts.
    - Audit columns: TrackedBase provides created_at, updated_at,
      created_by_id and updated_by_id.

Audit relevance:
    created_by_id is NOT NULL on every tracked row, so every run, entry,
    dispute and declaration can be traced to the actor that created it.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import Date, DateTime, Integer, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """
    UUID type stored as String(36) for cross-database portability.

    Guarantees:
        - process_bind_param: UUID -> str on INSERT/UPDATE.
        - process_result_value: str -> UUID on SELECT.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return PyUUID(value)


class Base(DeclarativeBase):
    """
    Declarative base for all payroll ORM models.

    Contract:
        Every ORM model inherits from Base (usually through TrackedBase).

    Guarantees:
        - id is always a uuid4-generated UUID.
        - Decimal maps to Numeric(18, 2); date to Date; datetime to
          timezone-aware DateTime.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(18, 2),
        datetime: DateTime(timezone=True),
        date: Date,
        PyUUID: UUIDString(),
        int: Integer,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TrackedBase(Base):
    """
    Abstract base with audit timestamps and actor tracking.

    Guarantees:
        - created_at is set by the database on INSERT.
        - updated_at is refreshed on every ORM UPDATE.
        - created_by_id is required; updated_by_id is optional.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    created_by_id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    updated_by_id: Mapped[PyUUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )


UUID = PyUUID
