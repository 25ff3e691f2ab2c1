"""
Module ORM Registry (``payroll_modules._orm_registry``).

Responsibility
--------------
Ensure every module-level SQLAlchemy ORM model is imported so that
``Base.metadata`` contains its table before ``create_all()`` or
``drop_all()`` runs.

Architecture position
---------------------
**Modules layer** -- utility.  Imported lazily by
``payroll_kernel.db.engine.create_tables`` and ``drop_tables``.
"""


def import_all_orm_models() -> None:
    """Import every ``payroll_modules.*.orm`` module to register ORM models.

    Idempotent -- repeated calls are harmless.
    """
    # fmt: off
    import payroll_modules.employees.orm  # noqa: F401
    import payroll_modules.compensation.orm  # noqa: F401
    import payroll_modules.attendance.orm  # noqa: F401
    import payroll_modules.tax.orm  # noqa: F401
    import payroll_modules.payroll.orm  # noqa: F401
    import payroll_modules.disputes.orm  # noqa: F401
    # fmt: on

