"""
Payroll modules -- persistence, selectors and services per business area.

    employees      -- employee profiles (read-only reference)
    compensation   -- compensation structures and components
    attendance     -- unpaid leave and daily attendance
    tax            -- tax reference data, employee settings, declarations
    payroll        -- runs, entries, lifecycle, exports, analytics
    disputes       -- payslip disputes and corrections

Each module follows the same layout: ``models.py`` (frozen DTOs),
``orm.py`` (SQLAlchemy persistence), ``selectors.py`` (reads) and
``service.py`` (writes that own the transaction boundary).
"""
