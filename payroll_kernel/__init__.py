"""
Payroll Kernel

Shared infrastructure for the payroll engine:
- Typed exception hierarchy with machine-readable codes
- Structured JSON logging with request-scoped context
- SQLAlchemy declarative base, engine and session management
- Deterministic clock, pay-period arithmetic and workflow value objects
"""

__version__ = "0.1.0"
