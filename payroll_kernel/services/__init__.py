"""Kernel service base (write side)."""

from payroll_kernel.services.base import BaseService

__all__ = ["BaseService"]
