"""
Payroll Configuration Schema.

Defines the structure and sensible defaults for payroll settings.
Actual values are loaded from company configuration at runtime
(``payroll_config.loader.load_payroll_config``).
"""

from dataclasses import dataclass, field
from typing import Any, Self

from payroll_kernel.db.types import validate_currency
from payroll_kernel.logging_config import get_logger

logger = get_logger("modules.payroll.config")

WEEKDAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

REQUIRED_ACCOUNT_ROLES = (
    "salary_expense",
    "tax_payable",
    "deductions_payable",
    "salaries_payable",
)


def _default_account_roles() -> dict[str, str]:
    return {role: role.upper() for role in REQUIRED_ACCOUNT_ROLES}


@dataclass
class PayrollConfig:
    """
    Configuration schema for the payroll engine.

    Field defaults represent a Monday-to-Friday week with an April fiscal
    year.  Override at instantiation with organization-specific values:

        config = PayrollConfig(
            currency="INR",
            default_regime_code="new",
            **load_from_database("payroll_settings"),
        )
    """

    currency: str = "INR"

    # Weekday numbers (Monday == 0) that are never working days
    weekend_days: tuple[int, ...] = (5, 6)

    # Fiscal year
    fiscal_year_start_month: int = 4

    # Regime applied when an employee has no tax settings for the year
    default_regime_code: str = "new"

    # Threads used for per-employee computation during run generation
    max_workers: int = 4

    # Account role -> ledger account code, used for lock/correction postings
    ledger_account_roles: dict[str, str] = field(default_factory=_default_account_roles)

    def __post_init__(self):
        self.currency = validate_currency(self.currency)
        self.weekend_days = tuple(sorted(set(self.weekend_days)))
        for day in self.weekend_days:
            if not 0 <= day <= 6:
                raise ValueError(f"weekend day must be 0..6 (Monday == 0), got {day}")
        if len(self.weekend_days) >= 7:
            raise ValueError("weekend_days leaves no working days")
        if not 1 <= self.fiscal_year_start_month <= 12:
            raise ValueError(
                f"fiscal_year_start_month must be 1..12, got {self.fiscal_year_start_month}"
            )
        if not self.default_regime_code:
            raise ValueError("default_regime_code is required")
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        missing = [r for r in REQUIRED_ACCOUNT_ROLES if r not in self.ledger_account_roles]
        if missing:
            raise ValueError(f"ledger_account_roles missing roles: {missing}")

        logger.info(
            "payroll_config_initialized",
            extra={
                "currency": self.currency,
                "weekend_days": list(self.weekend_days),
                "fiscal_year_start_month": self.fiscal_year_start_month,
                "default_regime_code": self.default_regime_code,
                "max_workers": self.max_workers,
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with standard defaults."""
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Create config from dictionary (e.g., loaded from YAML).

        Weekend days may be given as names (``saturday``) or numbers.
        """
        data = dict(data)
        if "weekend_days" in data:
            data["weekend_days"] = tuple(_weekday_number(d) for d in data["weekend_days"])
        if "ledger_account_roles" in data:
            roles = _default_account_roles()
            roles.update(data["ledger_account_roles"] or {})
            data["ledger_account_roles"] = roles
        return cls(**data)


def _weekday_number(value: Any) -> int:
    if isinstance(value, int):
        return value
    name = str(value).strip().lower()
    if name not in WEEKDAY_NAMES:
        raise ValueError(f"Unknown weekday {value!r}")
    return WEEKDAY_NAMES.index(name)
