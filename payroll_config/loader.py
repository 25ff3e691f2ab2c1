"""
Configuration Loader (``payroll_config.loader``).

Responsibility
--------------
Loads YAML files and parses them into typed values: tax regimes for the
withholding engine, and ``PayrollConfig`` for the payroll module.

Architecture position
---------------------
**Config layer** -- infrastructure tooling.  Depends on the kernel and the
pure engines; ``PayrollConfig`` is imported lazily so that the module
layer stays free to import this one.

Invariants enforced
-------------------
* All parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for required fields.
* Numbers become ``Decimal`` via their string form, never via float
  arithmetic.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Inconsistent slabs  -> ``InvalidTaxRegimeError`` from ``TaxRegime``.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from payroll_engines.withholding import TaxRegime, TaxSlab
from payroll_kernel.logging_config import get_logger

logger = get_logger("config.loader")

DEFAULT_TAX_REGIMES_PATH = Path(__file__).with_name("tax_regimes.yaml")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Postconditions:
        - Returns a ``dict`` (empty if the YAML is empty).
    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top-level YAML must be a mapping")
    return data


def parse_date(value: Any) -> date:
    """Parse a date from YAML (string or date object)."""
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value)
    raise ValueError(f"Cannot parse date from {value!r}")


def parse_decimal(value: Any, field_name: str = "value") -> Decimal:
    """Parse a YAML scalar into Decimal through its string form."""
    if isinstance(value, bool) or value is None:
        raise ValueError(f"{field_name}: expected a number, got {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{field_name}: cannot parse {value!r} as a decimal") from exc


def parse_slab(data: dict[str, Any]) -> TaxSlab:
    upper = data.get("upper")
    return TaxSlab(
        lower=parse_decimal(data["lower"], "lower"),
        upper=None if upper is None else parse_decimal(upper, "upper"),
        rate=parse_decimal(data["rate"], "rate"),
        cess_rate=parse_decimal(data.get("cess_rate", "0"), "cess_rate"),
    )


def parse_tax_regime(data: dict[str, Any]) -> TaxRegime:
    """Parse one regime mapping into a validated ``TaxRegime``."""
    ceilings = {
        str(section): parse_decimal(amount, f"section_ceilings.{section}")
        for section, amount in (data.get("section_ceilings") or {}).items()
    }
    return TaxRegime(
        code=data["code"],
        name=data.get("name", data["code"]),
        slabs=tuple(parse_slab(s) for s in data["slabs"]),
        standard_deduction=parse_decimal(data.get("standard_deduction", "0"), "standard_deduction"),
        permits_itemized_deductions=bool(data.get("permits_itemized_deductions", False)),
        section_ceilings=ceilings,
        effective_from=parse_date(data["effective_from"]) if data.get("effective_from") else None,
    )


def load_tax_regimes(path: Path | None = None) -> tuple[TaxRegime, ...]:
    """
    Load every regime from a YAML file (the bundled defaults when ``path`` is None).

    Raises:
        KeyError: if the file has no ``regimes`` list.
    """
    source = path or DEFAULT_TAX_REGIMES_PATH
    data = load_yaml_file(source)
    regimes = tuple(parse_tax_regime(r) for r in data["regimes"])
    logger.info(
        "tax_regimes_loaded",
        extra={"path": str(source), "regime_codes": [r.code for r in regimes]},
    )
    return regimes


def load_payroll_config(path: Path):
    """
    Load ``PayrollConfig`` from a YAML file with a top-level ``payroll`` mapping.

    A file without the ``payroll`` key is read as the mapping itself.
    """
    from payroll_modules.payroll.config import PayrollConfig

    data = load_yaml_file(path)
    settings = data.get("payroll", data)
    config = PayrollConfig.from_dict(settings)
    logger.info("payroll_config_loaded", extra={"path": str(path)})
    return config
