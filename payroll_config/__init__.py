"""
payroll_config -- YAML-backed configuration.

    load_tax_regimes()      -- statutory regimes (bundled ``tax_regimes.yaml``
                               unless a path is given)
    load_payroll_config()   -- ``PayrollConfig`` from an organization file
"""

from payroll_config.loader import (
    DEFAULT_TAX_REGIMES_PATH,
    load_payroll_config,
    load_tax_regimes,
    load_yaml_file,
    parse_date,
    parse_decimal,
    parse_tax_regime,
)

__all__ = [
    "DEFAULT_TAX_REGIMES_PATH",
    "load_payroll_config",
    "load_tax_regimes",
    "load_yaml_file",
    "parse_date",
    "parse_decimal",
    "parse_tax_regime",
]
