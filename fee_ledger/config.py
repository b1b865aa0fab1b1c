"""
Configuration (``fee_ledger.config``).

Responsibility
--------------
Builds the frozen ``FeeLedgerConfig`` used by the CLI and injected into
services.  Values come from three layers, later layers winning:

1. dataclass defaults,
2. an optional YAML file with a top-level ``fee_ledger:`` mapping,
3. ``FEE_LEDGER_*`` environment variables.

Example YAML::

    fee_ledger:
      database_url: postgresql://fees@localhost/school
      currency_symbol: "₦"
      lock_timeout_seconds: 10

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown key, or a value of the wrong shape  -> ``ValueError``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping

import yaml

ENV_PREFIX = "FEE_LEDGER_"

DEFAULT_DATABASE_URL = "sqlite:///fee_ledger.db"


@dataclass(frozen=True)
class FeeLedgerConfig:
    """Runtime settings for the fee ledger."""

    database_url: str = DEFAULT_DATABASE_URL
    echo_sql: bool = False
    currency_symbol: str = "₦"
    payment_reference_prefix: str = "PAY"
    invoice_number_prefix: str = "INV"
    lock_timeout_seconds: float = 30.0
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.lock_timeout_seconds <= 0:
            raise ValueError(
                f"lock_timeout_seconds must be positive, got {self.lock_timeout_seconds}"
            )
        if not self.payment_reference_prefix or not self.invoice_number_prefix:
            raise ValueError("Reference prefixes must not be empty")


_FIELD_TYPES: dict[str, type] = {
    "database_url": str,
    "echo_sql": bool,
    "currency_symbol": str,
    "payment_reference_prefix": str,
    "invoice_number_prefix": str,
    "lock_timeout_seconds": float,
    "log_level": str,
}

_ENV_OVERRIDES = ("database_url", "log_level", "lock_timeout_seconds", "echo_sql")


def _coerce(name: str, value: Any) -> Any:
    expected = _FIELD_TYPES[name]
    if expected is bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.lower() in ("1", "true", "yes", "on"):
            return True
        if isinstance(value, str) and value.lower() in ("0", "false", "no", "off"):
            return False
        raise ValueError(f"{name}: expected a boolean, got {value!r}")
    if expected is float:
        if isinstance(value, bool):
            raise ValueError(f"{name}: expected a number, got {value!r}")
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ValueError(f"{name}: expected a number, got {value!r}") from None
    if not isinstance(value, str):
        raise ValueError(f"{name}: expected a string, got {value!r}")
    return value


def parse_config(data: Mapping[str, Any]) -> FeeLedgerConfig:
    """
    Build a config from the contents of the ``fee_ledger:`` mapping.

    Raises:
        ValueError: on unknown keys or badly typed values.
    """
    known = {f.name for f in fields(FeeLedgerConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown fee_ledger config keys: {', '.join(unknown)}")
    return FeeLedgerConfig(**{k: _coerce(k, v) for k, v in data.items()})


def load_config(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> FeeLedgerConfig:
    """
    Load configuration from an optional YAML file plus the environment.

    Args:
        path: YAML file; when None only defaults and environment apply.
        environ: Environment mapping, defaults to ``os.environ``.
    """
    config = FeeLedgerConfig()

    if path is not None:
        with open(path, encoding="utf-8") as f:
            document = yaml.safe_load(f) or {}
        if not isinstance(document, dict):
            raise ValueError(f"{path}: expected a mapping at the top level")
        section = document.get("fee_ledger") or {}
        if not isinstance(section, dict):
            raise ValueError(f"{path}: 'fee_ledger' must be a mapping")
        config = parse_config(section)

    env = os.environ if environ is None else environ
    overrides = {}
    for name in _ENV_OVERRIDES:
        raw = env.get(f"{ENV_PREFIX}{name.upper()}")
        if raw is not None and raw != "":
            overrides[name] = _coerce(name, raw)
    if overrides:
        config = replace(config, **overrides)

    return config
