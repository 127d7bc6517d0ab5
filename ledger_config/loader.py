"""
Configuration Loader (``ledger_config.loader``).

Responsibility
--------------
Loads a YAML configuration set and parses it into the frozen
``ledger_config.schema`` dataclasses.  Runtime callers use
``ledger_config.get_active_config()`` instead of calling this directly.

Invariants enforced
-------------------
* Unknown sections or keys raise ``ValueError``; a typo never silently
  falls back to a default.
* Every parsed object is a frozen dataclass from ``schema.py``.
* ``compute_checksum`` is deterministic for identical content.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import asdict, fields, replace
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from ledger_config.schema import (
    AllocationSettings,
    LedgerConfig,
    ReconciliationSettings,
    WriteSettings,
)
from ledger_kernel.domain.currency import CurrencyRegistry


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return data


def _check_keys(section: str, data: dict[str, Any], allowed: set[str]) -> None:
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise ValueError(f"Unknown key(s) in {section}: {', '.join(unknown)}")


def _int(section: str, key: str, value: Any, minimum: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{section}.{key} must be an integer, got {value!r}")
    if value < minimum:
        raise ValueError(f"{section}.{key} must be >= {minimum}, got {value}")
    return value


def _bool(section: str, key: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"{section}.{key} must be true or false, got {value!r}")
    return value


def _decimal(section: str, key: str, value: Any) -> Decimal:
    # YAML floats arrive as float; go through str to keep the written digits
    try:
        result = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{section}.{key} must be a number, got {value!r}") from exc
    if result <= 0:
        raise ValueError(f"{section}.{key} must be positive, got {value}")
    return result


def parse_allocation(data: dict[str, Any]) -> AllocationSettings:
    """Parse the ``allocation`` section."""
    _check_keys("allocation", data, {f.name for f in fields(AllocationSettings)})
    defaults = AllocationSettings()
    return AllocationSettings(
        auto_distribute_advances=_bool(
            "allocation",
            "auto_distribute_advances",
            data.get("auto_distribute_advances", defaults.auto_distribute_advances),
        ),
    )


def parse_reconciliation(data: dict[str, Any]) -> ReconciliationSettings:
    """Parse the ``reconciliation`` section."""
    section = "reconciliation"
    _check_keys(section, data, {f.name for f in fields(ReconciliationSettings)})
    d = ReconciliationSettings()
    return ReconciliationSettings(
        amount_epsilon=_decimal(section, "amount_epsilon", data.get("amount_epsilon", d.amount_epsilon)),
        date_window_days_before=_int(
            section,
            "date_window_days_before",
            data.get("date_window_days_before", d.date_window_days_before),
            0,
        ),
        date_window_days_after=_int(
            section,
            "date_window_days_after",
            data.get("date_window_days_after", d.date_window_days_after),
            0,
        ),
        max_iterations=_int(section, "max_iterations", data.get("max_iterations", d.max_iterations), 1),
        time_budget_ms=_int(section, "time_budget_ms", data.get("time_budget_ms", d.time_budget_ms), 1),
        candidate_limit=_int(section, "candidate_limit", data.get("candidate_limit", d.candidate_limit), 1),
    )


def parse_write(data: dict[str, Any]) -> WriteSettings:
    """Parse the ``write`` section."""
    _check_keys("write", data, {f.name for f in fields(WriteSettings)})
    d = WriteSettings()
    return WriteSettings(
        lock_timeout_ms=_int("write", "lock_timeout_ms", data.get("lock_timeout_ms", d.lock_timeout_ms), 1),
        conflict_retries=_int("write", "conflict_retries", data.get("conflict_retries", d.conflict_retries), 0),
        retry_backoff_ms=_int("write", "retry_backoff_ms", data.get("retry_backoff_ms", d.retry_backoff_ms), 0),
    )


def parse_config(data: dict[str, Any]) -> LedgerConfig:
    """
    Parse a whole configuration set.

    Raises:
        ValueError: unknown keys, unknown currency or out-of-range values.
    """
    _check_keys(
        "config",
        data,
        {"config_id", "version", "currency", "allocation", "reconciliation", "write"},
    )
    currency = str(data.get("currency", "INR")).upper()
    if not CurrencyRegistry.is_valid(currency):
        raise ValueError(f"Unsupported currency: {currency}")

    config = LedgerConfig(
        config_id=str(data.get("config_id", "default")),
        version=_int("config", "version", data.get("version", 1), 1),
        currency=currency,
        allocation=parse_allocation(data.get("allocation") or {}),
        reconciliation=parse_reconciliation(data.get("reconciliation") or {}),
        write=parse_write(data.get("write") or {}),
    )
    return replace(config, checksum=compute_checksum(config))


def compute_checksum(config: LedgerConfig) -> str:
    """Deterministic SHA-256 of the parsed configuration (checksum excluded)."""
    payload = asdict(config)
    payload.pop("checksum", None)
    canonical = json.dumps(payload, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def load_config(path: Path) -> LedgerConfig:
    """Load and parse a configuration file."""
    return parse_config(load_yaml_file(path))
