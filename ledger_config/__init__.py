"""
ledger_config -- single public entrypoint for ledger configuration.

Responsibility:
    ``get_active_config()`` is the only way runtime code obtains settings.
    No other component reads configuration files or environment variables.

Architecture position:
    Configuration -- sits above ``ledger_kernel`` and below
    ``ledger_services``.  The kernel and engines never import from here;
    the orchestrator passes plain values down.

Failure modes:
    - ``FileNotFoundError`` -- the configured file does not exist.
    - ``ValueError`` -- schema validation failures.

Audit relevance:
    Every successful call emits a ``LEDGER_CONFIG_TRACE`` log entry with
    the config_id, version, checksum and source path, tying each write
    back to the settings that governed it.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from ledger_config.loader import load_config
from ledger_config.schema import (
    AllocationSettings,
    LedgerConfig,
    ReconciliationSettings,
    WriteSettings,
)

_logger = logging.getLogger("ledger_kernel.config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"

CONFIG_PATH_ENV = "LEDGER_CONFIG_PATH"


def get_active_config(config_path: Path | str | None = None) -> LedgerConfig:
    """
    The ONLY public configuration entrypoint.

    Resolution order: ``config_path`` argument, then the
    ``LEDGER_CONFIG_PATH`` environment variable, then the packaged
    ``sets/default.yaml``.

    Raises:
        FileNotFoundError: If the resolved file does not exist.
        ValueError: If validation fails.
    """
    path = Path(config_path or os.environ.get(CONFIG_PATH_ENV) or _DEFAULT_CONFIG_PATH)
    config = load_config(path)

    _logger.info(
        "LEDGER_CONFIG_TRACE",
        extra={
            "trace_type": "LEDGER_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "currency": config.currency,
            "source": str(path),
        },
    )
    return config


__all__ = [
    "AllocationSettings",
    "CONFIG_PATH_ENV",
    "LedgerConfig",
    "ReconciliationSettings",
    "WriteSettings",
    "get_active_config",
]
