"""
ledger_engines.tracer -- Engine invocation tracer emitting LEDGER_ENGINE_TRACE.

Responsibility:
    ``@traced_engine`` wraps a pure engine call with one structured log
    record: engine name and version, a fingerprint of the selected inputs,
    duration and whether the call raised.

Architecture position:
    Engines -- infrastructure support for the pure calculation layer.
    Emits a log record only; engines stay free of I/O.  Logs under
    ``ledger_kernel.engines.tracer`` so the kernel's logging configuration
    picks it up without the engines importing it.

Invariants enforced:
    - Fingerprints are deterministic: dict keys sorted, Money/Decimal/UUID
      rendered by value, SHA-256 truncated to 16 hex chars.
    - The wrapped function's return value and exceptions pass through
      unchanged.

Usage:
    from ledger_engines.tracer import traced_engine

    @traced_engine("payment_allocation", "1.0", fingerprint_fields=("amount",))
    def plan(self, *, request, company_id, invoices):
        ...
"""

from __future__ import annotations

import functools
import hashlib
import logging
import time
from collections.abc import Callable
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

_logger = logging.getLogger("ledger_kernel.engines.tracer")

TRACE_TYPE = "LEDGER_ENGINE_TRACE"


def _canonicalize(value: Any) -> str:
    """Stable string form of a value for fingerprinting."""
    if value is None:
        return "null"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (bool, int, str, UUID)):
        return str(value)
    if isinstance(value, Decimal):
        return format(value.normalize(), "f")
    if hasattr(value, "amount") and hasattr(value, "currency"):
        return f"{_canonicalize(value.amount)} {value.currency}"
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        return "{" + ",".join(f"{k}:{_canonicalize(v)}" for k, v in items) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonicalize(v) for v in value) + "]"
    return str(value)


def _lookup(kwargs: dict[str, Any], field: str) -> Any:
    """Resolve ``field`` or a dotted path such as ``request.amount``."""
    head, _, rest = field.partition(".")
    value = kwargs.get(head)
    for attr in rest.split(".") if rest else ():
        value = getattr(value, attr, None)
    return value


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    kwargs: dict[str, Any],
) -> str:
    """
    Deterministic 16-hex-char fingerprint of the selected keyword inputs.

    Missing fields are recorded as "null".
    """
    canonical = "|".join(
        f"{field}={_canonicalize(_lookup(kwargs, field))}" for field in fingerprint_fields
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """Decorator that emits LEDGER_ENGINE_TRACE for engine invocations."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fp = compute_input_fingerprint(fingerprint_fields, kwargs) if fingerprint_fields else ""
            outcome = "ok"
            t0 = time.monotonic()
            try:
                return func(*args, **kwargs)
            except Exception as exc:
                outcome = type(exc).__name__
                raise
            finally:
                _logger.info(
                    TRACE_TYPE,
                    extra={
                        "trace_type": TRACE_TYPE,
                        "engine_name": engine_name,
                        "engine_version": engine_version,
                        "input_fingerprint": fp,
                        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                        "outcome": outcome,
                        "function": func.__qualname__,
                    },
                )

        return wrapper

    return decorator
