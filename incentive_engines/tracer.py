"""
incentive_engines.tracer -- Calculator invocation tracer emitting INCENTIVE_ENGINE_TRACE.

Responsibility:
    Provide ``@traced_engine``, a decorator that wraps pure calculator
    functions with one structured trace record per call: engine name,
    engine version, a deterministic fingerprint of selected inputs and the
    call duration.

Architecture position:
    Engines -- support for the pure calculation layer.  Emits a log record
    only; never touches the database or the clock used by calculations.

Invariants enforced:
    - Fingerprints are deterministic: values are canonicalized (Decimals
      normalized, dict keys sorted) and hashed with SHA-256, truncated to
      16 hex characters.
    - Inputs are read, never mutated.

Failure modes:
    - A fingerprint field that is not an argument of the call is recorded
      as "null".

Usage:
    from incentive_engines.tracer import traced_engine

    @traced_engine("multiplier", "1.0", fingerprint_fields=("achievement_pct",))
    def resolve_multiplier(achievement_pct, metric):
        ...
"""

from __future__ import annotations

import functools
import hashlib
import inspect
import logging
import time
from collections.abc import Callable
from decimal import Decimal
from typing import Any

# Own namespace under the kernel prefix so the kernel's handler picks it up.
_logger = logging.getLogger("incentive_kernel.engines.tracer")


def _canonicalize(value: Any) -> str:
    """Stable string form of ``value`` for fingerprinting."""
    if value is None:
        return "null"
    if isinstance(value, Decimal):
        return str(value.normalize()) if value else "0"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        return "{" + ",".join(f"{k}:{_canonicalize(v)}" for k, v in items) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonicalize(v) for v in value) + "]"
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    arguments: dict[str, Any],
) -> str:
    """
    Deterministic SHA-256 fingerprint of the named call arguments.

    Postconditions:
        Returns a 16-character hex string.  Identical inputs always give
        the same fingerprint.
    """
    parts = [
        f"{name}={_canonicalize(arguments.get(name))}" for name in fingerprint_fields
    ]
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """
    Decorator that emits INCENTIVE_ENGINE_TRACE for each calculator call.

    Args:
        engine_name: Calculator identifier (e.g. "commission").
        engine_version: Calculator version (e.g. "1.0").
        fingerprint_fields: Argument names (positional or keyword) to
            include in the input fingerprint.
    """

    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fp = ""
            if fingerprint_fields:
                bound = signature.bind_partial(*args, **kwargs)
                fp = compute_input_fingerprint(fingerprint_fields, dict(bound.arguments))

            t0 = time.monotonic()
            result = func(*args, **kwargs)
            duration_ms = round((time.monotonic() - t0) * 1000, 2)

            _logger.debug(
                "INCENTIVE_ENGINE_TRACE",
                extra={
                    "trace_type": "INCENTIVE_ENGINE_TRACE",
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": fp,
                    "duration_ms": duration_ms,
                    "function": func.__qualname__,
                },
            )
            return result

        return wrapper

    return decorator
