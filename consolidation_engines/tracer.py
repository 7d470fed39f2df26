"""
consolidation_engines.tracer -- CONSOLIDATION_ENGINE_TRACE records.

Responsibility:
    ``@traced_engine`` wraps a pure engine call and logs one trace record
    per invocation: engine name and version, a fingerprint of the chosen
    keyword inputs, the wall time taken and whether the call raised.
    Two runs over the same snapshot therefore leave identical fingerprints
    in the log, which is how a rerun is shown to have seen the same inputs.

Architecture position:
    Engines -- the only logging the engines do besides their own events.
    Never alters arguments or results; exceptions propagate unchanged.

Invariants enforced:
    - Fingerprints are stable across processes: mappings and sets are
      ordered before hashing, Decimals keep their written digits, and
      read-only mapping views hash like the dicts they wrap.
    - A keyword named in ``fingerprint_fields`` but not passed hashes as
      ``null``.
"""

from __future__ import annotations

import functools
import hashlib
import time
from collections.abc import Callable, Mapping
from dataclasses import fields, is_dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

from consolidation_kernel.logging_config import get_logger

_logger = get_logger("engines.tracer")

TRACE = "CONSOLIDATION_ENGINE_TRACE"


def _canonicalize(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (str, int, Decimal)):
        return str(value)
    if isinstance(value, Mapping):
        pairs = sorted((str(k), _canonicalize(v)) for k, v in value.items())
        return "{" + ",".join(f"{k}:{v}" for k, v in pairs) + "}"
    if isinstance(value, (set, frozenset)):
        return "[" + ",".join(sorted(_canonicalize(v) for v in value)) + "]"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonicalize(v) for v in value) + "]"
    if is_dataclass(value) and not isinstance(value, type):
        body = ",".join(f"{f.name}={_canonicalize(getattr(value, f.name))}" for f in fields(value))
        return f"{type(value).__name__}({body})"
    return repr(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    kwargs: Mapping[str, Any],
) -> str:
    """First 16 hex digits of a SHA-256 over the named keyword inputs."""
    digest = hashlib.sha256()
    for name in fingerprint_fields:
        digest.update(f"{name}={_canonicalize(kwargs.get(name))}|".encode("utf-8"))
    return digest.hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Emit a CONSOLIDATION_ENGINE_TRACE record around every call."""

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fingerprint = (
                compute_input_fingerprint(fingerprint_fields, kwargs)
                if fingerprint_fields else ""
            )
            started = time.perf_counter()
            outcome = "error"
            try:
                result = func(*args, **kwargs)
                outcome = "ok"
                return result
            finally:
                _logger.info(
                    TRACE,
                    extra={
                        "trace_type": TRACE,
                        "engine_name": engine_name,
                        "engine_version": engine_version,
                        "function": func.__qualname__,
                        "input_fingerprint": fingerprint,
                        "outcome": outcome,
                        "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                    },
                )

        return wrapper

    return decorator
