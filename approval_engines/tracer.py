"""
approval_engines.tracer -- debug trace for engine entry points.

Responsibility:
    ``@traced_engine(name, version)`` logs one ``engine_invoked`` debug
    record per call: engine name and version, the id of the instance or
    template the call acted on, a short summary of the result and the
    duration.  Enough to line up a state change in the logs with the
    engine version that produced it.

Architecture position:
    Engines -- logging only, no other I/O.  Does not touch arguments or
    results.
"""

from __future__ import annotations

import functools
import logging
import time
from collections.abc import Callable
from typing import Any, TypeVar

from approval_kernel.logging_config import get_logger

_logger = get_logger("engines.tracer")

F = TypeVar("F", bound=Callable[..., Any])


def _subject_id(args: tuple[Any, ...]) -> str | None:
    subject = args[0] if args else None
    subject_id = getattr(subject, "id", None)
    return str(subject_id) if subject_id is not None else None


def summarize_result(result: Any) -> dict[str, Any]:
    """Loggable summary of an engine return value.

    Transition outcomes report their event types and resulting status;
    booleans and collections report themselves and their size.
    """
    event_types = getattr(result, "event_types", None)
    if event_types is not None:
        return {
            "event_types": [e.value for e in event_types],
            "status": result.instance.status.value,
        }
    if isinstance(result, bool):
        return {"result": result}
    if isinstance(result, (list, tuple)):
        return {"result_count": len(result)}
    status = getattr(result, "status", None)
    if status is not None:
        return {"status": getattr(status, "value", status)}
    return {}


def traced_engine(engine_name: str, engine_version: str) -> Callable[[F], F]:
    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            started = time.monotonic()
            result = func(*args, **kwargs)
            if _logger.isEnabledFor(logging.DEBUG):
                _logger.debug(
                    "engine_invoked",
                    extra={
                        "engine_name": engine_name,
                        "engine_version": engine_version,
                        "function": func.__qualname__,
                        "subject_id": _subject_id(args),
                        "duration_ms": round((time.monotonic() - started) * 1000, 2),
                        **summarize_result(result),
                    },
                )
            return result

        return wrapper  # type: ignore[return-value]

    return decorator
