"""In-process operation metrics.

Each named operation (``blob.put``, ``memory.commit``, ``intent.extract``...)
keeps two kinds of data:

* timed samples, recorded with ``record_latency`` or the ``timed`` context
  manager, which feed ``count`` and the latency fields;
* untimed events, recorded with ``record_event``, which only feed
  ``event_count``. A skipped commit is an event, not a zero-millisecond commit.

Failures of either kind bump ``error_count`` and remember their reason in
``last_error``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from threading import Lock
from time import perf_counter

logger = logging.getLogger(__name__)


@dataclass
class OperationSummary:
    """Running aggregate for one named operation."""

    count: int = 0
    event_count: int = 0
    error_count: int = 0
    total_ms: float = 0.0
    min_ms: float | None = None
    max_ms: float = 0.0
    last_ms: float | None = None
    last_error: str | None = None

    def add_sample(self, duration_ms: float, error: str | None) -> None:
        self.count += 1
        self.total_ms += duration_ms
        self.last_ms = duration_ms
        self.max_ms = max(self.max_ms, duration_ms)
        self.min_ms = duration_ms if self.min_ms is None else min(self.min_ms, duration_ms)
        self._note(error)

    def add_event(self, error: str | None) -> None:
        self.event_count += 1
        self._note(error)

    def _note(self, error: str | None) -> None:
        if error is not None:
            self.error_count += 1
            self.last_error = error

    def as_dict(self) -> dict[str, float | int | str | None]:
        def _ms(value: float | None) -> float | None:
            return None if value is None else round(value, 3)

        return {
            "count": self.count,
            "event_count": self.event_count,
            "error_count": self.error_count,
            "avg_ms": round(self.total_ms / self.count, 3) if self.count else 0.0,
            "min_ms": _ms(self.min_ms),
            "max_ms": round(self.max_ms, 3),
            "last_ms": _ms(self.last_ms),
            "last_error": self.last_error,
        }


class _OperationRecorder:
    def __init__(self) -> None:
        self._lock = Lock()
        self._stats: dict[str, OperationSummary] = {}

    def _summary(self, operation: str) -> OperationSummary:
        return self._stats.setdefault(operation, OperationSummary())

    def sample(self, operation: str, duration_ms: float, error: str | None) -> None:
        # Clock adjustments can yield negative spans
        duration_ms = max(float(duration_ms), 0.0)
        with self._lock:
            self._summary(operation).add_sample(duration_ms, error)
        if error is None:
            logger.debug("%s took %.1fms", operation, duration_ms)
        else:
            logger.debug("%s failed after %.1fms: %s", operation, duration_ms, error)

    def event(self, operation: str, error: str | None) -> None:
        with self._lock:
            self._summary(operation).add_event(error)
        logger.debug("%s event%s", operation, f" ({error})" if error else "")

    def snapshot(self) -> dict[str, dict[str, float | int | str | None]]:
        with self._lock:
            return {name: s.as_dict() for name, s in sorted(self._stats.items())}

    def reset(self) -> None:
        with self._lock:
            self._stats.clear()


_RECORDER = _OperationRecorder()


def record_latency(
    *,
    operation: str,
    duration_ms: float,
    ok: bool = True,
    error: str | None = None,
) -> None:
    """Record one timed sample for *operation*.

    A sample is a failure when ``ok`` is false or an ``error`` reason is
    given; the reason defaults to ``"failed"``.
    """
    if not ok and error is None:
        error = "failed"
    _RECORDER.sample(operation, duration_ms, error)


def record_event(operation: str, *, error: str | None = None) -> None:
    """Count an untimed occurrence, such as a commit skipped during backoff."""
    _RECORDER.event(operation, error)


@contextmanager
def timed(operation: str) -> Iterator[None]:
    """Time the enclosed block as one sample of *operation*.

    An exception leaving the block marks the sample failed, using the
    exception type as the reason, and propagates unchanged.
    """
    start = perf_counter()
    error: str | None = None
    try:
        yield
    except BaseException as exc:
        error = type(exc).__name__
        raise
    finally:
        _RECORDER.sample(operation, (perf_counter() - start) * 1000, error)


def operation_metrics_snapshot() -> dict[str, dict[str, float | int | str | None]]:
    """Return current in-process aggregates, keyed by operation name."""
    return _RECORDER.snapshot()


def reset_operation_metrics() -> None:
    """Clear all aggregates (test helper)."""
    _RECORDER.reset()
