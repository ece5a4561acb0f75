"""Commit scheduling state for the memory manager.

Pure bookkeeping: no timers and no I/O. The manager feeds it mutation
and commit-outcome events with the current clock reading and acts on the
decisions it returns.
"""

from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field
from enum import Enum

from intentvault.config import MemoryConfig


class CommitKind(str, Enum):
    """Which timer a mutation armed."""

    FAST = "fast"
    DEBOUNCE = "debounce"


@dataclass
class CommitScheduler:
    """Debounce, fast-path, backoff and notice-throttle state for one identity."""

    config: MemoryConfig = field(default_factory=MemoryConfig)
    pending: bool = False
    fast_path_armed: bool = True
    consecutive_failures: int = 0
    backoff_until: float = 0.0
    last_mutation_at: float | None = None
    last_notice_at: float | None = None

    def on_mutation(self, now: float, *, has_pointer: bool) -> tuple[CommitKind, float]:
        """Record a mutation and return the timer to (re)arm with its delay.

        The first mutation of an aggregate that has never been committed
        takes the fast path; every other mutation restarts the debounce.
        """
        self.pending = True
        self.last_mutation_at = now
        if not has_pointer and self.fast_path_armed:
            self.fast_path_armed = False
            return CommitKind.FAST, self.config.fast_path_seconds
        return CommitKind.DEBOUNCE, self.config.debounce_seconds

    def in_backoff(self, now: float) -> bool:
        return now < self.backoff_until

    def backoff_remaining(self, now: float) -> float:
        return max(self.backoff_until - now, 0.0)

    def begin_attempt(self) -> None:
        """A snapshot was captured; later mutations mark the state dirty again."""
        self.pending = False

    def record_success(self) -> None:
        self.consecutive_failures = 0
        self.backoff_until = 0.0

    def record_failure(self, now: float) -> bool:
        """Count a failed commit; return ``True`` when this opens a backoff window."""
        self.pending = True
        self.consecutive_failures += 1
        if self.consecutive_failures >= self.config.max_consecutive_failures:
            self.backoff_until = now + self.config.backoff_seconds
            return True
        return False

    def may_notify(self, now: float) -> bool:
        """Throttle user-visible failure notices; claims the slot when allowed."""
        if (
            self.last_notice_at is not None
            and now - self.last_notice_at < self.config.notice_throttle_seconds
        ):
            return False
        self.last_notice_at = now
        return True

    def rearm_fast_path(self) -> None:
        self.fast_path_armed = True

    def reset(self) -> None:
        """Forget everything; used when the connected identity changes."""
        self.pending = False
        self.fast_path_armed = True
        self.consecutive_failures = 0
        self.backoff_until = 0.0
        self.last_mutation_at = None
        self.last_notice_at = None
