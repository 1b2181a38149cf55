"""Sliding-window rate limiting keyed by caller identity."""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class SlidingWindowRateLimiter:
    """Admit at most ``max_attempts`` per identity in any trailing window.

    State lives in process memory for the process lifetime and is neither
    persisted nor shared between instances. ``try_admit`` reads, filters and
    writes back without a lock: on one event loop it never yields in between,
    but under threads or several workers a burst may let one or two extra
    attempts through. Move the table to an atomic external store (for
    example a sorted set with server-side trimming) if that ever matters.
    """

    window_seconds: float = 15 * 60
    max_attempts: int = 20
    sweep_probability: float = 0.01
    clock: Callable[[], float] = time.time
    rand: Callable[[], float] = random.random
    attempts: dict[str, list[float]] = field(default_factory=dict)

    @property
    def retry_after_seconds(self) -> int:
        return int(self.window_seconds)

    def try_admit(self, identity: str, now: float | None = None) -> bool:
        current = self.clock() if now is None else now
        recent = self._recent(self.attempts.get(identity, ()), current)

        admitted = len(recent) < self.max_attempts
        if admitted:
            recent.append(current)
            self.attempts[identity] = recent
        else:
            logger.warning(
                "rate_limit.rejected",
                extra={"identity": identity, "attempts": len(recent), "window_seconds": self.window_seconds},
            )

        if self.rand() < self.sweep_probability:
            self.compact(current)
        return admitted

    def compact(self, now: float | None = None) -> int:
        """Drop expired timestamps and forget identities with none left."""
        current = self.clock() if now is None else now
        removed = 0
        for identity in list(self.attempts):
            recent = self._recent(self.attempts[identity], current)
            if recent:
                self.attempts[identity] = recent
            else:
                del self.attempts[identity]
                removed += 1
        if removed:
            logger.debug(
                "rate_limit.compacted",
                extra={"removed": removed, "tracked": len(self.attempts)},
            )
        return removed

    def _recent(self, timestamps, now: float) -> list[float]:
        # Inclusive at both ends: the window is [now - W, now].
        start = now - self.window_seconds
        return [ts for ts in timestamps if start <= ts <= now]
