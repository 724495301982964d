"""Per-user runs-per-minute admission control.

Counts are kept in fixed wall-clock minute windows ("YYYY-MM-DDTHH:MM",
UTC) held by the store. Every check increments the window, whether or not
the caller goes on to run anything. A user can burst up to twice the limit
across a minute boundary.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from promptbench.storage.base import Store

logger = logging.getLogger(__name__)

DEFAULT_MAX_PER_MINUTE = 10
DEFAULT_RETENTION = timedelta(minutes=5)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def window_key(moment: datetime) -> str:
    """Minute bucket key for a moment, e.g. '2025-01-31T12:05'."""
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M")


@dataclass(frozen=True)
class RateLimitDecision:
    """Whether one more run is admitted and how many remain this minute."""

    allowed: bool
    remaining: int


class RateLimiter:
    """Admission control backed by the store's atomic window counter."""

    def __init__(
        self,
        store: Store,
        max_per_minute: int = DEFAULT_MAX_PER_MINUTE,
        retention: timedelta = DEFAULT_RETENTION,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self.max_per_minute = max_per_minute
        self._retention = retention
        self._clock = clock

    def check(self, user_id: str) -> RateLimitDecision:
        """Count one attempt for user_id and decide whether it is admitted.

        Storage failures fail open: the attempt is admitted and the failure
        is logged.
        """
        key = window_key(self._clock())
        try:
            count = self._store.increment_rate_window(user_id, key)
        except Exception:
            logger.warning(
                "Rate limit check failed for user %s, allowing request",
                user_id,
                exc_info=True,
            )
            return RateLimitDecision(allowed=True, remaining=self.max_per_minute)

        return RateLimitDecision(
            allowed=count <= self.max_per_minute,
            remaining=max(0, self.max_per_minute - count),
        )

    def cleanup(self) -> int:
        """Delete windows older than the retention horizon.

        Returns:
            Number of windows removed.
        """
        cutoff = self._clock() - self._retention
        removed = self._store.delete_rate_windows_before(cutoff)
        if removed:
            logger.info("Removed %d expired rate limit window(s)", removed)
        return removed
