"""
Spaces out depot requests and backs off when the depot answers 429 "Too Many Requests".
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Callable, Optional

log = logging.getLogger(__name__)

MIN_CALLS_PER_SECOND = 1.0
# A depot asking for a longer pause than this is capped.
MAX_RETRY_AFTER = 120.0
RECOVERY_QUIET_PERIOD = 300.0


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """
    Reads a ``Retry-After`` header, given either as delay seconds or as an
    HTTP date. Returns the delay in seconds, or None if absent or unreadable.
    """
    if not value:
        return None
    value = value.strip()
    try:
        seconds = float(value)
    except ValueError:
        try:
            when = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        seconds = (when - datetime.now(timezone.utc)).total_seconds()
    return min(max(seconds, 0.0), MAX_RETRY_AFTER)


class AdaptiveRateLimiter:
    """
    Hands out request slots at the current rate. A 429 halves the rate and,
    when the depot sends ``Retry-After``, holds every request until it expires.
    The rate creeps back up after a quiet period.
    """

    def __init__(
        self,
        initial_calls_per_second: float = 8.0,
        max_calls_per_second: float = 12.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._rate = initial_calls_per_second
        self._max_rate = max_calls_per_second
        self._clock = clock
        self._next_slot = 0.0
        self._paused_until = 0.0
        self._last_429_time: Optional[float] = None

    @property
    def rate(self) -> float:
        return self._rate

    async def on_429(self, retry_after: Optional[float] = None) -> None:
        """Halves the request rate and honours the depot's requested pause."""
        now = self._clock()
        self._rate = max(MIN_CALLS_PER_SECOND, self._rate * 0.5)
        self._last_429_time = now
        if retry_after:
            self._paused_until = max(
                self._paused_until, now + min(retry_after, MAX_RETRY_AFTER)
            )
            log.warning(
                f"[yellow]Depot rate limit hit. Pausing {retry_after:.1f}s, "
                f"new rate: {self._rate:.1f} calls/s[/yellow]"
            )
        else:
            log.warning(
                f"[yellow]Depot rate limit hit. New rate: {self._rate:.1f} calls/s[/yellow]"
            )

    def reserve(self) -> float:
        """Claims the next request slot and returns how long to wait for it."""
        now = self._clock()
        if (
            self._last_429_time is None
            or now - self._last_429_time > RECOVERY_QUIET_PERIOD
        ):
            self._rate = min(self._max_rate, self._rate * 1.005)

        slot = max(now, self._next_slot, self._paused_until)
        self._next_slot = slot + 1.0 / self._rate
        return slot - now

    async def acquire(self) -> None:
        """Waits for this caller's slot. Other callers keep claiming slots meanwhile."""
        delay = self.reserve()
        if delay > 0:
            await asyncio.sleep(delay)
