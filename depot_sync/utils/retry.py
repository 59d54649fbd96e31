"""
A fixed-delay retry policy for async operations.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

log = logging.getLogger(__name__)

T = TypeVar("T")


class RetryExhaustedError(Exception):
    """Raised when every attempt allowed by a policy has failed."""

    def __init__(self, attempts: int, last_error: BaseException):
        super().__init__(f"Gave up after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


@dataclass(frozen=True)
class RetryPolicy:
    """
    Re-runs an operation up to ``max_attempts`` times, sleeping ``delay`` seconds
    between attempts. The delay is constant; it does not grow between attempts.

    Exceptions listed in ``give_up_on`` are raised straight away without further
    attempts. Cancellation always propagates, including during the sleep.
    """

    max_attempts: int = 5
    delay: float = 3.0
    give_up_on: Tuple[Type[BaseException], ...] = ()

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        on_failure: Optional[Callable[[int, BaseException], None]] = None,
    ) -> T:
        last_error: Optional[BaseException] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await operation()
            except self.give_up_on:
                raise
            except Exception as e:
                last_error = e
                log.debug(f"Attempt {attempt}/{self.max_attempts} failed: {e}")
                if on_failure:
                    on_failure(attempt, e)
                if attempt < self.max_attempts and self.delay > 0:
                    await asyncio.sleep(self.delay)

        raise RetryExhaustedError(self.max_attempts, last_error)
