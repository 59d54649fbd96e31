"""
Helpers for running groups of coroutines.
"""

import asyncio
from typing import Awaitable, Iterable, List, TypeVar

T = TypeVar("T")


async def gather_fail_fast(aws: Iterable[Awaitable[T]]) -> List[T]:
    """
    Runs awaitables concurrently and returns their results in input order.

    Unlike ``asyncio.gather``, the first exception cancels every task still
    running before it is re-raised. When several fail together, the first in
    input order wins and the others are retrieved so asyncio does not log them.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    if not tasks:
        return []
    try:
        await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        errors = [
            task.exception() for task in tasks if task.done() and not task.cancelled()
        ]
        errors = [e for e in errors if e is not None]
        if errors:
            raise errors[0]
        return [task.result() for task in tasks]
    finally:
        still_running = [t for t in tasks if not t.done()]
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
