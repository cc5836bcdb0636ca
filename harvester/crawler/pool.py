"""
Bounded concurrent task runner.

Launches coroutines one by one, keeps at most ``limit`` in flight, and waits
for at least one to finish before launching the next. Results come back in
submission order; a failed task yields its exception instead of a value so
one bad detail page does not cancel its siblings.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Iterable, TypeVar

T = TypeVar("T")


class BoundedPool:
    """Run awaitables with a fixed concurrency ceiling."""

    def __init__(self, limit: int) -> None:
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self.limit = limit

    async def run(
        self, factories: Iterable[Callable[[], Awaitable[T]]]
    ) -> list[T | BaseException]:
        """Run every factory's coroutine.

        Args:
            factories: Zero-arg callables returning awaitables. Each is only
                called when a slot is free.

        Returns:
            One entry per factory, in order: the result, or the exception
            the task raised.
        """
        tasks: list[asyncio.Task[Any]] = []
        in_flight: set[asyncio.Task[Any]] = set()

        for factory in factories:
            if len(in_flight) >= self.limit:
                _, in_flight = await asyncio.wait(
                    in_flight, return_when=asyncio.FIRST_COMPLETED
                )
            task = asyncio.ensure_future(factory())
            tasks.append(task)
            in_flight.add(task)

        if not tasks:
            return []
        return list(await asyncio.gather(*tasks, return_exceptions=True))
