"""Bounded-concurrency task group used by the fetch and insert phases."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, List, Optional, TypeVar

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class TaskOutcome(Generic[T]):
    """Result or error of one submitted task."""

    key: Any
    result: Optional[T] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class BoundedTaskGroup(Generic[T]):
    """Run submitted coroutines with at most ``limit`` active at once.

    A task holds a semaphore permit for the whole of its work. ``join``
    waits for every task, even after failures, and returns one
    ``TaskOutcome`` per task instead of raising.
    """

    def __init__(self, limit: int, name: str = "tasks") -> None:
        if limit < 1:
            raise ValueError("limit must be >= 1")
        self.limit = limit
        self.name = name
        self._semaphore = asyncio.Semaphore(limit)
        self._tasks: List[asyncio.Task] = []
        self.active = 0
        self.peak_active = 0

    async def _run(self, key: Any, factory: Callable[[], Awaitable[T]]) -> TaskOutcome[T]:
        async with self._semaphore:
            self.active += 1
            self.peak_active = max(self.peak_active, self.active)
            try:
                return TaskOutcome(key=key, result=await factory())
            except Exception as exc:
                return TaskOutcome(key=key, error=exc)
            finally:
                self.active -= 1

    def submit(self, key: Any, factory: Callable[[], Awaitable[T]]) -> None:
        """Schedule ``factory()``; the coroutine is created once a permit is held."""
        self._tasks.append(asyncio.create_task(self._run(key, factory)))

    async def join(self) -> List[TaskOutcome[T]]:
        outcomes: List[TaskOutcome[T]] = list(await asyncio.gather(*self._tasks))
        self._tasks = []
        failed = 0
        for outcome in outcomes:
            if outcome.error is not None:
                failed += 1
                LOGGER.error(
                    "%s task %s failed: %s",
                    self.name,
                    outcome.key,
                    outcome.error,
                    exc_info=outcome.error,
                )
        LOGGER.info(
            "%s: %d task(s) finished, %d failed (peak concurrency %d/%d)",
            self.name,
            len(outcomes),
            failed,
            self.peak_active,
            self.limit,
        )
        return outcomes
