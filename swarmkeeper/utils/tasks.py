"""Task helpers for tracking background tasks."""

from __future__ import annotations

import asyncio
import contextlib
from typing import Any, Coroutine


class BackgroundTaskGroup:
    """Tracks background tasks so they can be awaited or cancelled together."""

    def __init__(self) -> None:
        """Initialize empty task group."""
        self._tasks: set[asyncio.Task[Any]] = set()

    def create(
        self, coro: Coroutine[Any, Any, Any], *, name: str | None = None
    ) -> asyncio.Task[Any]:
        """Create and track an asyncio task from a coroutine."""
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def tasks(self) -> set[asyncio.Task[Any]]:
        """Tasks that have not finished yet."""
        return set(self._tasks)

    async def wait(self, timeout: float | None = None) -> set[asyncio.Task[Any]]:
        """Wait for tracked tasks to finish on their own.

        Returns:
            Tasks still pending when the timeout elapsed.

        """
        if not self._tasks:
            return set()
        _, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        return pending

    async def cancel_and_wait(self, timeout: float | None = None) -> None:
        """Cancel all tracked tasks and wait for completion (with optional timeout)."""
        if not self._tasks:
            return
        for t in list(self._tasks):
            if not t.done():
                t.cancel()
        if timeout is None:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        else:
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(
                    asyncio.gather(*self._tasks, return_exceptions=True),
                    timeout=timeout,
                )
        self._tasks.clear()
