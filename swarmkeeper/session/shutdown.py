"""Shutdown coordination.

A single `ShutdownCoordinator` is created per run. It owns the only
cancellation signal: job supervisors and periodic loops wait on it, and
OS termination signals set it exactly once.
"""

from __future__ import annotations

import asyncio
import signal
from typing import Any, Awaitable, TypeVar

from swarmkeeper.utils.exceptions import ShutdownRequested
from swarmkeeper.utils.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_SIGNALS: tuple[signal.Signals, ...] = (signal.SIGINT, signal.SIGTERM)


class ShutdownCoordinator:
    """Owns the run-wide cancellation signal."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._installed: list[signal.Signals] = []
        self._previous_handlers: dict[signal.Signals, Any] = {}

    @property
    def is_set(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def request(self, reason: str = "shutdown requested") -> bool:
        """Fire the cancellation signal.

        Returns:
            True for the call that fired it, False for every later call.

        """
        if self._event.is_set():
            logger.debug("Shutdown already in progress, ignoring: %s", reason)
            return False
        self._reason = reason
        self._event.set()
        logger.info("Shutting down: %s", reason)
        return True

    async def wait(self) -> None:
        """Block until the cancellation signal fires."""
        await self._event.wait()

    async def sleep(self, seconds: float) -> bool:
        """Sleep for up to `seconds`, waking early on cancellation.

        Returns:
            True if cancellation fired (checked last, so it wins ties).

        """
        if self._event.is_set():
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
        return self._event.is_set()

    async def race(self, aw: Awaitable[T], timeout: float | None = None) -> T:
        """Await `aw` unless cancellation or the timeout comes first.

        Raises:
            ShutdownRequested: The cancellation signal fired first
            asyncio.TimeoutError: `timeout` elapsed first

        """
        if self._event.is_set():
            if asyncio.iscoroutine(aw):
                aw.close()
            raise ShutdownRequested

        task = asyncio.ensure_future(aw)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter},
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
            if self._event.is_set():
                raise ShutdownRequested
            if task in done:
                return task.result()
            raise asyncio.TimeoutError
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()
            elif not task.cancelled() and task.exception() is not None:
                logger.debug("Raced task ended with %r", task.exception())

    def install_signal_handlers(
        self, signals: tuple[signal.Signals, ...] = DEFAULT_SIGNALS
    ) -> None:
        """Route OS termination signals to `request`."""
        loop = asyncio.get_running_loop()
        self._loop = loop
        for sig in signals:
            try:
                loop.add_signal_handler(sig, self._on_signal, sig)
            except (NotImplementedError, RuntimeError):
                # Event loops without signal support (Windows)
                self._previous_handlers[sig] = signal.signal(
                    sig,
                    lambda signum, _frame: loop.call_soon_threadsafe(
                        self._on_signal, signum
                    ),
                )
            self._installed.append(sig)

    def remove_signal_handlers(self) -> None:
        """Undo `install_signal_handlers`."""
        for sig in self._installed:
            if sig in self._previous_handlers:
                signal.signal(sig, self._previous_handlers.pop(sig))
            elif self._loop is not None and not self._loop.is_closed():
                self._loop.remove_signal_handler(sig)
        self._installed.clear()

    def _on_signal(self, signum: int) -> None:
        self.request(f"received {signal.Signals(signum).name}")
