from __future__ import annotations

import asyncio
import gc
import os
import signal

import pytest

from swarmkeeper.session.shutdown import ShutdownCoordinator
from swarmkeeper.utils.exceptions import ShutdownRequested

pytestmark = [pytest.mark.unit, pytest.mark.session]


async def test_request_fires_once():
    shutdown = ShutdownCoordinator()
    assert not shutdown.is_set
    assert shutdown.request("first") is True
    assert shutdown.request("second") is False
    assert shutdown.is_set
    assert shutdown.reason == "first"


async def test_sleep_returns_false_when_interval_elapses():
    shutdown = ShutdownCoordinator()
    assert await shutdown.sleep(0.01) is False


async def test_sleep_wakes_early_on_cancellation():
    shutdown = ShutdownCoordinator()
    loop = asyncio.get_running_loop()
    loop.call_later(0.01, shutdown.request)
    start = loop.time()
    assert await shutdown.sleep(30) is True
    assert loop.time() - start < 5


async def test_sleep_after_cancellation_returns_immediately():
    shutdown = ShutdownCoordinator()
    shutdown.request()
    assert await shutdown.sleep(0) is True


async def test_race_returns_result():
    shutdown = ShutdownCoordinator()

    async def work():
        await asyncio.sleep(0)
        return 42

    assert await shutdown.race(work()) == 42


async def test_race_times_out_and_cancels_work():
    shutdown = ShutdownCoordinator()
    cancelled = asyncio.Event()

    async def slow():
        try:
            await asyncio.sleep(30)
        except asyncio.CancelledError:
            cancelled.set()
            raise

    with pytest.raises(asyncio.TimeoutError):
        await shutdown.race(slow(), timeout=0.01)
    await asyncio.wait_for(cancelled.wait(), timeout=1)


async def test_race_raises_when_shutdown_fires_first():
    shutdown = ShutdownCoordinator()
    asyncio.get_running_loop().call_later(0.01, shutdown.request)
    with pytest.raises(ShutdownRequested):
        await shutdown.race(asyncio.sleep(30))


async def test_race_retrieves_error_of_work_that_lost_to_shutdown():
    shutdown = ShutdownCoordinator()
    loop = asyncio.get_running_loop()
    unhandled = []
    loop.set_exception_handler(lambda _loop, context: unhandled.append(context))

    async def work():
        shutdown.request()
        raise RuntimeError("boom")

    stopped = False
    try:
        try:
            await shutdown.race(work())
        except ShutdownRequested:
            stopped = True
        gc.collect()
        await asyncio.sleep(0)
    finally:
        loop.set_exception_handler(None)
    assert stopped
    assert unhandled == []


async def test_race_after_cancellation_does_not_start_work():
    shutdown = ShutdownCoordinator()
    shutdown.request()
    started = False

    async def work():
        nonlocal started
        started = True

    with pytest.raises(ShutdownRequested):
        await shutdown.race(work())
    assert started is False


async def test_signal_handler_requests_shutdown_once():
    shutdown = ShutdownCoordinator()
    shutdown.install_signal_handlers((signal.SIGUSR1,))
    try:
        os.kill(os.getpid(), signal.SIGUSR1)
        await asyncio.wait_for(shutdown.wait(), timeout=1)
        assert shutdown.reason == "received SIGUSR1"
        os.kill(os.getpid(), signal.SIGUSR1)
        await asyncio.sleep(0.01)
        assert shutdown.reason == "received SIGUSR1"
    finally:
        shutdown.remove_signal_handlers()
