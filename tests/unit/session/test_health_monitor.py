from __future__ import annotations

import asyncio

import pytest

from swarmkeeper.session.health import HealthMonitor
from swarmkeeper.session.models import JobState

pytestmark = [pytest.mark.unit, pytest.mark.session]

TRACKERS = "&tr=http://t1/announce&tr=udp://t2:80/announce"


@pytest.fixture
async def monitor(make_ctx, fake_engine):
    ctx = make_ctx(
        ["magnet:?xt=urn:btih:" + "cc" * 20 + "&dn=swarm" + TRACKERS],
        health={"peer_floor": 10},
    )
    for job in ctx.jobs:
        job.handle = await fake_engine.add_magnet(job.source, ctx.download_dir)
        job.identity = job.handle.info_hash
        job.state = JobState.SEEDING
    return HealthMonitor(ctx)


async def test_peer_count_at_floor_does_not_reannounce(monitor, fake_engine):
    fake_engine.handles[0].peers = 10

    (sample,) = await monitor.check_once()

    assert sample.num_peers == 10
    assert sample.reannounced is False
    assert fake_engine.tracker_announces == []
    assert fake_engine.dht_announces == []


async def test_peer_count_below_floor_reannounces_everywhere(monitor, fake_engine):
    fake_engine.handles[0].peers = 9
    fake_engine.port = 51413

    (sample,) = await monitor.check_once()

    assert sample.reannounced is True
    assert fake_engine.tracker_announces == [
        ("swarm", "http://t1/announce"),
        ("swarm", "udp://t2:80/announce"),
    ]
    assert fake_engine.dht_announces == [(bytes.fromhex("cc" * 20), 51413)]


async def test_announce_failures_are_tolerated(monitor, fake_engine):
    fake_engine.handles[0].peers = 0
    fake_engine.failing_trackers.add("http://t1/announce")
    fake_engine.fail_dht = True

    (sample,) = await monitor.check_once()

    assert sample.reannounced is True
    assert fake_engine.tracker_announces == [("swarm", "udp://t2:80/announce")]


async def test_unknown_identity_skips_dht(monitor, fake_engine):
    monitor.ctx.jobs[0].identity = None
    await monitor.check_once()
    assert fake_engine.dht_announces == []
    assert len(fake_engine.tracker_announces) == 2


async def test_inactive_jobs_are_skipped(monitor, fake_engine):
    monitor.ctx.jobs[0].state = JobState.FAILED
    assert await monitor.check_once() == []


async def test_stats_failure_skips_job(monitor, fake_engine):
    fake_engine.fail_stats = True
    assert await monitor.check_once() == []


async def test_run_checks_until_cancelled(monitor, fake_engine):
    fake_engine.handles[0].peers = 1
    task = asyncio.create_task(monitor.run())

    await asyncio.sleep(0.2)
    assert fake_engine.dht_announces

    monitor.ctx.shutdown.request()
    await asyncio.wait_for(task, timeout=1)
