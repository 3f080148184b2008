"""Swarm health monitoring: re-announce swarms that run low on peers."""

from __future__ import annotations

from swarmkeeper.session.models import Job, PeerPressureSample, SeederContext
from swarmkeeper.utils.logging_config import get_logger

logger = get_logger(__name__)


class HealthMonitor:
    """Checks peer counts and nudges trackers and the DHT when they drop."""

    def __init__(self, ctx: SeederContext) -> None:
        self.ctx = ctx
        self.interval = ctx.config.health.interval
        self.peer_floor = ctx.config.health.peer_floor

    async def run(self) -> None:
        """Check every `interval` seconds until cancellation."""
        while not await self.ctx.shutdown.sleep(self.interval):
            await self.check_once()

    async def check_once(self) -> list[PeerPressureSample]:
        samples: list[PeerPressureSample] = []
        for job in self.ctx.active_jobs():
            try:
                num_peers = self.ctx.engine.stats(job.handle).num_peers
            except Exception as e:
                logger.warning("Could not read peer count for %s: %s", job.label, e)
                continue

            reannounced = num_peers < self.peer_floor
            if reannounced:
                logger.info(
                    "Re-announcing: %s (%d peers, floor %d)",
                    job.label,
                    num_peers,
                    self.peer_floor,
                )
                await self.reannounce(job)
            samples.append(PeerPressureSample(job, num_peers, reannounced))
        return samples

    async def reannounce(self, job: Job) -> None:
        """Announce to every tracker of `job`, then once to the DHT."""
        engine = self.ctx.engine
        try:
            trackers = engine.trackers(job.handle)
        except Exception as e:
            logger.warning("Could not list trackers for %s: %s", job.label, e)
            trackers = []

        for url in trackers:
            try:
                await engine.announce_tracker(job.handle, url)
            except Exception as e:
                logger.warning("Tracker announce failed for %s (%s): %s", job.label, url, e)

        if job.identity is None:
            logger.debug("Skipping DHT announce for %s: identity unknown", job.label)
            return
        try:
            await engine.dht_announce(job.identity, engine.listen_port())
        except Exception as e:
            logger.warning("DHT announce failed for %s: %s", job.label, e)
