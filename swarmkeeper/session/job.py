"""Per-job lifecycle supervision.

Each configured source gets one `JobSupervisor` task that drives it from
Pending to Seeding (or Failed / Stopped). Failures never escape `run`, so a
broken source cannot take its siblings down.
"""

from __future__ import annotations

import asyncio

from swarmkeeper.engine.types import SwarmStats
from swarmkeeper.session.metadata import MetadataAcquirer
from swarmkeeper.session.models import Job, JobState, SeederContext
from swarmkeeper.utils.exceptions import (
    EngineError,
    MetadataTimeoutError,
    ShutdownRequested,
    SwarmkeeperError,
)
from swarmkeeper.utils.logging_config import get_logger, set_correlation_id

logger = get_logger(__name__)

_MB = 1024 * 1024


class JobSupervisor:
    """Drives one job through its lifecycle."""

    def __init__(
        self, ctx: SeederContext, job: Job, acquirer: MetadataAcquirer
    ) -> None:
        self.ctx = ctx
        self.job = job
        self.acquirer = acquirer
        self.metadata_timeout = ctx.config.metadata.metadata_timeout
        self.poll_interval = ctx.config.metadata.completion_poll_interval

    async def run(self) -> JobState:
        """Run the job until it fails, stops or cancellation ends seeding.

        Returns:
            The job's terminal state.

        """
        set_correlation_id()
        try:
            await self._run()
        except ShutdownRequested:
            if self.job.state != JobState.SEEDING:
                self._transition(JobState.STOPPED)
        except SwarmkeeperError as e:
            await self._fail(e.message)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception("Unexpected error in job %s", self.job.label)
            await self._fail(f"Unexpected error: {e}")
        return self.job.state

    async def _run(self) -> None:
        shutdown = self.ctx.shutdown
        engine = self.ctx.engine
        job = self.job

        job.handle = await shutdown.race(self.acquirer.acquire(job))
        self._transition(JobState.ACQUIRING_METADATA)

        try:
            await shutdown.race(
                engine.wait_for_metadata(job.handle), timeout=self.metadata_timeout
            )
        except asyncio.TimeoutError as e:
            msg = f"No metadata after {self.metadata_timeout}s"
            raise MetadataTimeoutError(msg, {"source": job.source}) from e

        stats = engine.stats(job.handle)
        job.identity = stats.info_hash or job.identity
        job.name = stats.name or job.name
        logger.info("Metadata retrieved: %s", job.label)

        engine.download_all(job.handle)
        self._transition(JobState.VERIFYING_CONTENT)
        stats = await self._wait_for_content()

        self._transition(JobState.SEEDING)
        logger.info("Seeding: %s (Size: %d MB)", job.label, stats.total_bytes // _MB)
        await shutdown.wait()

    async def _wait_for_content(self) -> SwarmStats:
        """Poll the engine until all content is present and verified."""
        while True:
            stats = self.ctx.engine.stats(self.job.handle)
            if stats.error:
                msg = f"Engine reported error: {stats.error}"
                raise EngineError(msg, {"source": self.job.source})
            if stats.is_complete:
                return stats
            logger.debug(
                "Waiting for content: %s (%.1f%%)", self.job.label, stats.progress * 100
            )
            if await self.ctx.shutdown.sleep(self.poll_interval):
                raise ShutdownRequested

    def _transition(self, state: JobState) -> None:
        logger.debug("Job %s: %s -> %s", self.job.label, self.job.state.value, state.value)
        self.job.state = state

    async def _fail(self, reason: str) -> None:
        job = self.job
        job.error = reason
        self._transition(JobState.FAILED)
        logger.error("Job failed: %s: %s", job.label, reason)
        if job.handle is None:
            return
        # Last reading before the handle goes away; the stats ledger still counts it
        try:
            job.session_uploaded_bytes = self.ctx.engine.stats(job.handle).uploaded_bytes
        except Exception as e:
            logger.warning("Could not read final upload count for %s: %s", job.label, e)
        try:
            await self.ctx.engine.remove(job.handle)
        except Exception as e:
            logger.warning("Failed to remove %s from engine: %s", job.label, e)
        job.handle = None
