"""Top-level seeding routine.

Starts one supervisor per configured source plus the stats and health loops,
then waits for the cancellation signal and winds everything down.
"""

from __future__ import annotations

from pathlib import Path

from swarmkeeper.engine.types import SwarmEngine
from swarmkeeper.models import Config
from swarmkeeper.session.health import HealthMonitor
from swarmkeeper.session.job import JobSupervisor
from swarmkeeper.session.metadata import MetadataAcquirer
from swarmkeeper.session.models import Job, SeederContext
from swarmkeeper.session.shutdown import ShutdownCoordinator
from swarmkeeper.session.stats import StatsLedger
from swarmkeeper.utils.exceptions import ConfigurationError
from swarmkeeper.utils.logging_config import get_logger
from swarmkeeper.utils.tasks import BackgroundTaskGroup

logger = get_logger(__name__)


def prepare_download_dir(config: Config) -> Path:
    """Check the run configuration and create the download directory.

    Raises:
        ConfigurationError: No sources, or the download directory is unusable

    """
    if not config.seeding.sources:
        msg = "No torrent sources configured (use --url or TORRENT_URLS)"
        raise ConfigurationError(msg)

    download_dir = Path(config.seeding.download_dir).expanduser()
    try:
        download_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        msg = f"Cannot create download directory {download_dir}: {e}"
        raise ConfigurationError(msg) from e
    return download_dir


class SeedingOrchestrator:
    """Owns the seeder context and every task running against it."""

    def __init__(
        self,
        config: Config,
        engine: SwarmEngine,
        shutdown: ShutdownCoordinator | None = None,
        install_signal_handlers: bool = True,
    ) -> None:
        """Validate the configuration and prepare the seeder context.

        Raises:
            ConfigurationError: No sources, or the download directory is unusable

        """
        download_dir = prepare_download_dir(config)
        self.config = config
        self.install_signal_handlers = install_signal_handlers
        self.ctx = SeederContext(
            config=config,
            engine=engine,
            shutdown=shutdown or ShutdownCoordinator(),
            download_dir=download_dir,
            jobs=[Job(source) for source in config.seeding.sources],
        )
        self.acquirer = MetadataAcquirer(self.ctx)
        self.ledger = StatsLedger(self.ctx)
        self.health = HealthMonitor(self.ctx)
        self._tasks = BackgroundTaskGroup()

    @property
    def shutdown(self) -> ShutdownCoordinator:
        return self.ctx.shutdown

    @property
    def jobs(self) -> list[Job]:
        return self.ctx.jobs

    async def run(self) -> list[Job]:
        """Seed until cancellation, then return the jobs in their final states."""
        logger.info(
            "Seeding %d source(s) from %s", len(self.jobs), self.ctx.download_dir
        )
        self.ledger.load()
        await self.acquirer.start()
        if self.install_signal_handlers:
            self.shutdown.install_signal_handlers()

        try:
            for i, job in enumerate(self.jobs):
                supervisor = JobSupervisor(self.ctx, job, self.acquirer)
                self._tasks.create(supervisor.run(), name=f"job-{i}")
            self._tasks.create(self.ledger.run(), name="stats-ledger")
            self._tasks.create(self.health.run(), name="health-monitor")

            await self.shutdown.wait()
            await self._drain()
            await self.ledger.flush()
        finally:
            if self.install_signal_handlers:
                self.shutdown.remove_signal_handlers()
            await self.acquirer.stop()
            await self.ctx.engine.close()

        for job in self.jobs:
            logger.info("Final state: %s: %s", job.label, job.state.value)
        return self.jobs

    async def _drain(self) -> None:
        grace = self.config.shutdown_grace
        pending = await self._tasks.wait(timeout=grace)
        if pending:
            names = ", ".join(sorted(t.get_name() for t in pending))
            logger.warning(
                "Tasks still running after %.1fs grace period: %s", grace, names
            )
            await self._tasks.cancel_and_wait(timeout=grace)
