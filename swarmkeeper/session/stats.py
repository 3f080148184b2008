"""Cumulative upload statistics that survive restarts.

The record is a single decimal integer in `<download_dir>/<stats_file>`. Each
flush adds the growth of every job's session upload counter since the
previous flush, so nothing is counted twice within a run and a restart resumes
from the persisted total.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import tempfile
from pathlib import Path

from swarmkeeper.session.models import Job, SeederContext
from swarmkeeper.utils.exceptions import StatsPersistenceError
from swarmkeeper.utils.logging_config import get_logger

logger = get_logger(__name__)

_MB = 1024 * 1024


def read_stats_file(path: Path) -> int:
    """Read a persisted total, treating missing or corrupt records as 0."""
    try:
        text = path.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        logger.info("No stats file at %s, starting from 0", path)
        return 0
    except OSError as e:
        logger.warning("Could not read stats file %s: %s", path, e)
        return 0

    try:
        total = int(text)
    except ValueError:
        logger.warning("Corrupt stats file %s (%r), starting from 0", path, text[:40])
        return 0
    if total < 0:
        logger.warning("Negative total in stats file %s, starting from 0", path)
        return 0
    return total


def write_stats_file(path: Path, total: int) -> None:
    """Atomically replace the record at `path` with `total`."""
    tmp_name = None
    try:
        fd, tmp_name = tempfile.mkstemp(
            dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
        )
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(f"{total}\n")
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
        tmp_name = None
    except OSError as e:
        msg = f"Failed to write stats file {path}: {e}"
        raise StatsPersistenceError(msg) from e
    finally:
        if tmp_name is not None:
            with contextlib.suppress(OSError):
                os.unlink(tmp_name)


class StatsLedger:
    """Periodically accumulates and persists the all-runs upload total."""

    def __init__(self, ctx: SeederContext) -> None:
        self.ctx = ctx
        self.interval = ctx.config.stats.interval
        self.stats_path = ctx.download_dir / ctx.config.stats.stats_file
        self._total = 0
        # Last observed session upload counter per job source
        self._baselines: dict[str, int] = {}
        self._lock = asyncio.Lock()
        self._pending_write: asyncio.Future[None] | None = None

    @property
    def total(self) -> int:
        return self._total

    def load(self) -> int:
        """Load the persisted total into memory."""
        self._total = read_stats_file(self.stats_path)
        logger.info("Total uploaded (previous runs): %.2f MB", self._total / _MB)
        return self._total

    async def run(self) -> None:
        """Flush every `interval` seconds until cancellation."""
        while not await self.ctx.shutdown.sleep(self.interval):
            await self.flush()

    async def flush(self) -> int:
        """Account for new uploads, log status and persist the total.

        Returns:
            Bytes added to the total by this flush.

        """
        async with self._lock:
            added = 0
            for job in self.ctx.jobs:
                if job.is_active:
                    try:
                        stats = self.ctx.engine.stats(job.handle)
                    except Exception as e:
                        logger.warning("Could not read stats for %s: %s", job.label, e)
                        continue
                    job.session_uploaded_bytes = stats.uploaded_bytes
                    logger.info(
                        "%s - %d peers - Total Uploaded: %.2f MB",
                        job.label,
                        stats.num_peers,
                        stats.uploaded_bytes / _MB,
                    )
                added += self._account(job)

            self._total += added
            logger.info("Total uploaded: %.2f MB (all runs)", self._total / _MB)
            await self._persist(self._total)
            return added

    def _account(self, job: Job) -> int:
        """Return the growth of the job's session counter since the last flush."""
        uploaded = job.session_uploaded_bytes
        baseline = self._baselines.get(job.source, 0)
        self._baselines[job.source] = uploaded
        if uploaded >= baseline:
            return uploaded - baseline
        logger.debug(
            "Upload counter for %s went backwards, resetting baseline", job.label
        )
        return 0

    async def _persist(self, total: int) -> None:
        # A cancelled flush leaves its thread write running; it must land first
        if self._pending_write is not None and not self._pending_write.done():
            with contextlib.suppress(StatsPersistenceError):
                await self._pending_write

        loop = asyncio.get_running_loop()
        self._pending_write = loop.run_in_executor(
            None, write_stats_file, self.stats_path, total
        )
        try:
            await asyncio.shield(self._pending_write)
        except StatsPersistenceError as e:
            logger.error("%s (will retry next tick)", e)
