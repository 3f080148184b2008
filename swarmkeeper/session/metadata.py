"""Metadata acquisition: turn a job source into an engine handle.

Magnet sources go straight to the engine. HTTP(S) sources are resolved to a
`.torrent` descriptor through an on-disk cache in the download directory, so
a descriptor is fetched at most once per run and survives restarts.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import tempfile
from pathlib import Path
from typing import Any

import aiohttp

from swarmkeeper.core.descriptor import (
    Descriptor,
    cache_name_for,
    is_http_url,
    load_descriptor,
)
from swarmkeeper.core.magnet import parse_magnet
from swarmkeeper.session.models import Job, SeederContext
from swarmkeeper.utils.exceptions import (
    AcquisitionError,
    CacheWriteError,
    DescriptorError,
    FetchError,
)
from swarmkeeper.utils.logging_config import get_logger

logger = get_logger(__name__)


class MetadataAcquirer:
    """Resolves job sources into swarm engine handles."""

    def __init__(
        self,
        ctx: SeederContext,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        """Initialize the acquirer.

        Args:
            ctx: Shared seeder context
            session: HTTP session to reuse; one is created by `start` otherwise

        """
        self.ctx = ctx
        self.config = ctx.config.metadata
        self.session = session
        self._owns_session = session is None
        self._locks: dict[Path, asyncio.Lock] = {}

    async def start(self) -> None:
        """Create the HTTP session used for descriptor downloads."""
        self._ensure_session()

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self.session is None:
            timeout = aiohttp.ClientTimeout(total=self.config.http_timeout)
            self.session = aiohttp.ClientSession(
                timeout=timeout,
                headers={"User-Agent": self.config.user_agent},
            )
            self._owns_session = True
        return self.session

    async def stop(self) -> None:
        """Close the HTTP session if this acquirer created it."""
        if self._owns_session and self.session is not None:
            await self.session.close()
            self.session = None

    async def __aenter__(self) -> MetadataAcquirer:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    async def acquire(self, job: Job) -> Any:
        """Hand the job's source to the engine and return the engine handle.

        Raises:
            AcquisitionError: The source could not be resolved
            EngineRejectedError: The engine refused the swarm

        """
        save_path = self.ctx.download_dir
        if job.is_magnet:
            magnet = parse_magnet(job.source)
            if magnet.display_name and not job.name:
                job.name = magnet.display_name
            logger.info("Adding magnet link: %s", magnet.info_hash_hex)
            return await self.ctx.engine.add_magnet(job.source, save_path)

        if is_http_url(job.source):
            descriptor = await self.fetch_descriptor(job.source)
            job.name = descriptor.name
            return await self.ctx.engine.add_descriptor(descriptor, save_path)

        msg = f"Unsupported source: {job.source}"
        raise AcquisitionError(msg)

    def cache_path(self, url: str) -> Path:
        return self.ctx.download_dir / cache_name_for(url)

    async def fetch_descriptor(self, url: str) -> Descriptor:
        """Return the descriptor for `url`, downloading it only if not cached."""
        path = self.cache_path(url)
        loop = asyncio.get_running_loop()
        lock = self._locks.setdefault(path, asyncio.Lock())
        async with lock:
            fetched = False
            if path.exists():
                logger.debug("Using cached torrent file: %s", path)
            else:
                logger.info("Downloading torrent file: %s", url)
                data = await self._download(url)
                await loop.run_in_executor(None, self._write_cache, path, data)
                fetched = True
                logger.info("Torrent file saved: %s", path)

            try:
                return await loop.run_in_executor(None, load_descriptor, path)
            except DescriptorError:
                if fetched:
                    # Let the next run download it again
                    with contextlib.suppress(OSError):
                        path.unlink()
                raise

    async def _download(self, url: str) -> bytes:
        session = self._ensure_session()
        try:
            async with session.get(url) as response:
                if not 200 <= response.status < 300:
                    msg = f"HTTP {response.status}: {response.reason}"
                    raise FetchError(msg, {"url": url})
                return await response.read()
        except aiohttp.ClientError as e:
            msg = f"Failed to download torrent: {e}"
            raise FetchError(msg, {"url": url}) from e
        except asyncio.TimeoutError as e:
            msg = f"Timed out downloading torrent after {self.config.http_timeout}s"
            raise FetchError(msg, {"url": url}) from e

    @staticmethod
    def _write_cache(path: Path, data: bytes) -> None:
        """Write `data` to `path` only if `path` does not exist yet.

        The bytes go to a temporary file in the same directory which is then
        hard-linked into place, so readers never see a partial file and a
        concurrent writer cannot clobber an existing entry.
        """
        try:
            fd, tmp_name = tempfile.mkstemp(
                dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
            )
        except OSError as e:
            msg = f"Failed to create torrent file in {path.parent}: {e}"
            raise CacheWriteError(msg) from e

        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            try:
                os.link(tmp_name, path)
            except FileExistsError:
                logger.debug("Torrent file appeared concurrently: %s", path)
        except OSError as e:
            msg = f"Failed to save torrent file {path}: {e}"
            raise CacheWriteError(msg) from e
        finally:
            with contextlib.suppress(OSError):
                os.unlink(tmp_name)
