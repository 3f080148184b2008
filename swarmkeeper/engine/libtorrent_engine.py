"""Swarm engine backed by libtorrent-rasterbar's Python bindings."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

try:
    import libtorrent as lt

    HAS_LIBTORRENT = True
except ImportError:
    HAS_LIBTORRENT = False
    lt = None  # type: ignore[assignment]

from swarmkeeper.core.descriptor import Descriptor
from swarmkeeper.engine.types import SwarmStats
from swarmkeeper.models import EngineConfig
from swarmkeeper.utils.exceptions import AnnounceError, EngineRejectedError
from swarmkeeper.utils.logging_config import get_logger

logger = get_logger(__name__)

# libtorrent's default file priority
_DEFAULT_PRIORITY = 4


class LibtorrentEngine:
    """SwarmEngine implementation on top of an `lt.session`."""

    def __init__(self, config: EngineConfig, metadata_poll_interval: float = 0.5):
        """Create the libtorrent session.

        Args:
            config: Engine settings
            metadata_poll_interval: Seconds between metadata checks while waiting

        """
        if not HAS_LIBTORRENT:
            msg = "libtorrent is required for the swarm engine. Install with: pip install 'swarmkeeper[engine]'"
            raise ImportError(msg)

        self.config = config
        self._metadata_poll_interval = metadata_poll_interval
        port = config.listen_port
        self._session = lt.session(
            {
                "listen_interfaces": f"0.0.0.0:{port},[::]:{port}",
                "enable_dht": config.enable_dht,
                # libtorrent has no half-open cap; this bounds new attempts per second
                "connection_speed": config.half_open_conns_per_torrent,
                "alert_mask": lt.alert.category_t.error_notification
                | lt.alert.category_t.status_notification,
            }
        )
        logger.info(
            "libtorrent %s session listening on port %d (DHT %s, PEX %s)",
            lt.__version__,
            port,
            "on" if config.enable_dht else "off",
            "on" if config.enable_pex else "off",
        )

    def _params(self, params: Any, save_path: Path) -> Any:
        params.save_path = str(save_path)
        params.max_connections = self.config.established_conns_per_torrent
        if not self.config.enable_pex:
            params.flags |= lt.torrent_flags.disable_pex
        return params

    def _add(self, params: Any) -> Any:
        try:
            return self._session.add_torrent(params)
        except RuntimeError as e:
            msg = f"libtorrent refused torrent: {e}"
            raise EngineRejectedError(msg) from e

    async def add_descriptor(self, descriptor: Descriptor, save_path: Path) -> Any:
        loop = asyncio.get_running_loop()
        try:
            info = await loop.run_in_executor(
                None, lt.torrent_info, str(descriptor.path)
            )
        except RuntimeError as e:
            msg = f"libtorrent could not load {descriptor.path}: {e}"
            raise EngineRejectedError(msg) from e
        params = lt.add_torrent_params()
        params.ti = info
        return self._add(self._params(params, save_path))

    async def add_magnet(self, uri: str, save_path: Path) -> Any:
        try:
            params = lt.parse_magnet_uri(uri)
        except RuntimeError as e:
            msg = f"libtorrent could not parse magnet: {e}"
            raise EngineRejectedError(msg) from e
        return self._add(self._params(params, save_path))

    async def wait_for_metadata(self, handle: Any) -> None:
        while not handle.status().has_metadata:
            await asyncio.sleep(self._metadata_poll_interval)

    def download_all(self, handle: Any) -> None:
        handle.unset_flags(lt.torrent_flags.upload_mode)
        info = handle.torrent_file()
        if info is not None:
            handle.prioritize_files([_DEFAULT_PRIORITY] * info.num_files())
        handle.resume()

    def stats(self, handle: Any) -> SwarmStats:
        s = handle.status()
        errc = getattr(s, "errc", None)
        error = errc.message() if errc is not None and errc.value() != 0 else None
        info_hash = str(handle.info_hash())
        return SwarmStats(
            name=s.name,
            info_hash=bytes.fromhex(info_hash) if len(info_hash) == 40 else None,
            uploaded_bytes=int(s.total_payload_upload),
            num_peers=int(s.num_peers),
            progress=float(s.progress),
            has_metadata=bool(s.has_metadata),
            error=error,
            total_bytes=int(s.total_wanted),
        )

    def trackers(self, handle: Any) -> list[str]:
        return [entry["url"] for entry in handle.trackers()]

    async def announce_tracker(self, handle: Any, url: str) -> None:
        urls = self.trackers(handle)
        if url not in urls:
            msg = f"Tracker not attached to swarm: {url}"
            raise AnnounceError(msg)
        handle.force_reannounce(0, urls.index(url))

    async def dht_announce(self, info_hash: bytes, port: int) -> None:
        if not self.config.enable_dht:
            msg = "DHT is disabled"
            raise AnnounceError(msg)
        self._session.dht_announce(lt.sha1_hash(info_hash), port, 0)

    def listen_port(self) -> int:
        return int(self._session.listen_port())

    async def remove(self, handle: Any) -> None:
        self._session.remove_torrent(handle)

    async def close(self) -> None:
        self._session.pause()
        logger.info("libtorrent session paused")
