"""Pytest configuration and shared fixtures for swarmkeeper tests."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest
import torf
from aiohttp import web
from aiohttp.test_utils import TestServer

from swarmkeeper.config.config import reset_config
from swarmkeeper.core.magnet import parse_magnet
from swarmkeeper.engine.types import SwarmStats
from swarmkeeper.models import Config
from swarmkeeper.session.models import Job, SeederContext
from swarmkeeper.session.shutdown import ShutdownCoordinator
from swarmkeeper.utils.exceptions import AnnounceError, EngineRejectedError

MAGNET_HASH = "0123456789abcdef0123456789abcdef01234567"
MAGNET_URI = (
    f"magnet:?xt=urn:btih:{MAGNET_HASH}&dn=magnet-content"
    "&tr=http://tracker.invalid/announce"
)

_ENV_VARS = (
    "DOWNLOAD_DIR",
    "TORRENT_URLS",
    "SWARMKEEPER_DOWNLOAD_DIR",
    "SWARMKEEPER_SOURCES",
    "SWARMKEEPER_STATS_INTERVAL",
    "SWARMKEEPER_PEER_FLOOR",
    "SWARMKEEPER_METADATA_TIMEOUT",
    "SWARMKEEPER_LOG_LEVEL",
    "SWARMKEEPER_LOG_FILE",
    "SWARMKEEPER_ENABLE_DHT",
)


def pytest_configure(config):
    """Register project markers to avoid warnings when ini isn't loaded."""
    markers = [
        ("unit", "marks tests as unit tests"),
        ("integration", "marks tests as integration tests"),
        ("session", "marks tests as session management tests"),
        ("cli", "marks tests as CLI tests"),
    ]
    for name, desc in markers:
        config.addinivalue_line("markers", f"{name}: {desc}")


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch, tmp_path):
    """Keep host environment variables and config files out of tests."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    yield
    reset_config()


@pytest.fixture(autouse=True)
def cleanup_logging():
    """Clean up logging handlers after each test to prevent closed file errors."""
    yield
    for logger_name in list(logging.Logger.manager.loggerDict.keys()):
        logger = logging.getLogger(logger_name)
        for handler in logger.handlers[:]:
            handler.close()
            logger.removeHandler(handler)

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)


@dataclass
class FakeHandle:
    """In-memory swarm tracked by `FakeEngine`."""

    source: str
    name: str
    info_hash: bytes | None
    trackers: list[str] = field(default_factory=list)
    total_bytes: int = 0
    uploaded: int = 0
    peers: int = 0
    progress: float = 0.0
    error: str | None = None
    metadata_ready: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def has_metadata(self) -> bool:
        return self.metadata_ready.is_set()


class FakeEngine:
    """SwarmEngine stand-in that records every call."""

    def __init__(self) -> None:
        self.handles: list[FakeHandle] = []
        self.removed: list[FakeHandle] = []
        self.tracker_announces: list[tuple[str, str]] = []
        self.dht_announces: list[tuple[bytes, int]] = []
        self.closed = False
        self.port = 6881
        # Behaviour switches
        self.magnet_metadata = True
        self.complete_on_download = True
        self.reject: set[str] = set()
        self.failing_trackers: set[str] = set()
        self.fail_dht = False
        self.fail_stats = False

    def handle_for(self, name: str) -> FakeHandle:
        for handle in self.handles:
            if handle.name == name:
                return handle
        raise KeyError(name)

    def _track(self, handle: FakeHandle) -> FakeHandle:
        if handle.source in self.reject or handle.name in self.reject:
            msg = f"engine rejected {handle.name}"
            raise EngineRejectedError(msg)
        self.handles.append(handle)
        return handle

    async def add_descriptor(self, descriptor, save_path: Path) -> FakeHandle:
        handle = FakeHandle(
            source=str(descriptor.path),
            name=descriptor.name,
            info_hash=descriptor.info_hash,
            trackers=list(descriptor.trackers),
            total_bytes=descriptor.total_length,
        )
        handle.metadata_ready.set()
        return self._track(handle)

    async def add_magnet(self, uri: str, save_path: Path) -> FakeHandle:
        info = parse_magnet(uri)
        handle = FakeHandle(
            source=uri,
            name=info.display_name or info.info_hash_hex,
            info_hash=info.info_hash,
            trackers=list(info.trackers),
            total_bytes=1024 * 1024,
        )
        if self.magnet_metadata:
            handle.metadata_ready.set()
        return self._track(handle)

    async def wait_for_metadata(self, handle: FakeHandle) -> None:
        await handle.metadata_ready.wait()

    def download_all(self, handle: FakeHandle) -> None:
        if self.complete_on_download:
            handle.progress = 1.0

    def stats(self, handle: FakeHandle) -> SwarmStats:
        if self.fail_stats:
            msg = "stats unavailable"
            raise RuntimeError(msg)
        return SwarmStats(
            name=handle.name,
            info_hash=handle.info_hash,
            uploaded_bytes=handle.uploaded,
            num_peers=handle.peers,
            progress=handle.progress,
            has_metadata=handle.has_metadata,
            error=handle.error,
            total_bytes=handle.total_bytes,
        )

    def trackers(self, handle: FakeHandle) -> list[str]:
        return list(handle.trackers)

    async def announce_tracker(self, handle: FakeHandle, url: str) -> None:
        if url in self.failing_trackers:
            msg = f"tracker unreachable: {url}"
            raise AnnounceError(msg)
        self.tracker_announces.append((handle.name, url))

    async def dht_announce(self, info_hash: bytes, port: int) -> None:
        if self.fail_dht:
            msg = "DHT unavailable"
            raise AnnounceError(msg)
        self.dht_announces.append((info_hash, port))

    def listen_port(self) -> int:
        return self.port

    async def remove(self, handle: FakeHandle) -> None:
        self.removed.append(handle)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def download_dir(tmp_path) -> Path:
    path = tmp_path / "downloads"
    path.mkdir()
    return path


@pytest.fixture
def make_config(download_dir):
    """Build a fast-ticking Config rooted in the test download directory."""

    def _make(sources: list[str] | None = None, **sections: Any) -> Config:
        data: dict[str, Any] = {
            "seeding": {"download_dir": str(download_dir), "sources": sources or []},
            "stats": {"interval": 0.05},
            "health": {"interval": 0.05},
            "metadata": {"metadata_timeout": 1.0, "completion_poll_interval": 0.01},
            "shutdown_grace": 2.0,
        }
        for key, value in sections.items():
            if isinstance(value, dict):
                data.setdefault(key, {}).update(value)
            else:
                data[key] = value
        return Config(**data)

    return _make


@pytest.fixture
def make_ctx(make_config, fake_engine, download_dir):
    """Build a SeederContext around the fake engine."""

    def _make(sources: list[str] | None = None, **sections: Any) -> SeederContext:
        config = make_config(sources, **sections)
        return SeederContext(
            config=config,
            engine=fake_engine,
            shutdown=ShutdownCoordinator(),
            download_dir=download_dir,
            jobs=[Job(source) for source in config.seeding.sources],
        )

    return _make


def build_torrent(
    tmp_path: Path,
    name: str = "content.bin",
    size: int = 64 * 1024,
    trackers: list[str] | None = None,
) -> torf.Torrent:
    """Generate a small single-file torrent with torf."""
    src_dir = tmp_path / "src"
    src_dir.mkdir(exist_ok=True)
    content = src_dir / name
    content.write_bytes(bytes(i % 251 for i in range(size)))
    torrent = torf.Torrent(
        path=content,
        trackers=trackers if trackers is not None else ["http://tracker.invalid/announce"],
        piece_size=32768,
        private=False,
    )
    torrent.generate()
    return torrent


@pytest.fixture
def torrent_bytes(tmp_path) -> bytes:
    """Bencoded metainfo for a small generated torrent named `content.bin`."""
    return build_torrent(tmp_path).dump()


class DescriptorServer:
    """Local HTTP server handing out descriptor files and counting requests."""

    def __init__(self) -> None:
        self.files: dict[str, bytes] = {}
        self.hits: dict[str, int] = {}
        self.delay = 0.0
        self.server: TestServer | None = None

    async def _handle(self, request: web.Request) -> web.Response:
        name = request.match_info["name"]
        self.hits[name] = self.hits.get(name, 0) + 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if name not in self.files:
            raise web.HTTPNotFound
        return web.Response(body=self.files[name])

    async def start(self) -> None:
        app = web.Application()
        app.router.add_get("/torrents/{name}", self._handle)
        self.server = TestServer(app)
        await self.server.start_server()

    async def close(self) -> None:
        if self.server is not None:
            await self.server.close()

    def url(self, name: str) -> str:
        assert self.server is not None
        return str(self.server.make_url(f"/torrents/{name}"))


@pytest.fixture
async def descriptor_server():
    server = DescriptorServer()
    await server.start()
    yield server
    await server.close()


@pytest.fixture
def magnet_uri() -> str:
    return MAGNET_URI


@pytest.fixture
def make_torrent(tmp_path):
    """Return a factory for generated torf torrents."""

    def _make(name: str = "content.bin", **kwargs: Any) -> torf.Torrent:
        return build_torrent(tmp_path, name=name, **kwargs)

    return _make
