"""Swarm engine interface used by the orchestration layer.

The engine owns the peer wire, piece verification, disk I/O and DHT node.
The orchestrator only calls the operations below and treats the returned
handles as opaque.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from swarmkeeper.core.descriptor import Descriptor


@dataclass(frozen=True)
class SwarmStats:
    """Snapshot of one swarm as reported by the engine."""

    name: str
    info_hash: bytes | None
    uploaded_bytes: int
    num_peers: int
    progress: float
    has_metadata: bool
    error: str | None = None
    total_bytes: int = 0

    @property
    def is_complete(self) -> bool:
        return self.has_metadata and self.progress >= 1.0


@runtime_checkable
class SwarmEngine(Protocol):
    """Protocol for the swarm engine collaborator."""

    async def add_descriptor(self, descriptor: Descriptor, save_path: Path) -> Any:
        """Add a swarm from a loaded descriptor and return its handle."""
        ...

    async def add_magnet(self, uri: str, save_path: Path) -> Any:
        """Add a swarm from a magnet URI and return its handle."""
        ...

    async def wait_for_metadata(self, handle: Any) -> None:
        """Return once the swarm's metadata is available."""
        ...

    def download_all(self, handle: Any) -> None:
        """Request every piece of the swarm's content."""
        ...

    def stats(self, handle: Any) -> SwarmStats:
        """Return current statistics for the swarm."""
        ...

    def trackers(self, handle: Any) -> list[str]:
        """Return tracker URLs known for the swarm."""
        ...

    async def announce_tracker(self, handle: Any, url: str) -> None:
        """Re-announce the swarm to a single tracker."""
        ...

    async def dht_announce(self, info_hash: bytes, port: int) -> None:
        """Announce the info-hash on the DHT with the given port."""
        ...

    def listen_port(self) -> int:
        """Return the port the engine accepts peers on."""
        ...

    async def remove(self, handle: Any) -> None:
        """Stop and forget a swarm, keeping its data on disk."""
        ...

    async def close(self) -> None:
        """Release engine resources."""
        ...
