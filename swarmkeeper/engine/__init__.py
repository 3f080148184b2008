"""Swarm engine interface and the libtorrent-backed implementation."""

from __future__ import annotations

from swarmkeeper.engine.types import SwarmEngine, SwarmStats
from swarmkeeper.models import EngineConfig


def create_engine(config: EngineConfig) -> SwarmEngine:
    """Build the default swarm engine."""
    from swarmkeeper.engine.libtorrent_engine import LibtorrentEngine

    return LibtorrentEngine(config)


__all__ = ["EngineConfig", "SwarmEngine", "SwarmStats", "create_engine"]
