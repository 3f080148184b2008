from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from swarmkeeper.core.magnet import is_magnet

if TYPE_CHECKING:  # pragma: no cover
    from swarmkeeper.engine.types import SwarmEngine
    from swarmkeeper.models import Config
    from swarmkeeper.session.shutdown import ShutdownCoordinator


class JobState(str, Enum):
    """Typed job lifecycle state to avoid string drift."""

    PENDING = "pending"
    ACQUIRING_METADATA = "acquiring_metadata"
    VERIFYING_CONTENT = "verifying_content"
    SEEDING = "seeding"
    FAILED = "failed"
    STOPPED = "stopped"


@dataclass
class Job:
    """One configured swarm and its lifecycle state."""

    source: str
    state: JobState = JobState.PENDING
    identity: bytes | None = None
    name: str | None = None
    handle: Any | None = None
    error: str | None = None
    # Last engine-reported session upload counter
    session_uploaded_bytes: int = 0

    @property
    def is_magnet(self) -> bool:
        return is_magnet(self.source)

    @property
    def is_active(self) -> bool:
        """True while the engine holds a handle for a job that has not failed."""
        return self.handle is not None and self.state != JobState.FAILED

    @property
    def label(self) -> str:
        if self.name:
            return self.name
        if self.identity:
            return self.identity.hex()
        return self.source


@dataclass(frozen=True)
class PeerPressureSample:
    """Peer count observed for a job at one health check."""

    job: Job
    num_peers: int
    reannounced: bool


@dataclass
class SeederContext:
    """Shared state handed to every job supervisor and periodic task."""

    config: Config
    engine: SwarmEngine
    shutdown: ShutdownCoordinator
    download_dir: Path
    jobs: list[Job] = field(default_factory=list)

    def active_jobs(self) -> list[Job]:
        return [job for job in self.jobs if job.is_active]
