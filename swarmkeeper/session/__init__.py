"""Seeding session: job supervision, statistics, health and shutdown."""

from __future__ import annotations

from swarmkeeper.session.health import HealthMonitor
from swarmkeeper.session.job import JobSupervisor
from swarmkeeper.session.metadata import MetadataAcquirer
from swarmkeeper.session.models import Job, JobState, PeerPressureSample, SeederContext
from swarmkeeper.session.orchestrator import SeedingOrchestrator
from swarmkeeper.session.shutdown import ShutdownCoordinator
from swarmkeeper.session.stats import StatsLedger

__all__ = [
    "HealthMonitor",
    "Job",
    "JobState",
    "JobSupervisor",
    "MetadataAcquirer",
    "PeerPressureSample",
    "SeedingOrchestrator",
    "SeederContext",
    "ShutdownCoordinator",
    "StatsLedger",
]
