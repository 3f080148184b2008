"""Pydantic models for swarmkeeper.

Provides validated configuration models for the seeding daemon.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


def parse_sources(value: str | list[str] | None) -> list[str]:
    """Split a comma-separated source list, dropping blanks and duplicates."""
    if value is None:
        return []
    raw = value.split(",") if isinstance(value, str) else value
    sources: list[str] = []
    for item in raw:
        source = str(item).strip()
        if source and source not in sources:
            sources.append(source)
    return sources


class SeedingConfig(BaseModel):
    """What to seed and where it lives."""

    download_dir: str = Field(
        default="./downloads",
        description="Directory holding the descriptor cache, content and stats file",
    )
    sources: list[str] = Field(
        default_factory=list,
        description="Torrent URLs and/or magnet URIs to seed",
    )

    @field_validator("sources", mode="before")
    @classmethod
    def _split_sources(cls, v: str | list[str] | None) -> list[str]:
        return parse_sources(v)


class StatsConfig(BaseModel):
    """Upload statistics ledger configuration."""

    interval: float = Field(
        default=30.0,
        gt=0.0,
        le=86400.0,
        description="Seconds between stats flushes",
    )
    stats_file: str = Field(
        default="seed_stats.txt",
        description="Stats record file name inside the download directory",
    )


class HealthConfig(BaseModel):
    """Swarm health monitor configuration."""

    interval: float = Field(
        default=900.0,
        gt=0.0,
        le=86400.0,
        description="Seconds between peer count checks",
    )
    peer_floor: int = Field(
        default=10,
        ge=0,
        description="Re-announce when a swarm has fewer peers than this",
    )


class MetadataConfig(BaseModel):
    """Metadata acquisition configuration."""

    metadata_timeout: float | None = Field(
        default=30.0,
        gt=0.0,
        description="Seconds to wait for swarm metadata (None waits forever)",
    )
    completion_poll_interval: float = Field(
        default=5.0,
        gt=0.0,
        le=3600.0,
        description="Seconds between content completion checks",
    )
    http_timeout: float = Field(
        default=60.0,
        gt=0.0,
        le=3600.0,
        description="Total timeout for a descriptor download",
    )
    user_agent: str = Field(
        default="swarmkeeper/0.1.0",
        description="User-Agent header for descriptor downloads",
    )


class EngineConfig(BaseModel):
    """Swarm engine settings."""

    listen_port: int = Field(
        default=6881,
        ge=1,
        le=65535,
        description="BitTorrent listen port",
    )
    established_conns_per_torrent: int = Field(
        default=100,
        ge=1,
        description="Maximum established connections per torrent",
    )
    half_open_conns_per_torrent: int = Field(
        default=50,
        ge=1,
        description="Maximum half-open connections",
    )
    enable_dht: bool = Field(default=True, description="Enable DHT")
    enable_pex: bool = Field(default=True, description="Enable peer exchange")


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    log_level: LogLevel = Field(default=LogLevel.INFO, description="Log level")
    log_file: str | None = Field(None, description="Log file path")
    structured_logging: bool = Field(
        default=False,
        description="Use structured JSON logging for the file handler",
    )
    log_correlation_id: bool = Field(
        default=True,
        description="Include correlation IDs",
    )


class Config(BaseModel):
    """Main configuration model."""

    seeding: SeedingConfig = Field(
        default_factory=SeedingConfig,
        description="Seeding configuration",
    )
    stats: StatsConfig = Field(
        default_factory=StatsConfig,
        description="Stats ledger configuration",
    )
    health: HealthConfig = Field(
        default_factory=HealthConfig,
        description="Health monitor configuration",
    )
    metadata: MetadataConfig = Field(
        default_factory=MetadataConfig,
        description="Metadata acquisition configuration",
    )
    engine: EngineConfig = Field(
        default_factory=EngineConfig,
        description="Swarm engine configuration",
    )
    observability: ObservabilityConfig = Field(
        default_factory=ObservabilityConfig,
        description="Observability configuration",
    )
    shutdown_grace: float = Field(
        default=10.0,
        ge=0.0,
        le=600.0,
        description="Seconds to wait for tasks to acknowledge shutdown",
    )

    @model_validator(mode="after")
    def _validate_stats_file(self) -> Config:
        name = self.stats.stats_file
        if not name or "/" in name or "\\" in name:
            msg = "stats.stats_file must be a plain file name"
            raise ValueError(msg)
        return self
