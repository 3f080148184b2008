"""Exception hierarchy for swarmkeeper.

Only configuration errors are fatal to the process. Every other error is
scoped to a single job or a single periodic tick and is surfaced through logs.
"""

from __future__ import annotations

from typing import Any


class SwarmkeeperError(Exception):
    """Base exception for all swarmkeeper errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        """Initialize swarmkeeper error."""
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.details:
            return f"{self.message} (Details: {self.details})"
        return self.message


class ConfigurationError(SwarmkeeperError):
    """Configuration validation errors."""


class AcquisitionError(SwarmkeeperError):
    """Metadata acquisition errors (job-scoped)."""


class FetchError(AcquisitionError):
    """Descriptor download errors: network failure or non-2xx response."""


class DescriptorError(AcquisitionError):
    """Malformed or unreadable torrent descriptor."""


class CacheWriteError(AcquisitionError):
    """Descriptor cache could not be written."""


class MagnetError(AcquisitionError):
    """Magnet URI could not be parsed."""


class MetadataTimeoutError(AcquisitionError):
    """Engine did not deliver metadata within the configured bound."""


class EngineError(SwarmkeeperError):
    """Swarm engine errors."""


class EngineRejectedError(EngineError):
    """Swarm engine refused to add a torrent."""


class StatsPersistenceError(SwarmkeeperError):
    """Stats record could not be written."""


class AnnounceError(SwarmkeeperError):
    """Tracker or DHT re-announce errors."""


class ShutdownRequested(SwarmkeeperError):
    """Raised from a raced wait when the cancellation signal fired first."""

    def __init__(self, message: str = "Shutdown requested"):
        """Initialize with a default message."""
        super().__init__(message)
