"""Core types shared across the daemon."""

from busd.core.errors import (
    BusdError,
    ConfigurationError,
    UsageError,
    UsageRequested,
    VersionRequested,
)

__all__ = [
    "BusdError",
    "ConfigurationError",
    "UsageError",
    "UsageRequested",
    "VersionRequested",
]
