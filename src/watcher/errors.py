from __future__ import annotations


class WatcherError(Exception):
    """Base class for everything this package raises on purpose."""


class TransportError(WatcherError):
    """Data source or notifier could not be reached (network, HTTP status, timeout)."""

    def __init__(self, message: str, *, status: int | None = None):
        super().__init__(message)
        self.status = status


class RowValidationError(WatcherError, ValueError):
    """A snapshot row is missing required fields or carries non-finite numbers."""


class ConfigError(WatcherError):
    """Startup configuration is missing or malformed. Fatal."""
