"""Error types raised at the collaborator seams and caught by the stream pollers."""

from typing import Optional


class MonitorError(Exception):
    """Base class for every error raised by the monitor."""


class ConfigError(MonitorError):
    """An environment variable is missing or cannot be parsed."""


class ReservoirAPIError(MonitorError):
    """Transient failure talking to the Reservoir API (network, timeout, bad status)."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class MalformedResponseError(MonitorError):
    """The API answered, but required fields are missing from the payload."""


class StateStoreError(MonitorError):
    """A cursor, cooldown or last-value operation against the KV store failed."""


class NotificationError(MonitorError):
    """The chat platform refused or failed to deliver a message."""
