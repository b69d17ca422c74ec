from typing import Optional


class PresenceError(Exception):
    """Base class for failures raised while reconciling presence."""


class TransportError(PresenceError):
    """Network or connection failure talking to a remote service. Retrying may succeed."""


class UnexpectedStatus(PresenceError):
    """Remote service answered with a non-success HTTP status."""

    def __init__(self, operation: str, status_code: int, message: Optional[str] = None) -> None:
        super().__init__(message or f"{operation} returned status {status_code}")
        self.operation = operation
        self.status_code = status_code


class DecodeError(PresenceError):
    """Response body could not be decoded into the expected shape."""


class UploadsDisabled(PresenceError):
    """Cover art cannot be resolved because no image host is configured."""


class CoverFetchFailed(PresenceError):
    """Raw cover bytes could not be fetched from the music server."""


class ImageHostRejected(PresenceError):
    """Image host refused the upload."""

    def __init__(self, host: str, status_code: Optional[int] = None, message: Optional[str] = None) -> None:
        if message is None:
            message = f"{host} rejected upload" + (f" with status {status_code}" if status_code is not None else "")
        super().__init__(message)
        self.host = host
        self.status_code = status_code


class PresenceSinkError(PresenceError):
    """Presence display refused or failed to apply an update."""
