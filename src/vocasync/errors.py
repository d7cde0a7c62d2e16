"""Error kinds raised by the sync layer.

Every failure that crosses a service boundary is one of these. httpx and
SQLAlchemy exceptions are translated at the client and store edges and never
reach callers directly.
"""
from typing import Optional


class VocaSyncError(Exception):
    """Base class for all sync layer errors."""


class ValidationError(VocaSyncError, ValueError):
    """Malformed input. Raised before anything is sent over the network."""


class ApiError(VocaSyncError):
    """Base class for failures talking to the remote API."""


class RequestTimeoutError(ApiError, TimeoutError):
    """The client-side deadline expired before a response arrived."""


class UnreachableError(ApiError, ConnectionError):
    """The request could not be delivered or no response came back."""


class ServerError(ApiError):
    """The server answered with a non-200 status."""

    def __init__(self, status: int, message: Optional[str] = None):
        self.status = status
        self.message = message
        text = f"Server error {status}"
        if message:
            text = f"{text}: {message}"
        super().__init__(text)


class ResponseShapeError(ApiError):
    """The server answered 200 but the payload failed structural validation."""


class StorageError(VocaSyncError):
    """Local persistence is unavailable or corrupt."""


class FallbackUnavailableError(VocaSyncError):
    """There is no local data to build a quiz from."""


# Failures a queued record stays pending on and may be retried for
RETRYABLE_ERRORS = (RequestTimeoutError, UnreachableError, ServerError)
