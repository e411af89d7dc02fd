"""Custom exception hierarchy for pyiotux."""

from __future__ import annotations


class IotuxError(Exception):
    """Base exception for all pyiotux errors."""


class IotuxConfigError(IotuxError):
    """Invalid or missing configuration."""


class IotuxStorageError(IotuxError):
    """Durable key/value store read or write failure."""

    def __init__(self, message: str, *, key: str = "") -> None:
        self.key = key
        super().__init__(message)


class IotuxTransportError(IotuxError):
    """HTTP-level failure (network, non-2xx, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class IotuxConnectivityError(IotuxTransportError):
    """No reachable network, or the request timed out before a response."""


class IotuxAuthenticationError(IotuxTransportError):
    """Credential missing, invalid or expired (HTTP 401).

    Callers should send the user back to login instead of retrying.  The
    client clears the cached credential before this propagates.
    """


class IotuxApiError(IotuxError):
    """The server answered but the payload could not be understood."""

    def __init__(self, message: str, *, endpoint: str = "") -> None:
        self.endpoint = endpoint
        super().__init__(message)
