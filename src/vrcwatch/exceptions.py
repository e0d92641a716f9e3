"""Custom exception hierarchy for vrcwatch."""

from __future__ import annotations


class VrcWatchError(Exception):
    """Base exception for all vrcwatch errors."""


class VrcConfigError(VrcWatchError):
    """Invalid or missing configuration.

    ``errors`` carries every validation problem found, not only the first.
    """

    def __init__(self, message: str, *, errors: list[str] | None = None) -> None:
        self.errors = list(errors or [])
        super().__init__(message)


class VrcTransportError(VrcWatchError):
    """HTTP- or socket-level failure (network, non-2xx, invalid JSON).

    Treated as transient by the connection supervisor.
    """

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


class VrcAuthenticationError(VrcTransportError):
    """Credentials or session rejected upstream (HTTP 401, failed 2FA)."""


class VrcConnectTimeoutError(VrcWatchError):
    """Connecting to the event source took longer than the configured deadline."""


class MalformedEventError(VrcWatchError):
    """An inbound pipeline payload did not match any known event shape."""

    def __init__(self, message: str, *, kind: str = "") -> None:
        self.kind = kind
        super().__init__(message)


class PersistenceError(VrcWatchError):
    """Reading or writing the durable snapshot failed."""
