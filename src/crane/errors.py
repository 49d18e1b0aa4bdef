"""Error taxonomy for everything that can go wrong inside an attempt."""

from __future__ import annotations


class CraneError(RuntimeError):
    """Base class for all agent errors."""


class TransportError(CraneError):
    """Network, TLS, or unexpected HTTP failure talking to the platform."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthError(CraneError):
    """Credential rejected by the platform, or malformed before any request."""


class ParseError(CraneError):
    """Response body did not match the expected schema."""


class CheckoutError(CraneError):
    """Clone, fetch, or reset of the local working copy failed."""


class StorageError(CraneError):
    """Uploading build output to the log bucket failed."""


class BuildExecError(CraneError):
    """The build command could not be spawned at all.

    A build that runs and exits non-zero is not an error; it is a ``failure``
    outcome.
    """
