"""Error taxonomy shared by the tubedesk components."""
from __future__ import annotations

from typing import Optional


class TubedeskError(Exception):
    """Base class for errors raised by tubedesk components."""

    default_code = "error"

    def __init__(self, message: str, *, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code


class AuthenticationRejected(TubedeskError):
    """Bad or missing Telegram signature, or an invalid session."""

    default_code = "authentication_rejected"


class ValidationFailed(TubedeskError):
    """Input had the wrong shape and was rejected before any side effect."""

    default_code = "validation_failed"


class UpstreamError(TubedeskError):
    """The YouTube Data API returned an error or could not be reached."""

    default_code = "upstream_error"

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class StorageUnavailable(TubedeskError):
    """The persistence layer could not be reached."""

    default_code = "storage_unavailable"


class CapabilityUnsupported(TubedeskError):
    """A YouTube write operation needing OAuth2 authorization was requested."""

    default_code = "capability_unsupported"


__all__ = [
    "TubedeskError",
    "AuthenticationRejected",
    "ValidationFailed",
    "UpstreamError",
    "StorageUnavailable",
    "CapabilityUnsupported",
]
