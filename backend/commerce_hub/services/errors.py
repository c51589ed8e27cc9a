"""Exception hierarchy for platform interaction."""

from typing import Any, Optional


class PlatformAPIError(Exception):
    """An external platform returned an error or an unusable response."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        platform: Optional[str] = None,
        body: Any = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.platform = platform
        self.body = body


class PlatformAuthError(PlatformAPIError):
    """Raised on 401/403: the stored credential was rejected."""


class TokenRefreshError(PlatformAPIError):
    """Raised when an OAuth refresh / exchange flow fails."""


class CredentialConfigError(Exception):
    """A secret required to talk to the platform is not configured."""
