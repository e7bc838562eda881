"""
MoodSync Error Taxonomy

Typed failures raised by the API clients and the token manager. Services
absorb everything except AuthExpired, which requires the user to sign in
again.
"""

from typing import Optional


class MoodSyncError(Exception):
    """Base class for all MoodSync failures."""

    def __init__(self, message: str, service: Optional[str] = None):
        super().__init__(message)
        self.service = service


class AuthExpired(MoodSyncError):
    """No usable token can be produced; the session must re-authenticate."""


class TokenRejected(MoodSyncError):
    """A resource endpoint answered 401 for the bearer token that was sent."""


class RateLimited(MoodSyncError):
    """Upstream answered 429."""

    def __init__(
        self,
        message: str,
        service: Optional[str] = None,
        retry_after: Optional[float] = None
    ):
        super().__init__(message, service)
        self.retry_after = retry_after


class NetworkFailure(MoodSyncError):
    """Timeout, connection error or unexpected HTTP status."""

    def __init__(
        self,
        message: str,
        service: Optional[str] = None,
        status: Optional[int] = None
    ):
        super().__init__(message, service)
        self.status = status


class MalformedResponse(MoodSyncError):
    """Response body did not match the expected schema."""


class NoDataAvailable(MoodSyncError):
    """Mood history is empty."""


# Failures that advance a fallback chain instead of reaching the caller
SOFT_FAILURES = (TokenRejected, RateLimited, NetworkFailure, MalformedResponse)
