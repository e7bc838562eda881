"""
API Module

External service clients for MoodSync: Spotify accounts (OAuth) and Web
API clients, the per-session token manager, and shared rate limiting.
"""

from .errors import (
    MoodSyncError,
    AuthExpired,
    TokenRejected,
    RateLimited,
    NetworkFailure,
    MalformedResponse,
    NoDataAvailable,
)
from .base_client import BaseAPIClient
from .rate_limiter import UnifiedRateLimiter
from .spotify_auth_client import SpotifyAuthClient
from .spotify_client import SpotifyClient, SpotifyTrack, AudioFeatures
from .token_manager import TokenLifecycleManager, TokenSet, TokenState
from .client_factory import APIClientFactory

__all__ = [
    # Errors
    "MoodSyncError",
    "AuthExpired",
    "TokenRejected",
    "RateLimited",
    "NetworkFailure",
    "MalformedResponse",
    "NoDataAvailable",

    # Base infrastructure
    "BaseAPIClient",
    "UnifiedRateLimiter",

    # Spotify
    "SpotifyAuthClient",
    "SpotifyClient",
    "SpotifyTrack",
    "AudioFeatures",
    "TokenLifecycleManager",
    "TokenSet",
    "TokenState",

    # Client factory
    "APIClientFactory",
]
