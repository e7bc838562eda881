"""
API Client Factory

Creates configured API clients from SystemConfig. Rate limiters are shared
across clients of the same service created by one factory, so every session
built from the same factory draws on one quota.
"""

from typing import Dict, Optional

import structlog

from ..models.config_models import SystemConfig
from .rate_limiter import UnifiedRateLimiter
from .spotify_auth_client import SpotifyAuthClient
from .spotify_client import SpotifyClient

logger = structlog.get_logger(__name__)


class APIClientFactory:
    """
    Factory for creating configured API clients.

    Provides a centralized way to create all API clients with proper
    rate limiting and configuration, for injection into the services.
    """

    def __init__(self, system_config: SystemConfig):
        """
        Initialize client factory.

        Args:
            system_config: System configuration
        """
        self.system_config = system_config
        self.logger = logger.bind(service="APIClientFactory")
        self._rate_limiters: Dict[str, UnifiedRateLimiter] = {}

    def _spotify_rate_limiter(self) -> UnifiedRateLimiter:
        if "spotify" not in self._rate_limiters:
            self._rate_limiters["spotify"] = UnifiedRateLimiter.for_spotify(
                self.system_config.spotify_rate_limit
            )
        return self._rate_limiters["spotify"]

    def gemini_rate_limiter(self) -> UnifiedRateLimiter:
        if "gemini" not in self._rate_limiters:
            self._rate_limiters["gemini"] = UnifiedRateLimiter.for_gemini(
                self.system_config.gemini_rate_limit
            )
        return self._rate_limiters["gemini"]

    def create_spotify_auth_client(self) -> SpotifyAuthClient:
        """
        Create the OAuth token endpoint client.

        Raises:
            ValueError: Spotify credentials are not configured
        """
        config = self.system_config
        if not config.spotify_configured:
            raise ValueError("Spotify client ID and secret are required")

        return SpotifyAuthClient(
            client_id=config.spotify_client_id,
            client_secret=config.spotify_client_secret,
            redirect_uri=config.spotify_redirect_uri,
            accounts_url=config.spotify_accounts_url,
            rate_limiter=self._spotify_rate_limiter(),
            timeout=config.tier_timeout
        )

    def create_spotify_client(self) -> SpotifyClient:
        """Create the Web API client used by the recommendation tiers."""
        client = SpotifyClient(
            base_url=self.system_config.spotify_api_url,
            rate_limiter=self._spotify_rate_limiter(),
            timeout=self.system_config.tier_timeout
        )
        self.logger.debug("Spotify client created", timeout=self.system_config.tier_timeout)
        return client

    def create_gemini_client(self, api_key: Optional[str] = None):
        """
        Create a Gemini GenerativeModel, or None when no key is configured.

        Without a client the insight generator serves templated insights.
        """
        api_key = api_key or self.system_config.gemini_api_key
        if not api_key:
            self.logger.warning("No Gemini API key configured; insights will use templates")
            return None

        import google.generativeai as genai

        genai.configure(api_key=api_key)
        model = genai.GenerativeModel(self.system_config.gemini_model)
        self.logger.info("Gemini client created", model=self.system_config.gemini_model)
        return model
