"""
MoodSync Session Service

Wires the recommendation subsystem for one authenticated session: one
TokenLifecycleManager, the Spotify clients and the services built on them.
Nothing here is module-global; the session's lifetime is the ``async with``
block (or open()/close()).
"""

import asyncio
import random
import time
import uuid
from typing import Callable, Iterable, List, Optional

import structlog

from ..api.client_factory import APIClientFactory
from ..api.errors import SOFT_FAILURES
from ..api.spotify_auth_client import SpotifyAuthClient
from ..api.spotify_client import SpotifyClient
from ..api.token_manager import TokenLifecycleManager, TokenSet
from ..models.config_models import SystemConfig
from ..models.insight_models import Insight
from ..models.mood_models import MoodEntry, MoodLabel, MoodPattern
from ..models.recommendation_models import RecommendationResult
from ..utils.logging_config import clear_session_context, set_session_context, setup_logging
from .components.mood_feature_mapper import classify_audio_features
from .components.mood_pattern_analyzer import MoodPatternAnalyzer
from .insight_generator import InsightGenerator
from .recommendation_orchestrator import RecommendationOrchestrator

logger = structlog.get_logger(__name__)


def initialize_services(
    config: Optional[SystemConfig] = None,
    enable_console: bool = True
) -> APIClientFactory:
    """
    Process startup: load configuration, set up logging and build the
    client factory that every session should share.

    Args:
        config: System configuration (read from the environment if omitted)
        enable_console: Whether to log to the console as well as files

    Returns:
        Factory to pass to MoodSyncSession.create
    """
    config = config or SystemConfig.from_env()
    setup_logging(log_dir=config.log_dir, log_level=config.log_level, enable_console=enable_console)

    logger.info(
        "MoodSync services initialized",
        spotify_configured=config.spotify_configured,
        gemini_configured=bool(config.gemini_api_key),
        log_level=config.log_level
    )
    return APIClientFactory(config)


class MoodSyncSession:
    """
    Per-session entry point for UI/controller code.

    Public operations: get_valid_access_token, get_recommendations, analyze,
    generate_insight, plus exchange_code/set_tokens for sign-in and
    classify_track for tagging a track with a mood.
    """

    def __init__(
        self,
        config: SystemConfig,
        auth_client: SpotifyAuthClient,
        spotify_client: SpotifyClient,
        llm_client=None,
        llm_rate_limiter=None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
        session_id: Optional[str] = None,
        user_id: Optional[str] = None
    ):
        self.config = config
        self.session_id = session_id or uuid.uuid4().hex
        self.user_id = user_id
        self.auth_client = auth_client
        self.spotify_client = spotify_client

        self.token_manager = TokenLifecycleManager(
            auth_client,
            safety_margin=config.token_safety_margin,
            retry_backoff=config.refresh_retry_backoff,
            clock=clock,
            session_id=self.session_id
        )
        self.orchestrator = RecommendationOrchestrator(
            spotify_client,
            self.token_manager,
            rng=rng,
            tier_timeout=config.tier_timeout,
            recommendation_limit=config.recommendation_limit
        )
        self.pattern_analyzer = MoodPatternAnalyzer(
            trend_threshold=config.trend_threshold,
            trend_window_days=config.trend_window_days
        )
        self.insight_generator = InsightGenerator(
            llm_client=llm_client,
            rate_limiter=llm_rate_limiter,
            timeout=config.llm_timeout
        )

        self.logger = logger.bind(service="MoodSyncSession", session_id=self.session_id)

    @classmethod
    def create(
        cls,
        config: SystemConfig,
        factory: Optional[APIClientFactory] = None,
        **kwargs
    ) -> "MoodSyncSession":
        """
        Build a session with clients from ``factory`` (one is made from
        ``config`` if not given). Share a factory across sessions to share
        rate limits.
        """
        factory = factory or APIClientFactory(config)
        return cls(
            config,
            auth_client=factory.create_spotify_auth_client(),
            spotify_client=factory.create_spotify_client(),
            llm_client=factory.create_gemini_client(),
            llm_rate_limiter=factory.gemini_rate_limiter(),
            **kwargs
        )

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def open(self) -> None:
        set_session_context(self.session_id, self.user_id)
        await self.auth_client.open()
        await self.spotify_client.open()
        self.logger.info("Session opened")

    async def close(self) -> None:
        self.token_manager.clear()
        await self.spotify_client.close()
        await self.auth_client.close()
        self.logger.info("Session closed")
        clear_session_context()

    # --- Authentication -------------------------------------------------

    async def exchange_code(self, code: str) -> TokenSet:
        """Exchange the OAuth redirect code for this session's tokens."""
        return await self.token_manager.exchange_code(code)

    def set_tokens(self, access_token: str, refresh_token: str, expires_in: float) -> TokenSet:
        """Install tokens obtained elsewhere (e.g. restored from storage)."""
        return self.token_manager.set_tokens(access_token, refresh_token, expires_in)

    async def get_valid_access_token(self) -> str:
        return await self.token_manager.get_valid_access_token()

    # --- Recommendations ------------------------------------------------

    async def get_recommendations(
        self,
        mood,
        intensity: int,
        min_results: Optional[int] = None
    ) -> List[RecommendationResult]:
        return await self.orchestrator.get_recommendations(
            mood,
            intensity,
            min_results=min_results or self.config.min_results
        )

    async def classify_track(self, track_id: str) -> Optional[MoodLabel]:
        """
        Mood of a Spotify track from its audio features.

        Returns None when Spotify has no features for the track or the call
        fails; AuthExpired still propagates.
        """
        token = await self.token_manager.get_valid_access_token()
        try:
            features = await asyncio.wait_for(
                self.spotify_client.get_audio_features(track_id, token),
                timeout=self.config.tier_timeout
            )
        except (asyncio.TimeoutError, *SOFT_FAILURES) as e:
            self.logger.warning("Audio features unavailable", track_id=track_id, error=str(e))
            return None

        if features is None:
            return None
        return classify_audio_features(features.valence, features.energy)

    # --- Patterns and insights -----------------------------------------

    def analyze(self, entries: Iterable[MoodEntry], window_days: Optional[int] = None, now=None) -> MoodPattern:
        return self.pattern_analyzer.analyze(entries, window_days=window_days, now=now)

    async def generate_insight(self, pattern: MoodPattern) -> Insight:
        return await self.insight_generator.generate_insight(pattern)
