"""
Tests for MoodSyncSession wiring with mocked HTTP clients.
"""

from datetime import datetime, timedelta, timezone
import logging

import pytest
import structlog
from unittest.mock import AsyncMock, Mock

from moodsync.api.errors import AuthExpired, NetworkFailure
from moodsync.api.spotify_client import AudioFeatures, SpotifyTrack
from moodsync.api.token_manager import TokenState
from moodsync.models.config_models import SystemConfig
from moodsync.models.insight_models import InsightSource
from moodsync.models.mood_models import MoodEntry, MoodLabel
from moodsync.models.recommendation_models import SourceTier
from moodsync.api.client_factory import APIClientFactory
from moodsync.services.session_service import MoodSyncSession, initialize_services


class TestMoodSyncSession:
    """Test suite for MoodSyncSession"""

    @pytest.fixture
    def config(self):
        return SystemConfig(
            spotify_client_id="id",
            spotify_client_secret="secret",
            refresh_retry_backoff=0,
            tier_timeout=1.0
        )

    @pytest.fixture
    def mock_auth_client(self):
        client = Mock()
        client.open = AsyncMock()
        client.close = AsyncMock()
        client.exchange_code = AsyncMock(return_value={
            "access_token": "access-1",
            "refresh_token": "refresh-1",
            "expires_in": 3600,
        })
        client.refresh = AsyncMock(return_value={
            "access_token": "access-2",
            "refresh_token": None,
            "expires_in": 3600,
        })
        return client

    @pytest.fixture
    def mock_spotify_client(self):
        client = Mock()
        client.open = AsyncMock()
        client.close = AsyncMock()
        client.get_recommendations = AsyncMock(return_value=[
            SpotifyTrack(id=f"t{i}", name=f"Song {i}", artist="Artist") for i in range(5)
        ])
        client.search_tracks = AsyncMock(return_value=[])
        client.get_audio_features = AsyncMock(return_value=AudioFeatures(
            track_id="t1", valence=0.8, energy=0.8, tempo=120, danceability=0.7
        ))
        return client

    @pytest.fixture
    def session(self, config, mock_auth_client, mock_spotify_client):
        return MoodSyncSession(
            config,
            auth_client=mock_auth_client,
            spotify_client=mock_spotify_client,
            session_id="session-1"
        )

    @pytest.mark.asyncio
    async def test_context_manager_opens_and_closes_clients(self, session, mock_auth_client, mock_spotify_client):
        async with session as active:
            assert active is session

        mock_auth_client.open.assert_awaited_once()
        mock_spotify_client.open.assert_awaited_once()
        mock_auth_client.close.assert_awaited_once()
        mock_spotify_client.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_clears_tokens(self, session):
        async with session:
            await session.exchange_code("code")
            assert session.token_manager.state == TokenState.VALID

        assert session.token_manager.state == TokenState.UNAUTHENTICATED

    @pytest.mark.asyncio
    async def test_recommendations_after_sign_in(self, session, mock_spotify_client):
        async with session:
            await session.exchange_code("code")
            results = await session.get_recommendations("happy", 7)

        assert len(results) == 5
        assert all(r.source_tier is SourceTier.PRIMARY for r in results)
        assert mock_spotify_client.get_recommendations.call_args.args[1] == "access-1"

    @pytest.mark.asyncio
    async def test_recommendations_without_sign_in_raise(self, session):
        async with session:
            with pytest.raises(AuthExpired):
                await session.get_recommendations("happy", 7)

    @pytest.mark.asyncio
    async def test_expiring_token_is_refreshed_transparently(self, session, mock_auth_client, mock_spotify_client):
        session.set_tokens("access-1", "refresh-1", 10)

        results = await session.get_recommendations("calm", 4)

        mock_auth_client.refresh.assert_awaited_once_with("refresh-1")
        assert mock_spotify_client.get_recommendations.call_args.args[1] == "access-2"
        assert results

    @pytest.mark.asyncio
    async def test_classify_track(self, session):
        session.set_tokens("access-1", "refresh-1", 3600)

        assert await session.classify_track("t1") is MoodLabel.HAPPY

    @pytest.mark.asyncio
    async def test_classify_track_without_features(self, session, mock_spotify_client):
        session.set_tokens("access-1", "refresh-1", 3600)
        mock_spotify_client.get_audio_features.return_value = None

        assert await session.classify_track("t1") is None

    @pytest.mark.asyncio
    async def test_classify_track_failure_returns_none(self, session, mock_spotify_client):
        session.set_tokens("access-1", "refresh-1", 3600)
        mock_spotify_client.get_audio_features.side_effect = NetworkFailure("down")

        assert await session.classify_track("t1") is None

    @pytest.mark.asyncio
    async def test_analyze_then_template_insight(self, session):
        now = datetime(2024, 5, 15, 12, tzinfo=timezone.utc)
        entries = [
            MoodEntry("1", MoodLabel.HAPPY, 8, now - timedelta(hours=1)),
            MoodEntry("2", MoodLabel.HAPPY, 7, now - timedelta(hours=2)),
            MoodEntry("3", MoodLabel.SAD, 3, now - timedelta(hours=3)),
        ]

        pattern = session.analyze(entries, now=now)
        insight = await session.generate_insight(pattern)

        assert pattern.dominant_mood is MoodLabel.HAPPY
        assert insight.source is InsightSource.TEMPLATE
        assert "happy" in insight.text

    def test_create_uses_factory(self, config):
        factory = Mock()
        factory.create_spotify_auth_client.return_value = Mock()
        factory.create_spotify_client.return_value = Mock()
        factory.create_gemini_client.return_value = None
        factory.gemini_rate_limiter.return_value = Mock()

        session = MoodSyncSession.create(config, factory=factory, session_id="s-2")

        assert session.session_id == "s-2"
        assert session.auth_client is factory.create_spotify_auth_client.return_value
        assert not session.insight_generator.is_available()

    def test_sessions_do_not_share_token_managers(self, config, mock_auth_client, mock_spotify_client):
        first = MoodSyncSession(config, mock_auth_client, mock_spotify_client)
        second = MoodSyncSession(config, mock_auth_client, mock_spotify_client)

        assert first.token_manager is not second.token_manager
        assert first.session_id != second.session_id


class TestInitializeServices:
    """Test suite for process startup wiring"""

    def teardown_method(self):
        logging.getLogger().handlers.clear()
        logging.getLogger().setLevel(logging.WARNING)
        structlog.reset_defaults()

    def test_logging_follows_config(self, tmp_path):
        config = SystemConfig(log_dir=str(tmp_path / "logs"), log_level="WARNING")

        factory = initialize_services(config, enable_console=False)

        assert isinstance(factory, APIClientFactory)
        assert factory.system_config is config
        assert logging.getLogger().level == logging.WARNING
        assert (tmp_path / "logs" / "moodsync.log").exists()

    def test_config_read_from_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("LOG_DIR", str(tmp_path / "env-logs"))
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")

        factory = initialize_services(enable_console=False)

        assert factory.system_config.log_level == "DEBUG"
        assert logging.getLogger().level == logging.DEBUG
        assert (tmp_path / "env-logs").is_dir()
