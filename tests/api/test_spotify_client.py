"""
Tests for SpotifyClient

Exercises the HTTP status mapping inherited from BaseAPIClient and the
parsing of recommendation, search and audio-feature payloads.
"""

import asyncio
import json

import aiohttp
import pytest
from unittest.mock import AsyncMock, MagicMock, Mock

from moodsync.api.errors import MalformedResponse, NetworkFailure, RateLimited, TokenRejected
from moodsync.api.spotify_client import AudioFeatures, SpotifyClient, SpotifyTrack
from moodsync.models.mood_models import FeatureVector


def track_item(track_id="t1", name="Song", artist="Artist"):
    return {
        "id": track_id,
        "name": name,
        "artists": [{"name": artist}],
        "album": {"name": "Album", "images": [{"url": "https://img/cover.jpg"}]},
        "duration_ms": 200000,
        "uri": f"spotify:track:{track_id}",
        "popularity": 50,
        "preview_url": None,
    }


def mock_response(status=200, payload=None, headers=None):
    response = Mock()
    response.status = status
    response.headers = headers or {}
    response.json = AsyncMock(return_value=payload if payload is not None else {})
    return response


class TestSpotifyClient:
    """Test suite for SpotifyClient"""

    @pytest.fixture
    def rate_limiter(self):
        limiter = Mock()
        limiter.wait_if_needed = AsyncMock()
        return limiter

    @pytest.fixture
    def client(self, rate_limiter):
        client = SpotifyClient(rate_limiter=rate_limiter)
        client.session = MagicMock()
        return client

    @pytest.fixture
    def features(self):
        return FeatureVector(
            valence=0.76,
            energy=0.72,
            tempo=128.0,
            genre_seeds=frozenset({"pop", "dance"}),
            danceability=0.63
        )

    def respond_with(self, client, response):
        context = client.session.request.return_value
        context.__aenter__.return_value = response
        context.__aexit__.return_value = False

    @pytest.mark.asyncio
    async def test_get_recommendations_success(self, client, features, rate_limiter):
        self.respond_with(client, mock_response(payload={"tracks": [track_item("a"), track_item("b")]}))

        tracks = await client.get_recommendations(features, "user-token", limit=10)

        assert [track.id for track in tracks] == ["a", "b"]
        assert isinstance(tracks[0], SpotifyTrack)
        assert tracks[0].album_art_url == "https://img/cover.jpg"
        rate_limiter.wait_if_needed.assert_awaited_once()

        kwargs = client.session.request.call_args.kwargs
        assert kwargs["url"] == "https://api.spotify.com/v1/recommendations"
        assert kwargs["headers"]["Authorization"] == "Bearer user-token"
        assert kwargs["params"]["target_valence"] == "0.76"
        assert kwargs["params"]["target_tempo"] == "128"
        assert kwargs["params"]["seed_genres"] == "dance,pop"
        assert kwargs["params"]["limit"] == 10

    @pytest.mark.asyncio
    async def test_malformed_track_items_are_skipped(self, client, features):
        items = [track_item("good"), {"id": "no-name"}, "garbage", {"id": "x", "name": "y", "artists": []}]
        self.respond_with(client, mock_response(payload={"tracks": items}))

        tracks = await client.get_recommendations(features, "user-token")

        assert [track.id for track in tracks] == ["good"]

    @pytest.mark.asyncio
    async def test_items_with_invalid_fields_are_skipped(self, client, features):
        null_artist = track_item("null-artist")
        null_artist["artists"] = [{"name": None}]
        negative_duration = track_item("negative")
        negative_duration["duration_ms"] = -1
        text_duration = track_item("text")
        text_duration["duration_ms"] = "3:20"
        no_duration = track_item("no-duration")
        del no_duration["duration_ms"]
        items = [track_item("good"), null_artist, negative_duration, text_duration, None, no_duration]
        self.respond_with(client, mock_response(payload={"tracks": items}))

        tracks = await client.get_recommendations(features, "user-token")

        assert [track.id for track in tracks] == ["good", "no-duration"]
        assert tracks[1].duration_ms is None

    @pytest.mark.asyncio
    async def test_missing_track_list_is_malformed(self, client, features):
        self.respond_with(client, mock_response(payload={"seeds": []}))

        with pytest.raises(MalformedResponse):
            await client.get_recommendations(features, "user-token")

    @pytest.mark.asyncio
    async def test_401_raises_token_rejected(self, client, features):
        self.respond_with(client, mock_response(status=401))

        with pytest.raises(TokenRejected):
            await client.get_recommendations(features, "stale-token")

    @pytest.mark.asyncio
    async def test_429_raises_rate_limited_with_retry_after(self, client, features):
        self.respond_with(client, mock_response(status=429, headers={"Retry-After": "3"}))

        with pytest.raises(RateLimited) as exc_info:
            await client.get_recommendations(features, "user-token")

        assert exc_info.value.retry_after == 3.0
        assert client.session.request.call_count == 1

    @pytest.mark.asyncio
    async def test_server_error_raises_network_failure(self, client, features):
        self.respond_with(client, mock_response(status=503))

        with pytest.raises(NetworkFailure) as exc_info:
            await client.get_recommendations(features, "user-token")

        assert exc_info.value.status == 503

    @pytest.mark.asyncio
    async def test_client_error_status_raises_network_failure(self, client, features):
        self.respond_with(client, mock_response(status=404))

        with pytest.raises(NetworkFailure) as exc_info:
            await client.get_recommendations(features, "user-token")

        assert exc_info.value.status == 404

    @pytest.mark.asyncio
    async def test_timeout_raises_network_failure(self, client, features):
        client.session.request.side_effect = asyncio.TimeoutError()

        with pytest.raises(NetworkFailure):
            await client.get_recommendations(features, "user-token")

    @pytest.mark.asyncio
    async def test_connection_error_raises_network_failure(self, client, features):
        client.session.request.side_effect = aiohttp.ClientConnectionError("reset")

        with pytest.raises(NetworkFailure):
            await client.get_recommendations(features, "user-token")

    @pytest.mark.asyncio
    async def test_invalid_json_raises_malformed_response(self, client, features):
        response = mock_response()
        response.json = AsyncMock(side_effect=json.JSONDecodeError("Expecting value", "<html>", 0))
        self.respond_with(client, response)

        with pytest.raises(MalformedResponse):
            await client.get_recommendations(features, "user-token")

    @pytest.mark.asyncio
    async def test_error_body_raises_malformed_response(self, client, features):
        self.respond_with(client, mock_response(payload={"error": {"status": 400, "message": "invalid seed"}}))

        with pytest.raises(MalformedResponse):
            await client.get_recommendations(features, "user-token")

    @pytest.mark.asyncio
    async def test_request_without_session_raises(self, features):
        client = SpotifyClient(rate_limiter=Mock(wait_if_needed=AsyncMock()))

        with pytest.raises(RuntimeError):
            await client.get_recommendations(features, "user-token")

    @pytest.mark.asyncio
    async def test_search_tracks(self, client):
        self.respond_with(client, mock_response(payload={"tracks": {"items": [track_item("s1")]}}))

        tracks = await client.search_tracks("upbeat pop", "user-token", limit=5)

        assert [track.id for track in tracks] == ["s1"]
        params = client.session.request.call_args.kwargs["params"]
        assert params == {"q": "upbeat pop", "type": "track", "limit": 5, "offset": 0}

    @pytest.mark.asyncio
    async def test_search_without_items_is_malformed(self, client):
        self.respond_with(client, mock_response(payload={"tracks": None}))

        with pytest.raises(MalformedResponse):
            await client.search_tracks("upbeat pop", "user-token")

    @pytest.mark.asyncio
    async def test_get_audio_features(self, client):
        self.respond_with(client, mock_response(payload={
            "id": "t1",
            "valence": 0.8,
            "energy": 0.75,
            "tempo": 121.5,
            "danceability": 0.6,
        }))

        features = await client.get_audio_features("t1", "user-token")

        assert features == AudioFeatures(track_id="t1", valence=0.8, energy=0.75, tempo=121.5, danceability=0.6)

    @pytest.mark.asyncio
    async def test_get_audio_features_missing(self, client):
        self.respond_with(client, mock_response(payload={"id": None}))

        assert await client.get_audio_features("t1", "user-token") is None

    @pytest.mark.asyncio
    async def test_get_audio_features_incomplete(self, client):
        self.respond_with(client, mock_response(payload={"id": "t1", "valence": 0.5}))

        with pytest.raises(MalformedResponse):
            await client.get_audio_features("t1", "user-token")

    def test_service_info(self, client):
        info = client.get_service_info()

        assert info["service_name"] == "Spotify"
        assert info["rate_limited"] is True
