"""
Spotify Web API Client

User-token client for the endpoints the recommendation chain needs:
feature-targeted recommendations, keyword track search and audio features.
Every call takes the bearer token explicitly so the caller (the
orchestrator) can react to a rejected token with a refresh-and-retry.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import structlog

from ..models.mood_models import FeatureVector
from .base_client import BaseAPIClient
from .errors import MalformedResponse
from .rate_limiter import UnifiedRateLimiter

logger = structlog.get_logger(__name__)


@dataclass
class SpotifyTrack:
    """Spotify track data."""
    id: str
    name: str
    artist: str
    album: Optional[str] = None
    album_art_url: Optional[str] = None
    duration_ms: Optional[int] = None
    uri: Optional[str] = None
    popularity: Optional[int] = None
    preview_url: Optional[str] = None


@dataclass
class AudioFeatures:
    """Spotify audio features (the subset MoodSync uses)."""
    track_id: str
    valence: float
    energy: float
    tempo: float
    danceability: float


class SpotifyClient(BaseAPIClient):
    """
    Spotify Web API client with per-call bearer tokens and rate limiting.

    Inherits from BaseAPIClient, so failures arrive as TokenRejected,
    RateLimited, NetworkFailure or MalformedResponse.
    """

    BASE_URL = "https://api.spotify.com/v1"

    def __init__(
        self,
        base_url: str = BASE_URL,
        rate_limiter: Optional[UnifiedRateLimiter] = None,
        timeout: float = 5
    ):
        """
        Initialize Spotify client.

        Args:
            base_url: Web API base URL
            rate_limiter: Rate limiter instance (optional, default Spotify limiter)
            timeout: Per-request timeout in seconds
        """
        if rate_limiter is None:
            rate_limiter = UnifiedRateLimiter.for_spotify()

        super().__init__(
            base_url=base_url,
            rate_limiter=rate_limiter,
            timeout=timeout,
            service_name="Spotify"
        )

    def _extract_api_error(self, data: Dict[str, Any]) -> Optional[str]:
        """
        Extract Spotify API error information from response data.

        Args:
            data: Parsed response data

        Returns:
            Error message if found, None otherwise
        """
        if "error" in data:
            error_info = data["error"]
            if isinstance(error_info, dict):
                return error_info.get("message", f"Error {error_info.get('status', 'unknown')}")
            return str(error_info)
        return None

    async def _make_spotify_request(
        self,
        endpoint: str,
        access_token: str,
        params: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Make authenticated request to Spotify API.

        Args:
            endpoint: API endpoint (without base URL)
            access_token: User bearer token
            params: Query parameters

        Returns:
            API response data
        """
        headers = {"Authorization": f"Bearer {access_token}"}
        return await self._make_request(endpoint=endpoint, params=params, headers=headers)

    async def get_recommendations(
        self,
        features: FeatureVector,
        access_token: str,
        limit: int = 20
    ) -> List[SpotifyTrack]:
        """
        Feature-targeted recommendations seeded by genre.

        Args:
            features: Target audio features and genre seeds
            access_token: User bearer token
            limit: Number of tracks to request

        Returns:
            Parsed tracks (possibly empty)
        """
        params = features.to_query_params()
        params["limit"] = limit

        data = await self._make_spotify_request("recommendations", access_token, params)

        items = data.get("tracks")
        if not isinstance(items, list):
            raise MalformedResponse("recommendations response has no track list", service=self.service_name)

        tracks = self._parse_tracks(items)
        self.logger.info(
            "Spotify recommendations retrieved",
            requested=limit,
            results_count=len(tracks),
            seed_genres=params["seed_genres"]
        )
        return tracks

    async def search_tracks(
        self,
        query: str,
        access_token: str,
        limit: int = 20,
        offset: int = 0
    ) -> List[SpotifyTrack]:
        """
        Search for tracks with a free-text query.

        Args:
            query: Search query
            access_token: User bearer token
            limit: Number of results
            offset: Result offset

        Returns:
            List of matching tracks
        """
        data = await self._make_spotify_request(
            "search",
            access_token,
            {"q": query, "type": "track", "limit": limit, "offset": offset}
        )

        page = data.get("tracks")
        if not isinstance(page, dict) or not isinstance(page.get("items"), list):
            raise MalformedResponse("search response has no track page", service=self.service_name)

        tracks = self._parse_tracks(page["items"])
        self.logger.info("Spotify search completed", query=query, results_count=len(tracks))
        return tracks

    async def get_audio_features(self, track_id: str, access_token: str) -> Optional[AudioFeatures]:
        """
        Get audio features for a track.

        Args:
            track_id: Spotify track ID
            access_token: User bearer token

        Returns:
            Audio features or None if Spotify has none for the track
        """
        data = await self._make_spotify_request(f"audio-features/{track_id}", access_token)

        if not data or data.get("id") is None:
            return None

        try:
            return AudioFeatures(
                track_id=data["id"],
                valence=float(data["valence"]),
                energy=float(data["energy"]),
                tempo=float(data["tempo"]),
                danceability=float(data["danceability"])
            )
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedResponse(f"audio features incomplete: {e}", service=self.service_name)

    def _parse_tracks(self, items: List[Any]) -> List[SpotifyTrack]:
        tracks = []
        for track_data in items:
            track = self._parse_track(track_data)
            if track is None:
                self.logger.debug("Skipping malformed track item")
                continue
            tracks.append(track)
        return tracks

    @staticmethod
    def _parse_track(track_data: Any) -> Optional[SpotifyTrack]:
        if not isinstance(track_data, dict):
            return None

        track_id = track_data.get("id")
        name = track_data.get("name")
        artists = track_data.get("artists") or []
        if not isinstance(track_id, str) or not track_id or not isinstance(name, str) or not name:
            return None
        if not isinstance(artists, list) or not artists or not isinstance(artists[0], dict):
            return None

        artist = artists[0].get("name")
        if not isinstance(artist, str) or not artist:
            return None

        duration_ms = track_data.get("duration_ms")
        if duration_ms is not None and (
            isinstance(duration_ms, bool) or not isinstance(duration_ms, int) or duration_ms < 0
        ):
            return None

        album = track_data.get("album")
        if not isinstance(album, dict):
            album = {}
        images = album.get("images") or []
        image = images[0] if isinstance(images, list) and images and isinstance(images[0], dict) else {}

        return SpotifyTrack(
            id=track_id,
            name=name,
            artist=artist,
            album=album.get("name"),
            album_art_url=image.get("url"),
            duration_ms=duration_ms,
            uri=track_data.get("uri"),
            popularity=track_data.get("popularity"),
            preview_url=track_data.get("preview_url")
        )
