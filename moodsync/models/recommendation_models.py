from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class SourceTier(str, Enum):
    """Stage of the recommendation fallback chain that produced a track."""
    PRIMARY = "primary"
    SECONDARY = "secondary"
    FALLBACK = "fallback"


class RecommendationResult(BaseModel):
    """
    A single recommended track, tagged with the tier that produced it and
    a human-readable reason.
    """
    track_id: str = Field(..., description="Spotify track ID, or a static ID for fallback tracks.")
    title: str = Field(..., description="The title of the track.")
    artist: str = Field(..., description="The primary artist of the track.")
    source_tier: SourceTier = Field(..., description="Fallback tier that produced this track.")
    match_reason: str = Field(..., description="Why this track was picked, prefixed by tier context.")

    # --- Optional Rich Metadata ---
    album_art_url: Optional[str] = Field(None, description="Largest album image, when available.")
    uri: Optional[str] = Field(None, description="Spotify URI for playback.")
    duration_ms: Optional[int] = Field(None, ge=0, description="Track duration in milliseconds.")

    @classmethod
    def from_spotify_track(
        cls,
        track,
        source_tier: SourceTier,
        match_reason: str
    ) -> "RecommendationResult":
        """Build from a moodsync.api.spotify_client.SpotifyTrack."""
        return cls(
            track_id=track.id,
            title=track.name,
            artist=track.artist,
            source_tier=source_tier,
            match_reason=match_reason,
            album_art_url=track.album_art_url,
            uri=track.uri,
            duration_ms=track.duration_ms,
        )
