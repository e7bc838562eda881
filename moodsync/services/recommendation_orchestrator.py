"""
Recommendation Orchestrator for MoodSync

Answers "what should I listen to" for a mood and intensity through a
three-tier chain that always returns at least one track:

1. primary   - Spotify recommendations targeted at the mood's audio features
2. secondary - Spotify keyword search, shuffled
3. fallback  - embedded, mood-tagged static tracks

Tiers run strictly in order. The chain stops at the first tier that brings
the running total to ``min_results``; otherwise results from successive
tiers are concatenated.
"""

import asyncio
import random
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

import structlog
from pydantic import ValidationError

from ..api.errors import AuthExpired, SOFT_FAILURES, TokenRejected
from ..models.mood_models import FeatureVector, MoodLabel
from ..models.recommendation_models import RecommendationResult, SourceTier
from .components.mood_feature_mapper import (
    clamp_intensity,
    describe_features,
    map_mood_to_features,
)

logger = structlog.get_logger(__name__)


MOOD_KEYWORDS: Dict[MoodLabel, str] = {
    MoodLabel.HAPPY: "upbeat pop",
    MoodLabel.SAD: "sad acoustic",
    MoodLabel.CALM: "ambient relaxing",
    MoodLabel.ENERGETIC: "workout energy",
    MoodLabel.EXCITED: "party anthems",
    MoodLabel.ANGRY: "hard rock",
    MoodLabel.ANXIOUS: "calming piano",
    MoodLabel.RELAXED: "chill jazz",
    MoodLabel.TIRED: "sleepy acoustic",
    MoodLabel.UNKNOWN: "feel good hits",
}

# (track_id, title, artist)
StaticTrack = Tuple[str, str, str]

STATIC_TRACKS: Dict[MoodLabel, List[StaticTrack]] = {
    MoodLabel.HAPPY: [
        ("static:happy-pharrell", "Happy", "Pharrell Williams"),
        ("static:good-vibrations", "Good Vibrations", "The Beach Boys"),
        ("static:walking-on-sunshine", "Walking on Sunshine", "Katrina & The Waves"),
    ],
    MoodLabel.SAD: [
        ("static:mad-world", "Mad World", "Gary Jules"),
        ("static:hallelujah", "Hallelujah", "Jeff Buckley"),
        ("static:fix-you", "Fix You", "Coldplay"),
    ],
    MoodLabel.CALM: [
        ("static:weightless", "Weightless", "Marconi Union"),
        ("static:clair-de-lune", "Clair de Lune", "Claude Debussy"),
        ("static:river-flows-in-you", "River Flows in You", "Yiruma"),
    ],
    MoodLabel.ENERGETIC: [
        ("static:i-gotta-feeling", "I Gotta Feeling", "The Black Eyed Peas"),
        ("static:uptown-funk", "Uptown Funk", "Mark Ronson ft. Bruno Mars"),
        ("static:cant-stop-the-feeling", "Can't Stop the Feeling!", "Justin Timberlake"),
    ],
    MoodLabel.EXCITED: [
        ("static:dont-stop-me-now", "Don't Stop Me Now", "Queen"),
        ("static:mr-brightside", "Mr. Brightside", "The Killers"),
        ("static:midnight-city", "Midnight City", "M83"),
    ],
    MoodLabel.ANGRY: [
        ("static:killing-in-the-name", "Killing in the Name", "Rage Against the Machine"),
        ("static:break-stuff", "Break Stuff", "Limp Bizkit"),
        ("static:black", "Black", "Pearl Jam"),
    ],
    MoodLabel.ANXIOUS: [
        ("static:weightless-anxious", "Weightless", "Marconi Union"),
        ("static:comptine", "Comptine d'un autre été", "Yann Tiersen"),
        ("static:breathe-me", "Breathe Me", "Sia"),
    ],
    MoodLabel.RELAXED: [
        ("static:so-what", "So What", "Miles Davis"),
        ("static:holocene", "Holocene", "Bon Iver"),
        ("static:banana-pancakes", "Banana Pancakes", "Jack Johnson"),
    ],
    MoodLabel.TIRED: [
        ("static:gymnopedie", "Gymnopédie No. 1", "Erik Satie"),
        ("static:the-scientist", "The Scientist", "Coldplay"),
        ("static:skinny-love", "Skinny Love", "Bon Iver"),
    ],
}

GENERIC_STATIC_TRACKS: List[StaticTrack] = [
    ("static:dont-stop-believin", "Don't Stop Believin'", "Journey"),
    ("static:here-comes-the-sun", "Here Comes the Sun", "The Beatles"),
    ("static:lovely-day", "Lovely Day", "Bill Withers"),
    ("static:dreams", "Dreams", "Fleetwood Mac"),
    ("static:electric-feel", "Electric Feel", "MGMT"),
]


class RecommendationOrchestrator:
    """
    Tiered recommendation fetch with a guaranteed non-empty result.

    Holds no state across calls; independent requests may run concurrently.
    Only AuthExpired (the session can no longer produce a token) reaches the
    caller; every other failure advances the chain.
    """

    def __init__(
        self,
        spotify_client,
        token_manager,
        feature_mapper: Callable[[MoodLabel, int], FeatureVector] = map_mood_to_features,
        rng: Optional[random.Random] = None,
        tier_timeout: float = 5.0,
        recommendation_limit: int = 20
    ):
        """
        Initialize the orchestrator.

        Args:
            spotify_client: Client with async get_recommendations/search_tracks
            token_manager: Session TokenLifecycleManager
            feature_mapper: Mood/intensity to FeatureVector mapping
            rng: Randomness source for shuffling keyword results
            tier_timeout: Seconds allowed per tier, token acquisition included
            recommendation_limit: Tracks requested per upstream call
        """
        self.spotify_client = spotify_client
        self.token_manager = token_manager
        self.feature_mapper = feature_mapper
        self.rng = rng or random.Random()
        self.tier_timeout = tier_timeout
        self.recommendation_limit = recommendation_limit
        self.logger = logger.bind(service="RecommendationOrchestrator")

    async def get_recommendations(
        self,
        mood,
        intensity: int,
        min_results: int = 5
    ) -> List[RecommendationResult]:
        """
        Get mood-based recommendations.

        Args:
            mood: Mood label (MoodLabel or string)
            intensity: 1-10 intensity (clamped)
            min_results: Target result count (best effort)

        Returns:
            Ordered, de-duplicated results; never empty

        Raises:
            AuthExpired: the session must re-authenticate
        """
        label = MoodLabel.parse(mood)
        intensity = clamp_intensity(intensity)
        min_results = max(1, min_results)
        features = self.feature_mapper(label, intensity)

        self.logger.info(
            "Generating recommendations",
            mood=label.value,
            intensity=intensity,
            min_results=min_results
        )

        tiers: List[Tuple[SourceTier, Callable[[], Awaitable[List[RecommendationResult]]]]] = [
            (SourceTier.PRIMARY, lambda: self._primary_tier(features)),
            (SourceTier.SECONDARY, lambda: self._secondary_tier(label)),
        ]

        results: List[RecommendationResult] = []
        seen = set()
        for tier, fetch in tiers:
            batch = await self._run_tier(tier, fetch)
            self._extend_unique(results, seen, batch)
            if len(results) >= min_results:
                self._log_outcome(label, results, stopped_at=tier)
                return results

        self._extend_unique(results, seen, self._fallback_tier(label, min_results - len(results)))
        self._log_outcome(label, results, stopped_at=SourceTier.FALLBACK)
        return results

    async def _run_tier(
        self,
        tier: SourceTier,
        fetch: Callable[[], Awaitable[List[RecommendationResult]]]
    ) -> List[RecommendationResult]:
        try:
            # the bound covers token acquisition and any refresh, not just the call
            results = await asyncio.wait_for(fetch(), timeout=self.tier_timeout)
        except AuthExpired:
            raise
        except asyncio.TimeoutError:
            self.logger.warning("Tier timed out", tier=tier.value, timeout=self.tier_timeout)
            return []
        except SOFT_FAILURES as e:
            self.logger.warning(
                "Tier failed",
                tier=tier.value,
                error=str(e),
                error_type=type(e).__name__
            )
            return []
        except Exception as e:
            self.logger.error(
                "Unexpected tier error",
                tier=tier.value,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True
            )
            return []

        if not results:
            self.logger.info("Tier returned no tracks", tier=tier.value)
        return results

    async def _primary_tier(self, features: FeatureVector) -> List[RecommendationResult]:
        token = await self.token_manager.get_valid_access_token()
        try:
            tracks = await self.spotify_client.get_recommendations(
                features, token, limit=self.recommendation_limit
            )
        except TokenRejected:
            # one refresh-and-retry; a second rejection falls through to the next tier
            self.logger.info("Recommendation call rejected token; refreshing once")
            token = await self.token_manager.force_refresh(rejected_token=token)
            tracks = await self.spotify_client.get_recommendations(
                features, token, limit=self.recommendation_limit
            )

        reason = (
            f"matches target energy {features.energy:.2f}, valence {features.valence:.2f} "
            f"({describe_features(features)})"
        )
        return self._to_results(tracks, SourceTier.PRIMARY, reason)

    async def _secondary_tier(self, label: MoodLabel) -> List[RecommendationResult]:
        keyword = MOOD_KEYWORDS[label]
        token = await self.token_manager.get_valid_access_token()
        tracks = await self.spotify_client.search_tracks(keyword, token, limit=self.recommendation_limit)

        tracks = list(tracks)
        self.rng.shuffle(tracks)

        reason = f"keyword match: {keyword}"
        return self._to_results(tracks, SourceTier.SECONDARY, reason)

    def _to_results(self, tracks, tier: SourceTier, reason: str) -> List[RecommendationResult]:
        results = []
        for track in tracks:
            try:
                results.append(RecommendationResult.from_spotify_track(track, tier, reason))
            except ValidationError as e:
                self.logger.warning(
                    "Skipping invalid track",
                    tier=tier.value,
                    track_id=getattr(track, "id", None),
                    error_count=e.error_count()
                )
        return results

    def _fallback_tier(self, label: MoodLabel, needed: int) -> List[RecommendationResult]:
        """Static tracks for the mood, topped up from the generic set."""
        mood_tracks = STATIC_TRACKS.get(label, [])
        pool = list(mood_tracks)
        if len(pool) < needed or not pool:
            pool += [t for t in GENERIC_STATIC_TRACKS if t not in pool]

        if label is MoodLabel.UNKNOWN:
            reason = "default suggestion"
        else:
            reason = f"default suggestion for a {label.value} mood"

        self.logger.warning("Serving static fallback tracks", mood=label.value, count=len(pool))
        return [
            RecommendationResult(
                track_id=track_id,
                title=title,
                artist=artist,
                source_tier=SourceTier.FALLBACK,
                match_reason=reason
            )
            for track_id, title, artist in pool
        ]

    @staticmethod
    def _extend_unique(
        results: List[RecommendationResult],
        seen: set,
        batch: List[RecommendationResult]
    ) -> None:
        for result in batch:
            if result.track_id in seen:
                continue
            seen.add(result.track_id)
            results.append(result)

    def _log_outcome(self, label: MoodLabel, results: List[RecommendationResult], stopped_at: SourceTier) -> None:
        tier_counts: Dict[str, int] = {}
        for result in results:
            tier_counts[result.source_tier.value] = tier_counts.get(result.source_tier.value, 0) + 1

        self.logger.info(
            "Recommendations ready",
            mood=label.value,
            total=len(results),
            stopped_at=stopped_at.value,
            tier_counts=tier_counts
        )

    def get_service_status(self) -> Dict:
        """
        Get current service configuration.

        Returns:
            Service status information
        """
        return {
            "tier_timeout": self.tier_timeout,
            "recommendation_limit": self.recommendation_limit,
            "static_moods_covered": len(STATIC_TRACKS),
            "generic_static_tracks": len(GENERIC_STATIC_TRACKS),
        }
