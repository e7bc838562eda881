"""
Mood Feature Mapper

Translates a mood label and 1-10 intensity into target audio features and
genre seeds for Spotify's recommendation endpoint. Pure and deterministic.

Each mood has an anchor per feature plus a signed spread; with
f = intensity / 10 the target is ``anchor + f * spread``, clamped to the
feature's range.
"""

from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional, Tuple

import structlog

from ...models.mood_models import FeatureVector, MoodLabel

logger = structlog.get_logger(__name__)

UNIT_RANGE: Tuple[float, float] = (0.0, 1.0)
TEMPO_RANGE: Tuple[float, float] = (60.0, 180.0)
INTENSITY_RANGE: Tuple[int, int] = (1, 10)


@dataclass(frozen=True)
class MoodProfile:
    """Anchor and signed intensity spread for each feature of one mood."""
    valence: Tuple[float, float]
    energy: Tuple[float, float]
    tempo: Tuple[float, float]
    danceability: Optional[Tuple[float, float]]
    genres: FrozenSet[str]


MOOD_PROFILES: Dict[MoodLabel, MoodProfile] = {
    MoodLabel.HAPPY: MoodProfile(
        valence=(0.7, 0.3), energy=(0.6, 0.4), tempo=(120, 40),
        danceability=(0.6, 0.3), genres=frozenset({"pop", "dance", "happy"}),
    ),
    MoodLabel.SAD: MoodProfile(
        valence=(0.3, -0.2), energy=(0.3, -0.2), tempo=(80, -20),
        danceability=(0.3, -0.1), genres=frozenset({"sad", "acoustic", "indie"}),
    ),
    # calm holds valence at the midpoint whatever the intensity
    MoodLabel.CALM: MoodProfile(
        valence=(0.5, 0.0), energy=(0.3, -0.2), tempo=(80, -20),
        danceability=(0.3, -0.1), genres=frozenset({"ambient", "chill", "acoustic"}),
    ),
    MoodLabel.ENERGETIC: MoodProfile(
        valence=(0.7, 0.0), energy=(0.8, 0.2), tempo=(130, 30),
        danceability=(0.7, 0.2), genres=frozenset({"dance", "electronic", "pop"}),
    ),
    MoodLabel.EXCITED: MoodProfile(
        valence=(0.6, 0.4), energy=(0.8, 0.2), tempo=(140, 40),
        danceability=(0.7, 0.2), genres=frozenset({"rock", "electronic", "dance"}),
    ),
    MoodLabel.ANGRY: MoodProfile(
        valence=(0.4, -0.1), energy=(0.8, 0.2), tempo=(150, 30),
        danceability=(0.5, 0.0), genres=frozenset({"rock", "metal", "punk"}),
    ),
    MoodLabel.ANXIOUS: MoodProfile(
        valence=(0.4, 0.0), energy=(0.3, -0.1), tempo=(70, -10),
        danceability=(0.3, 0.0), genres=frozenset({"ambient", "chill", "classical"}),
    ),
    MoodLabel.RELAXED: MoodProfile(
        valence=(0.6, 0.0), energy=(0.35, -0.15), tempo=(85, -10),
        danceability=(0.4, 0.0), genres=frozenset({"jazz", "ambient", "chill"}),
    ),
    MoodLabel.TIRED: MoodProfile(
        valence=(0.4, 0.0), energy=(0.25, -0.15), tempo=(75, -10),
        danceability=(0.3, -0.1), genres=frozenset({"acoustic", "sleep", "piano"}),
    ),
}

NEUTRAL_PROFILE = MoodProfile(
    valence=(0.5, 0.0), energy=(0.5, 0.0), tempo=(100, 0),
    danceability=None, genres=frozenset({"pop"}),
)


def _clamp(value: float, bounds: Tuple[float, float]) -> float:
    low, high = bounds
    return max(low, min(high, value))


def clamp_intensity(intensity) -> int:
    """Round and clamp an intensity to 1..10."""
    return int(_clamp(round(intensity), INTENSITY_RANGE))


def profile_for(mood) -> MoodProfile:
    """Profile for a label (str or MoodLabel); unknown labels get the neutral anchor."""
    return MOOD_PROFILES.get(MoodLabel.parse(mood), NEUTRAL_PROFILE)


def map_mood_to_features(mood, intensity: int) -> FeatureVector:
    """
    Map a mood label and intensity to a target FeatureVector.

    Args:
        mood: Mood label (MoodLabel or case-insensitive string)
        intensity: 1-10 strength of the mood; clamped if out of range

    Returns:
        FeatureVector with valence/energy/danceability in [0, 1] and tempo
        within TEMPO_RANGE
    """
    profile = profile_for(mood)
    f = clamp_intensity(intensity) / 10

    def scaled(anchor_spread: Tuple[float, float], bounds: Tuple[float, float]) -> float:
        anchor, spread = anchor_spread
        return round(_clamp(anchor + f * spread, bounds), 3)

    return FeatureVector(
        valence=scaled(profile.valence, UNIT_RANGE),
        energy=scaled(profile.energy, UNIT_RANGE),
        tempo=scaled(profile.tempo, TEMPO_RANGE),
        danceability=scaled(profile.danceability, UNIT_RANGE) if profile.danceability else None,
        genre_seeds=profile.genres,
    )


def classify_audio_features(valence: float, energy: float) -> MoodLabel:
    """
    Coarse mood for a track from its valence and energy.

    Checks run in order; the first match wins.
    """
    if valence > 0.6 and energy > 0.6:
        return MoodLabel.HAPPY
    if valence < 0.4 and energy < 0.4:
        return MoodLabel.SAD
    if energy > 0.7:
        return MoodLabel.ENERGETIC
    if valence > 0.6 and energy < 0.5:
        return MoodLabel.CALM
    return MoodLabel.UNKNOWN


def describe_features(features: FeatureVector) -> str:
    """Short phrase such as 'high-energy, upbeat' for a feature vector."""
    if features.energy >= 0.7:
        energy = "high-energy"
    elif features.energy <= 0.35:
        energy = "low-energy"
    else:
        energy = "mid-energy"

    if features.valence >= 0.65:
        tone = "upbeat"
    elif features.valence <= 0.35:
        tone = "melancholic"
    else:
        tone = "balanced"

    return f"{energy}, {tone}"
