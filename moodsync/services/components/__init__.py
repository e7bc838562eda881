"""
Service Components

Pure building blocks used by the MoodSync services.
"""

from .mood_feature_mapper import (
    map_mood_to_features,
    classify_audio_features,
    describe_features,
)
from .mood_pattern_analyzer import MoodPatternAnalyzer

__all__ = [
    "map_mood_to_features",
    "classify_audio_features",
    "describe_features",
    "MoodPatternAnalyzer",
]
