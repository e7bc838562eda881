"""
Models Module

Data models shared by the MoodSync services.
"""

from .mood_models import (
    MoodLabel,
    MoodTrend,
    MoodEntry,
    SongContext,
    FeatureVector,
    MoodPattern,
)
from .recommendation_models import SourceTier, RecommendationResult
from .insight_models import Insight, InsightPayload, InsightSource
from .config_models import SystemConfig

__all__ = [
    "MoodLabel",
    "MoodTrend",
    "MoodEntry",
    "SongContext",
    "FeatureVector",
    "MoodPattern",
    "SourceTier",
    "RecommendationResult",
    "Insight",
    "InsightPayload",
    "InsightSource",
    "SystemConfig",
]
