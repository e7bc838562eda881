"""
Services Module

Recommendation, pattern and insight services, and the per-session wiring
that exposes them.
"""

from .recommendation_orchestrator import RecommendationOrchestrator
from .insight_generator import InsightGenerator
from .session_service import MoodSyncSession, initialize_services

__all__ = [
    "RecommendationOrchestrator",
    "InsightGenerator",
    "MoodSyncSession",
    "initialize_services",
]
