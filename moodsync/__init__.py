"""
MoodSync - Mood-Aware Music Recommendations

Keeps a Spotify session's OAuth tokens usable, maps logged moods to audio
feature targets, fetches recommendations through a tiered fallback chain,
and summarizes mood history into patterns and insights.
"""

__version__ = "0.1.0"
__author__ = "MoodSync Team"
