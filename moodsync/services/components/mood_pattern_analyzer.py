"""
Mood Pattern Analyzer

Aggregates a mood history into a MoodPattern: dominant mood, frequency
distribution, average intensity, per-mood and per-day intensity, and a
week-over-week trend. No I/O.
"""

from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional

import structlog

from ...models.mood_models import MoodEntry, MoodLabel, MoodPattern, MoodTrend

logger = structlog.get_logger(__name__)


def _as_utc(moment: datetime) -> datetime:
    """Naive timestamps are treated as UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _mean(values: List[float]) -> float:
    return sum(values) / len(values) if values else 0.0


class MoodPatternAnalyzer:
    """
    Pure aggregation over mood entries.

    The trend compares the mean intensity of the newest ``trend_window_days``
    against the window before it. It is computed over the whole history
    passed in, not just the analysis window, so a short ``window_days`` still
    gets a meaningful trend.
    """

    def __init__(self, trend_threshold: float = 1.0, trend_window_days: int = 7):
        """
        Args:
            trend_threshold: Mean-intensity delta needed for improving/declining
            trend_window_days: Length of each comparison window in days
        """
        self.trend_threshold = trend_threshold
        self.trend_window_days = trend_window_days
        self.logger = logger.bind(service="MoodPatternAnalyzer")

    def analyze(
        self,
        entries: Iterable[MoodEntry],
        window_days: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> MoodPattern:
        """
        Build a MoodPattern from mood entries.

        Args:
            entries: Mood history in any order
            window_days: Only consider the trailing N days (all entries if None)
            now: Reference time (defaults to current UTC time)

        Returns:
            MoodPattern; an empty history yields a zeroed, stable pattern
        """
        now = _as_utc(now) if now else datetime.now(timezone.utc)
        history = list(entries)

        windowed = history
        if window_days is not None:
            cutoff = now - timedelta(days=window_days)
            windowed = [e for e in history if _as_utc(e.created_at) >= cutoff]

        if not windowed:
            self.logger.debug("No mood entries to analyze", window_days=window_days)
            return MoodPattern(
                dominant_mood=MoodLabel.UNKNOWN,
                frequency_map={},
                average_intensity=0.0,
                trend=MoodTrend.STABLE,
                days_tracked=0,
                entry_count=0,
            )

        frequency_map = self._frequencies(windowed)
        pattern = MoodPattern(
            dominant_mood=self._dominant_mood(windowed, frequency_map),
            frequency_map=frequency_map,
            average_intensity=round(_mean([e.intensity for e in windowed]), 2),
            trend=self.classify_trend(history, now),
            days_tracked=len({_as_utc(e.created_at).date() for e in windowed}),
            entry_count=len(windowed),
            intensity_by_mood=self._intensity_by_mood(windowed),
            daily_intensity=self._daily_intensity(windowed),
        )

        self.logger.debug(
            "Mood pattern computed",
            entry_count=pattern.entry_count,
            dominant_mood=pattern.dominant_mood.value,
            trend=pattern.trend.value
        )
        return pattern

    def classify_trend(self, entries: Iterable[MoodEntry], now: datetime) -> MoodTrend:
        """
        Week-over-week intensity trend.

        Returns STABLE when there is not enough signal: nothing older than one
        window, or either window empty.
        """
        now = _as_utc(now)
        span = timedelta(days=self.trend_window_days)
        recent_start = now - span
        prior_start = recent_start - span

        recent: List[int] = []
        prior: List[int] = []
        for entry in entries:
            created_at = _as_utc(entry.created_at)
            if recent_start < created_at <= now:
                recent.append(entry.intensity)
            elif prior_start < created_at <= recent_start:
                prior.append(entry.intensity)

        if not recent or not prior:
            return MoodTrend.STABLE

        delta = _mean(recent) - _mean(prior)
        if delta > self.trend_threshold:
            return MoodTrend.IMPROVING
        if delta < -self.trend_threshold:
            return MoodTrend.DECLINING
        return MoodTrend.STABLE

    @staticmethod
    def _frequencies(entries: List[MoodEntry]) -> Dict[MoodLabel, int]:
        counts: Dict[MoodLabel, int] = defaultdict(int)
        for entry in entries:
            counts[entry.mood_label] += 1
        return dict(counts)

    @staticmethod
    def _dominant_mood(entries: List[MoodEntry], frequency_map: Dict[MoodLabel, int]) -> MoodLabel:
        # ties go to the label logged most recently
        latest: Dict[MoodLabel, datetime] = {}
        for entry in entries:
            created_at = _as_utc(entry.created_at)
            if entry.mood_label not in latest or created_at > latest[entry.mood_label]:
                latest[entry.mood_label] = created_at

        return max(frequency_map, key=lambda label: (frequency_map[label], latest[label]))

    @staticmethod
    def _intensity_by_mood(entries: List[MoodEntry]) -> Dict[MoodLabel, float]:
        grouped: Dict[MoodLabel, List[int]] = defaultdict(list)
        for entry in entries:
            grouped[entry.mood_label].append(entry.intensity)
        return {label: round(_mean(values), 2) for label, values in grouped.items()}

    @staticmethod
    def _daily_intensity(entries: List[MoodEntry]) -> List:
        grouped: Dict[date, List[int]] = defaultdict(list)
        for entry in entries:
            grouped[_as_utc(entry.created_at).date()].append(entry.intensity)
        return [(day, round(_mean(grouped[day]), 2)) for day in sorted(grouped)]
