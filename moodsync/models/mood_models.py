"""
Mood Models

Canonical mood taxonomy and the data structures that flow through the
recommendation and pattern-analysis services.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple


class MoodLabel(str, Enum):
    """Closed set of mood labels; UNKNOWN is the explicit fallback branch."""
    HAPPY = "happy"
    SAD = "sad"
    CALM = "calm"
    ENERGETIC = "energetic"
    EXCITED = "excited"
    ANGRY = "angry"
    ANXIOUS = "anxious"
    RELAXED = "relaxed"
    TIRED = "tired"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value) -> "MoodLabel":
        """
        Resolve a free-form label to the canonical enum.

        Case and surrounding whitespace are ignored. Legacy labels from older
        mood pickers are folded onto their canonical equivalent; anything else
        becomes UNKNOWN.
        """
        if isinstance(value, MoodLabel):
            return value
        if not isinstance(value, str):
            return cls.UNKNOWN

        key = value.strip().lower()
        try:
            return cls(key)
        except ValueError:
            return MOOD_ALIASES.get(key, cls.UNKNOWN)

    @classmethod
    def known(cls) -> List["MoodLabel"]:
        return [label for label in cls if label is not cls.UNKNOWN]


MOOD_ALIASES: Dict[str, MoodLabel] = {
    "melancholy": MoodLabel.SAD,
    "melancholic": MoodLabel.SAD,
    "down": MoodLabel.SAD,
    "peaceful": MoodLabel.CALM,
    "content": MoodLabel.CALM,
    "stressed": MoodLabel.ANXIOUS,
    "nervous": MoodLabel.ANXIOUS,
    "hyped": MoodLabel.EXCITED,
    "chill": MoodLabel.RELAXED,
    "frustrated": MoodLabel.ANGRY,
    "exhausted": MoodLabel.TIRED,
    "sleepy": MoodLabel.TIRED,
}


class MoodTrend(str, Enum):
    """Week-over-week intensity movement."""
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


@dataclass(frozen=True)
class SongContext:
    """Track the user was listening to when logging a mood."""
    track_id: str
    track_name: str
    artist_name: str


@dataclass(frozen=True)
class MoodEntry:
    """
    A logged mood.

    Created by the mood-logging side of the app; intensity is validated to
    1..10 there.
    """
    id: str
    mood_label: MoodLabel
    intensity: int
    created_at: datetime
    note: Optional[str] = None
    song_context: Optional[SongContext] = None

    @classmethod
    def from_record(cls, record: Dict) -> "MoodEntry":
        """Build an entry from a storage row / API dict."""
        song = record.get("song_context")
        created_at = record["created_at"]
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at.replace("Z", "+00:00"))

        return cls(
            id=str(record["id"]),
            mood_label=MoodLabel.parse(record.get("mood_label") or record.get("mood")),
            intensity=int(record["intensity"]),
            created_at=created_at,
            note=record.get("note"),
            song_context=SongContext(
                track_id=song["track_id"],
                track_name=song["track_name"],
                artist_name=song["artist_name"],
            ) if song else None,
        )


@dataclass(frozen=True)
class FeatureVector:
    """Target audio features for a recommendation query."""
    valence: float
    energy: float
    tempo: float
    genre_seeds: FrozenSet[str]
    danceability: Optional[float] = None

    def to_query_params(self) -> Dict[str, str]:
        """Spotify /recommendations target_* parameters."""
        params = {
            "target_valence": f"{self.valence:.2f}",
            "target_energy": f"{self.energy:.2f}",
            "target_tempo": f"{self.tempo:.0f}",
            "seed_genres": ",".join(sorted(self.genre_seeds)),
        }
        if self.danceability is not None:
            params["target_danceability"] = f"{self.danceability:.2f}"
        return params


@dataclass
class MoodPattern:
    """Aggregated view over a mood history window."""
    dominant_mood: MoodLabel
    frequency_map: Dict[MoodLabel, int]
    average_intensity: float
    trend: MoodTrend
    days_tracked: int
    entry_count: Optional[int] = None
    intensity_by_mood: Dict[MoodLabel, float] = field(default_factory=dict)
    daily_intensity: List[Tuple[date, float]] = field(default_factory=list)

    def __post_init__(self):
        if self.entry_count is None:
            self.entry_count = sum(self.frequency_map.values())

    @property
    def is_empty(self) -> bool:
        return not self.frequency_map

    def to_dict(self) -> Dict:
        return {
            "dominant_mood": self.dominant_mood.value,
            "frequency_map": {label.value: count for label, count in self.frequency_map.items()},
            "average_intensity": self.average_intensity,
            "trend": self.trend.value,
            "days_tracked": self.days_tracked,
            "entry_count": self.entry_count,
            "intensity_by_mood": {label.value: avg for label, avg in self.intensity_by_mood.items()},
            "daily_intensity": [(day.isoformat(), avg) for day, avg in self.daily_intensity],
        }
