"""
Insight Models

Result of InsightGenerator and the schema an LLM reply must satisfy.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List

from pydantic import AliasChoices, BaseModel, Field, field_validator


class InsightSource(str, Enum):
    """Which path produced the insight text."""
    AI = "ai"
    TEMPLATE = "template"


@dataclass
class Insight:
    """Natural-language summary of a MoodPattern."""
    text: str
    source: InsightSource
    recommendations: List[str] = field(default_factory=list)
    suggested_genres: List[str] = field(default_factory=list)


class InsightPayload(BaseModel):
    """Expected JSON body of the LLM reply."""
    insight: str = Field(..., description="Summary of the user's mood pattern.")
    recommendations: List[str] = Field(default_factory=list)
    suggested_genres: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("suggested_genres", "genres")
    )

    @field_validator("insight")
    @classmethod
    def insight_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("insight must not be blank")
        return value

    @field_validator("recommendations", "suggested_genres")
    @classmethod
    def strip_items(cls, values: List[str]) -> List[str]:
        return [item.strip() for item in values if item and item.strip()]
