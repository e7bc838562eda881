"""
Insight Generator for MoodSync

Turns a MoodPattern into a short natural-language insight using Gemini,
and falls back to a templated sentence built from the pattern itself when
the LLM is unavailable, fails, times out, or replies with something that
does not match the expected JSON schema.
"""

import asyncio
import json
from typing import Any, Dict, Optional

import structlog
from pydantic import ValidationError

from ..api.errors import MalformedResponse
from ..models.insight_models import Insight, InsightPayload, InsightSource
from ..models.mood_models import MoodPattern, MoodTrend
from .components.mood_feature_mapper import profile_for

logger = structlog.get_logger(__name__)


TREND_PHRASES: Dict[MoodTrend, str] = {
    MoodTrend.IMPROVING: "trending upward compared with the week before",
    MoodTrend.STABLE: "holding steady",
    MoodTrend.DECLINING: "dipping compared with the week before",
}

START_LOGGING_TEXT = (
    "You haven't logged any moods yet. Start logging how you feel each day "
    "and MoodSync will show your patterns and suggest music that fits."
)


class InsightGenerator:
    """
    LLM-backed mood insights with a template fallback that never fails.

    The ``source`` field on the returned Insight tells callers which path
    produced the text.
    """

    def __init__(self, llm_client=None, rate_limiter=None, timeout: float = 10.0):
        """
        Initialize the insight generator.

        Args:
            llm_client: Gemini GenerativeModel (or compatible) client; None
                means template insights only
            rate_limiter: Optional rate limiter for Gemini API calls
            timeout: Seconds allowed for the LLM call
        """
        self.llm_client = llm_client
        self.rate_limiter = rate_limiter
        self.timeout = timeout
        self.logger = logger.bind(service="InsightGenerator")

    async def generate_insight(self, pattern: MoodPattern) -> Insight:
        """
        Generate an insight for a mood pattern.

        Args:
            pattern: Output of MoodPatternAnalyzer.analyze

        Returns:
            Insight from the LLM (source=ai) or the template (source=template)
        """
        if pattern.is_empty:
            self.logger.info("No mood data; serving start-logging insight")
            return self.build_template_insight(pattern)

        if not self.is_available():
            return self.build_template_insight(pattern)

        try:
            if self.rate_limiter:
                await self.rate_limiter.acquire()

            prompt = self._build_insight_prompt(pattern)
            response_text = await asyncio.wait_for(self._call_llm_async(prompt), timeout=self.timeout)
            payload = self._parse_llm_response(response_text)

        except asyncio.TimeoutError:
            self.logger.warning("LLM call timed out", timeout=self.timeout)
            return self.build_template_insight(pattern)
        except Exception as e:
            self.logger.error(
                "Insight generation failed",
                error=str(e),
                error_type=type(e).__name__,
                dominant_mood=pattern.dominant_mood.value
            )
            return self.build_template_insight(pattern)

        self.logger.info(
            "AI insight generated",
            dominant_mood=pattern.dominant_mood.value,
            recommendation_count=len(payload.recommendations)
        )
        return Insight(
            text=payload.insight,
            source=InsightSource.AI,
            recommendations=payload.recommendations,
            suggested_genres=payload.suggested_genres,
        )

    def _build_insight_prompt(self, pattern: MoodPattern) -> str:
        """
        Build the LLM prompt from pattern fields.

        Args:
            pattern: Mood pattern to summarize

        Returns:
            Prompt string asking for JSON only
        """
        frequencies = ", ".join(
            f"{label.value}: {count}"
            for label, count in sorted(pattern.frequency_map.items(), key=lambda item: -item[1])
        )
        per_mood = ", ".join(
            f"{label.value}: {avg:.1f}/10" for label, avg in pattern.intensity_by_mood.items()
        )

        return f"""You are a supportive wellbeing assistant inside a mood journal that pairs moods with music.

Here is a summary of the user's recent mood log:
- Dominant mood: {pattern.dominant_mood.value}
- Mood frequency: {frequencies}
- Average intensity: {pattern.average_intensity:.1f}/10
- Average intensity per mood: {per_mood or "n/a"}
- Week-over-week trend: {pattern.trend.value}
- Days tracked: {pattern.days_tracked} ({pattern.entry_count} entries)

Write a short, warm insight (2-3 sentences) about this pattern and suggest how music could support the user.
Respond in this JSON format:
{{
    "insight": "2-3 sentence summary addressed to the user",
    "recommendations": ["short actionable suggestion", "..."],
    "suggested_genres": ["genre", "..."]
}}

Respond ONLY with valid JSON. Do not include any other text."""

    async def _call_llm_async(self, prompt: str) -> str:
        """
        Call the LLM asynchronously.

        Args:
            prompt: Formatted prompt for the LLM

        Returns:
            Raw response text
        """
        if hasattr(self.llm_client, 'generate_content_async'):
            response = await self.llm_client.generate_content_async(prompt)
        else:
            response = await asyncio.get_running_loop().run_in_executor(
                None, self.llm_client.generate_content, prompt
            )

        if hasattr(response, 'text'):
            return response.text
        if hasattr(response, 'candidates') and response.candidates:
            return response.candidates[0].content.parts[0].text
        raise MalformedResponse("Unable to extract text from LLM response", service="Gemini")

    def _parse_llm_response(self, response_text: Any) -> InsightPayload:
        """
        Parse LLM response text into an InsightPayload.

        Markdown code fences around the JSON are tolerated.

        Raises:
            MalformedResponse: not JSON, or JSON not matching the schema
        """
        if not isinstance(response_text, str):
            raise MalformedResponse("LLM response is not text", service="Gemini")

        cleaned_text = response_text.strip()
        if cleaned_text.startswith("```json"):
            cleaned_text = cleaned_text[7:]
        elif cleaned_text.startswith("```"):
            cleaned_text = cleaned_text[3:]
        if cleaned_text.endswith("```"):
            cleaned_text = cleaned_text[:-3]
        cleaned_text = cleaned_text.strip()

        try:
            parsed = json.loads(cleaned_text)
        except json.JSONDecodeError as e:
            raise MalformedResponse(f"Invalid JSON response from LLM: {e}", service="Gemini")

        if not isinstance(parsed, dict):
            raise MalformedResponse("LLM JSON is not an object", service="Gemini")

        try:
            return InsightPayload.model_validate(parsed)
        except ValidationError as e:
            raise MalformedResponse(
                f"LLM JSON does not match insight schema: {e.error_count()} errors",
                service="Gemini"
            )

    def build_template_insight(self, pattern: MoodPattern) -> Insight:
        """
        Templated insight interpolating the pattern's fields. No I/O.

        Args:
            pattern: Mood pattern to summarize

        Returns:
            Insight with source=template
        """
        if pattern.is_empty:
            return Insight(
                text=START_LOGGING_TEXT,
                source=InsightSource.TEMPLATE,
                recommendations=["Log your mood once a day, even briefly"],
            )

        mood = pattern.dominant_mood.value
        count = pattern.frequency_map.get(pattern.dominant_mood, 0)
        day_word = "day" if pattern.days_tracked == 1 else "days"
        text = (
            f"Across {pattern.days_tracked} {day_word} of tracking, your most frequent mood was "
            f"{mood} ({count} of {pattern.entry_count} entries) with an average intensity of "
            f"{pattern.average_intensity:.1f}/10. Your mood intensity has been "
            f"{TREND_PHRASES[pattern.trend]}."
        )

        return Insight(
            text=text,
            source=InsightSource.TEMPLATE,
            recommendations=[f"Try a playlist that matches a {mood} mood"],
            suggested_genres=sorted(profile_for(pattern.dominant_mood).genres),
        )

    def is_available(self) -> bool:
        """
        Check if LLM insights are available.

        Returns:
            True if an LLM client is configured
        """
        return self.llm_client is not None

    def get_service_status(self) -> Dict[str, Any]:
        """
        Get current service status.

        Returns:
            Service status information
        """
        status = {
            "llm_available": self.is_available(),
            "has_rate_limiter": self.rate_limiter is not None,
            "timeout": self.timeout,
        }
        if self.rate_limiter:
            status["rate_limiter_stats"] = self.rate_limiter.get_current_usage()
        return status
