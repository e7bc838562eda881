"""
Tests for InsightGenerator

The LLM client is mocked; every failure mode must produce a templated
insight instead of an error.
"""

import asyncio
import json

import pytest
from unittest.mock import AsyncMock, Mock

from moodsync.api.errors import MalformedResponse
from moodsync.models.insight_models import InsightSource
from moodsync.models.mood_models import MoodLabel, MoodPattern, MoodTrend
from moodsync.services.insight_generator import START_LOGGING_TEXT, InsightGenerator


def llm_reply(text):
    response = Mock()
    response.text = text
    return response


class TestInsightGenerator:
    """Test suite for InsightGenerator"""

    @pytest.fixture
    def pattern(self):
        return MoodPattern(
            dominant_mood=MoodLabel.HAPPY,
            frequency_map={MoodLabel.HAPPY: 2, MoodLabel.SAD: 1},
            average_intensity=6.0,
            trend=MoodTrend.IMPROVING,
            days_tracked=2,
            entry_count=3,
            intensity_by_mood={MoodLabel.HAPPY: 7.5, MoodLabel.SAD: 3.0},
        )

    @pytest.fixture
    def empty_pattern(self):
        return MoodPattern(
            dominant_mood=MoodLabel.UNKNOWN,
            frequency_map={},
            average_intensity=0.0,
            trend=MoodTrend.STABLE,
            days_tracked=0,
        )

    @pytest.fixture
    def mock_llm_client(self):
        client = Mock()
        client.generate_content_async = AsyncMock(return_value=llm_reply(json.dumps({
            "insight": "You've been mostly happy lately.",
            "recommendations": ["Keep a morning playlist"],
            "suggested_genres": ["pop", "funk"],
        })))
        return client

    @pytest.fixture
    def mock_rate_limiter(self):
        limiter = Mock()
        limiter.acquire = AsyncMock()
        limiter.get_current_usage = Mock(return_value={"service": "Gemini"})
        return limiter

    @pytest.fixture
    def generator(self, mock_llm_client, mock_rate_limiter):
        return InsightGenerator(llm_client=mock_llm_client, rate_limiter=mock_rate_limiter, timeout=1.0)

    @pytest.mark.asyncio
    async def test_ai_insight(self, generator, pattern, mock_rate_limiter):
        insight = await generator.generate_insight(pattern)

        assert insight.source is InsightSource.AI
        assert insight.text == "You've been mostly happy lately."
        assert insight.recommendations == ["Keep a morning playlist"]
        assert insight.suggested_genres == ["pop", "funk"]
        mock_rate_limiter.acquire.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_prompt_includes_pattern_fields(self, generator, pattern, mock_llm_client):
        await generator.generate_insight(pattern)

        prompt = mock_llm_client.generate_content_async.call_args.args[0]
        assert "Dominant mood: happy" in prompt
        assert "happy: 2, sad: 1" in prompt
        assert "Average intensity: 6.0/10" in prompt
        assert "Week-over-week trend: improving" in prompt
        assert "Days tracked: 2 (3 entries)" in prompt
        assert "Respond ONLY with valid JSON" in prompt

    @pytest.mark.asyncio
    async def test_fenced_json_is_accepted(self, generator, pattern, mock_llm_client):
        body = json.dumps({"insight": "Fenced reply.", "genres": ["jazz"]})
        mock_llm_client.generate_content_async.return_value = llm_reply(f"```json\n{body}\n```")

        insight = await generator.generate_insight(pattern)

        assert insight.source is InsightSource.AI
        assert insight.text == "Fenced reply."
        assert insight.suggested_genres == ["jazz"]

    @pytest.mark.asyncio
    async def test_llm_exception_falls_back_to_template(self, generator, pattern, mock_llm_client):
        mock_llm_client.generate_content_async.side_effect = RuntimeError("quota exhausted")

        insight = await generator.generate_insight(pattern)

        assert insight.source is InsightSource.TEMPLATE
        assert "happy" in insight.text

    @pytest.mark.asyncio
    async def test_invalid_json_falls_back_to_template(self, generator, pattern, mock_llm_client):
        mock_llm_client.generate_content_async.return_value = llm_reply("Sure! Here is your insight: you seem happy.")

        insight = await generator.generate_insight(pattern)

        assert insight.source is InsightSource.TEMPLATE

    @pytest.mark.asyncio
    async def test_schema_mismatch_falls_back_to_template(self, generator, pattern, mock_llm_client):
        mock_llm_client.generate_content_async.return_value = llm_reply(json.dumps({"summary": "wrong key"}))

        insight = await generator.generate_insight(pattern)

        assert insight.source is InsightSource.TEMPLATE

    @pytest.mark.asyncio
    async def test_non_object_json_falls_back_to_template(self, generator, pattern, mock_llm_client):
        mock_llm_client.generate_content_async.return_value = llm_reply(json.dumps(["a", "b"]))

        insight = await generator.generate_insight(pattern)

        assert insight.source is InsightSource.TEMPLATE

    @pytest.mark.asyncio
    async def test_timeout_falls_back_to_template(self, pattern, mock_llm_client):
        async def slow_reply(prompt):
            await asyncio.sleep(5)

        mock_llm_client.generate_content_async.side_effect = slow_reply
        generator = InsightGenerator(llm_client=mock_llm_client, timeout=0.01)

        insight = await generator.generate_insight(pattern)

        assert insight.source is InsightSource.TEMPLATE

    @pytest.mark.asyncio
    async def test_without_client_uses_template(self, pattern):
        generator = InsightGenerator()

        insight = await generator.generate_insight(pattern)

        assert insight.source is InsightSource.TEMPLATE
        assert not generator.is_available()

    @pytest.mark.asyncio
    async def test_empty_pattern_skips_llm(self, generator, empty_pattern, mock_llm_client):
        insight = await generator.generate_insight(empty_pattern)

        assert insight.source is InsightSource.TEMPLATE
        assert insight.text == START_LOGGING_TEXT
        mock_llm_client.generate_content_async.assert_not_called()

    @pytest.mark.asyncio
    async def test_pattern_without_entry_count_is_not_empty(self, generator, mock_llm_client):
        pattern = MoodPattern(
            dominant_mood=MoodLabel.HAPPY,
            frequency_map={MoodLabel.HAPPY: 2, MoodLabel.SAD: 1},
            average_intensity=6.0,
            trend=MoodTrend.STABLE,
            days_tracked=2,
        )
        mock_llm_client.generate_content_async.side_effect = RuntimeError("quota exhausted")

        insight = await generator.generate_insight(pattern)

        assert not pattern.is_empty
        assert pattern.entry_count == 3
        mock_llm_client.generate_content_async.assert_awaited_once()
        assert insight.source is InsightSource.TEMPLATE
        assert "happy (2 of 3 entries)" in insight.text

    @pytest.mark.asyncio
    async def test_sync_client_runs_in_executor(self, pattern):
        sync_client = Mock(spec=["generate_content"])
        sync_client.generate_content.return_value = llm_reply(json.dumps({"insight": "From a sync client."}))
        generator = InsightGenerator(llm_client=sync_client)

        insight = await generator.generate_insight(pattern)

        assert insight.source is InsightSource.AI
        assert insight.text == "From a sync client."

    def test_parse_rejects_non_text(self, generator):
        with pytest.raises(MalformedResponse):
            generator._parse_llm_response(None)

    def test_template_interpolates_pattern(self, generator, pattern):
        insight = generator.build_template_insight(pattern)

        assert insight.text == (
            "Across 2 days of tracking, your most frequent mood was happy (2 of 3 entries) "
            "with an average intensity of 6.0/10. Your mood intensity has been trending "
            "upward compared with the week before."
        )
        assert insight.recommendations == ["Try a playlist that matches a happy mood"]
        assert insight.suggested_genres == ["dance", "happy", "pop"]

    @pytest.mark.parametrize("trend", list(MoodTrend))
    def test_template_covers_every_trend(self, generator, pattern, trend):
        pattern.trend = trend

        insight = generator.build_template_insight(pattern)

        assert insight.text
        assert insight.source is InsightSource.TEMPLATE

    def test_template_for_unknown_dominant_mood(self, generator, pattern):
        pattern.dominant_mood = MoodLabel.UNKNOWN
        pattern.frequency_map = {MoodLabel.UNKNOWN: 3}

        insight = generator.build_template_insight(pattern)

        assert "unknown (3 of 3 entries)" in insight.text
        assert insight.suggested_genres == ["pop"]

    def test_service_status(self, generator):
        status = generator.get_service_status()

        assert status["llm_available"] is True
        assert status["rate_limiter_stats"] == {"service": "Gemini"}
