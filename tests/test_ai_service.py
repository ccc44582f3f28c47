"""
Tests for the OpenAI content generator and AI response schemas.
"""

import asyncio
import json
from datetime import datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from openai import OpenAIError

from focusflow.core.engine import ProgressContext
from focusflow.core.models import ChatMessage, Goal, FocusSession
from focusflow.services.ai_service import (
    FALLBACK_REST, FALLBACK_STRATEGY, FALLBACK_SUMMARY,
    CoachContext, GenerationFailure, OpenAIContentGenerator,
)
from focusflow.services.schemas import parse_task_descriptors, strip_code_fences

from tests.helpers import make_plan, make_task


def completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def stream_chunk(content):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=content))])


class FakeStream:
    """Async iterable standing in for an OpenAI stream."""

    def __init__(self, chunks, error=None, stall=False):
        self.chunks = chunks
        self.error = error
        self.stall = stall
        self.closed = False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for chunk in self.chunks:
            yield chunk
        if self.stall:
            await asyncio.sleep(60)
        if self.error:
            raise self.error

    async def close(self):
        self.closed = True


@pytest.fixture
def client():
    mock = MagicMock()
    mock.chat.completions.create = AsyncMock()
    return mock


@pytest.fixture
def ai(client):
    return OpenAIContentGenerator(client=client, model="test-model", analysis_model="test-analysis")


@pytest.fixture
def goal():
    return Goal(text="Learn guitar", strategy="", created_at=1)


class TestSchemas:

    def test_strip_code_fences(self):
        assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
        assert strip_code_fences('{"a": 1}') == '{"a": 1}'

    def test_task_descriptors_drop_bad_items(self):
        descriptors = parse_task_descriptors({"tasks": [
            {"text": "  Tune the strings ", "priority": "HIGH", "category": "Setup"},
            {"text": "", "priority": "Low"},
            {"priority": "Low"},
            "not an object",
            {"text": "Learn a chord", "priority": "Critical", "category": "  "},
        ]})

        assert [(d.text, d.priority, d.category) for d in descriptors] == [
            ("Tune the strings", "High", "Setup"),
            ("Learn a chord", "Medium", None),
        ]

    def test_bare_list_and_garbage(self):
        assert len(parse_task_descriptors([{"text": "One"}])) == 1
        assert parse_task_descriptors("tasks") == []


class TestDailyTasks:

    @pytest.mark.asyncio
    async def test_parses_json_response(self, ai, client, goal):
        client.chat.completions.create.return_value = completion(json.dumps({"tasks": [
            {"text": "Tune the strings", "priority": "High", "category": "Setup"},
            {"text": "Practice C major", "priority": "Medium", "category": "Chords"},
        ]}))

        descriptors = await ai.generate_daily_tasks(goal, ProgressContext(day_number=3, recent_completed_tasks=["Buy picks"]))

        assert [d.text for d in descriptors] == ["Tune the strings", "Practice C major"]
        kwargs = client.chat.completions.create.await_args.kwargs
        assert kwargs["model"] == "test-analysis"
        assert kwargs["response_format"] == {"type": "json_object"}
        prompt = kwargs["messages"][-1]["content"]
        assert "Day 3" in prompt
        assert "- Buy picks" in prompt

    @pytest.mark.asyncio
    async def test_malformed_json_is_failure(self, ai, client, goal):
        client.chat.completions.create.return_value = completion("Here are your tasks!")

        with pytest.raises(GenerationFailure):
            await ai.generate_daily_tasks(goal, ProgressContext(day_number=1))

    @pytest.mark.asyncio
    async def test_provider_error_is_failure(self, ai, client, goal):
        client.chat.completions.create.side_effect = OpenAIError("rate limited")

        with pytest.raises(GenerationFailure):
            await ai.generate_daily_tasks(goal, ProgressContext(day_number=1))
        assert ai.stats.failed_requests == 1


class TestTextFallbacks:

    @pytest.mark.asyncio
    async def test_strategy_fallback(self, ai, client):
        client.chat.completions.create.side_effect = OpenAIError("down")
        assert await ai.generate_goal_strategy("Learn guitar") == FALLBACK_STRATEGY

    @pytest.mark.asyncio
    async def test_summary(self, ai, client, goal):
        client.chat.completions.create.return_value = completion("  Nice job!  ")
        plan = make_plan("2024-03-15", make_task("a", completed=True), make_task("b"))

        assert await ai.generate_daily_summary(plan, goal) == "Nice job!"
        prompt = client.chat.completions.create.await_args.kwargs["messages"][-1]["content"]
        assert "completed 1 out of 2 tasks" in prompt

    @pytest.mark.asyncio
    async def test_disabled_generator(self, goal):
        ai = OpenAIContentGenerator(api_key=None)

        assert not ai.enabled
        assert await ai.generate_daily_summary(make_plan("2024-03-15"), goal) == FALLBACK_SUMMARY
        assert await ai.suggest_rest() == FALLBACK_REST
        with pytest.raises(GenerationFailure):
            await ai.generate_daily_tasks(goal, ProgressContext(day_number=1))


class TestPsychoProfile:

    @pytest.mark.asyncio
    async def test_builds_profile_for_month(self, ai, client):
        client.chat.completions.create.return_value = completion(json.dumps({
            "strengths": ["Consistent mornings"],
            "growthAreas": ["Long tasks"],
            "productivityPatterns": "Most done before noon.",
            "overallSummary": "Solid month.",
        }))

        profile = await ai.generate_psycho_profile({"dailyPlans": []}, now=datetime(2024, 3, 15))

        assert profile.month == "March"
        assert profile.year == 2024
        assert profile.growth_areas == ["Long tasks"]

    @pytest.mark.asyncio
    async def test_bad_profile_is_none(self, ai, client):
        client.chat.completions.create.return_value = completion('{"strengths": "everything"}')
        assert await ai.generate_psycho_profile({"dailyPlans": []}) is None


class TestCoachStream:

    @pytest.mark.asyncio
    async def test_streams_deltas(self, ai, client):
        stream = FakeStream([stream_chunk("Hi"), stream_chunk(None), stream_chunk(" there")])
        client.chat.completions.create.return_value = stream
        history = [ChatMessage.user("Hello"), ChatMessage.model("Hey"), ChatMessage.user("Help")]

        parts = [part async for part in ai.stream_coach_response(history, CoachContext(tasks_total=3))]

        assert parts == ["Hi", " there"]
        assert stream.closed
        messages = client.chat.completions.create.await_args.kwargs["messages"]
        assert [m["role"] for m in messages] == ["system", "user", "assistant", "user"]
        assert "3 total" in messages[0]["content"]

    @pytest.mark.asyncio
    async def test_broken_stream_is_failure(self, ai, client):
        stream = FakeStream([stream_chunk("Hi")], error=OpenAIError("connection reset"))
        client.chat.completions.create.return_value = stream

        with pytest.raises(GenerationFailure):
            _ = [part async for part in ai.stream_coach_response([ChatMessage.user("Hello")], CoachContext())]
        assert stream.closed

    @pytest.mark.asyncio
    async def test_stalled_stream_is_failure(self, client):
        ai = OpenAIContentGenerator(client=client, timeout=0.05)
        stream = FakeStream([stream_chunk("Hi")], stall=True)
        client.chat.completions.create.return_value = stream

        parts = []
        with pytest.raises(GenerationFailure):
            async for part in ai.stream_coach_response([ChatMessage.user("Hello")], CoachContext()):
                parts.append(part)

        assert parts == ["Hi"]
        assert stream.closed
        assert ai.stats.failed_requests == 1

    @pytest.mark.asyncio
    async def test_request_timeout_is_failure(self, ai, client):
        client.chat.completions.create.side_effect = asyncio.TimeoutError()

        with pytest.raises(GenerationFailure):
            _ = [part async for part in ai.stream_coach_response([ChatMessage.user("Hello")], CoachContext())]


class TestCoachContext:

    def test_describe_with_session(self):
        session = FocusSession(id="s1", start_time=1710496800000, duration=25, completed=True)
        text = CoachContext(tasks_total=4, tasks_completed=1, last_session=session).describe("UTC")

        assert "4 total, with 1 completed" in text
        assert "25 minutes, started at 10:00" in text

    def test_describe_without_session(self):
        assert "No recent focus sessions." in CoachContext().describe()
