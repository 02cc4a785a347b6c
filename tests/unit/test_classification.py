"""
Tests for the two-tier event classifier.
"""

from unittest.mock import AsyncMock

import pytest

from centri.features.integrations.domain.models import EventContext
from centri.features.integrations.services.classification_service import (
    ClassificationService,
    apply_rules,
)
from centri.services.openai_service import TextGenerationError
from tests.conftest import FakeTextGeneration


def _ctx(title, attendees=1, conference=False, self_organized=True, minutes=30):
    return EventContext(
        title=title,
        attendee_count=attendees,
        has_conference_link=conference,
        is_self_organized=self_organized,
        duration_minutes=minutes,
    )


def _mock_ai(response=None):
    ai = AsyncMock()
    ai.is_available = True
    ai.generate_json.return_value = response or {"type": "task", "confidence": 0.7, "reason": "x"}
    return ai


@pytest.mark.asyncio
async def test_standup_keyword_is_meeting_without_ai():
    ai = _mock_ai()
    result = await ClassificationService(ai).classify(_ctx("Daily Standup", minutes=15))

    assert result.type == "meeting"
    assert result.confidence == 0.85
    ai.generate_json.assert_not_called()


@pytest.mark.asyncio
async def test_deep_work_block_is_task():
    ai = _mock_ai()
    result = await ClassificationService(ai).classify(_ctx("Deep Work: Coding", minutes=60))

    assert result.type == "task"
    assert result.confidence == 0.9
    assert ai.generate_json.await_count == 0


@pytest.mark.asyncio
async def test_ambiguous_event_without_ai_gets_fallback():
    result = await ClassificationService(None).classify(_ctx("Project X"))

    assert result.type == "meeting"
    assert result.confidence == 0.5
    assert result.reason == "fallback"


@pytest.mark.parametrize(
    "title",
    ["Project X", "Focus time", "Write launch memo", "", "Quarterly numbers"],
)
def test_many_attendees_always_meeting(title):
    result = apply_rules(_ctx(title, attendees=3))
    assert result.type == "meeting"
    assert result.confidence >= 0.95


def test_conference_link_is_meeting():
    result = apply_rules(_ctx("Focus", attendees=1, conference=True))
    assert (result.type, result.confidence) == ("meeting", 0.95)


def test_event_organized_by_someone_else_is_meeting():
    result = apply_rules(_ctx("Project X", self_organized=False))
    assert (result.type, result.confidence) == ("meeting", 0.9)


def test_review_counts_as_meeting_keyword():
    # "review" is both a meeting keyword and a task verb; the meeting branch runs first
    result = apply_rules(_ctx("Review deck"))
    assert (result.type, result.confidence) == ("meeting", 0.85)


@pytest.mark.parametrize(
    "title", ["Deep work", "Focus block", "Study session", "Personal errands"]
)
def test_time_blocks_are_confident_tasks(title):
    result = apply_rules(_ctx(title))
    assert result.type == "task"
    assert result.confidence >= 0.85


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "ctx",
    [
        _ctx("Anything", attendees=2),
        _ctx("Anything", conference=True),
        _ctx("Anything", self_organized=False),
        _ctx("Customer call"),
        _ctx("Finish report"),
    ],
)
async def test_confident_rules_never_call_ai(ctx):
    ai = _mock_ai()
    await ClassificationService(ai).classify(ctx)
    assert ai.generate_json.await_count == 0


@pytest.mark.asyncio
async def test_ambiguous_event_uses_ai_verdict():
    ai = FakeTextGeneration({"type": "task", "confidence": 0.72, "reason": "solo work"})
    result = await ClassificationService(ai).classify(_ctx("Project X"))

    assert (result.type, result.confidence, result.reason) == ("task", 0.72, "solo work")
    assert len(ai.calls) == 1
    assert "Project X" in ai.calls[0][1]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        {"type": "lunch", "confidence": 0.9},
        {"type": "task", "confidence": 1.7},
        {"type": "task", "confidence": "high"},
        {"type": "task"},
    ],
)
async def test_malformed_ai_output_falls_back(response):
    ai = FakeTextGeneration(response)
    result = await ClassificationService(ai).classify(_ctx("Project X"))

    assert (result.type, result.confidence, result.reason) == ("meeting", 0.5, "fallback")


@pytest.mark.asyncio
async def test_ai_error_falls_back():
    ai = FakeTextGeneration(error=TextGenerationError("boom"))
    result = await ClassificationService(ai).classify(_ctx("Project X"))

    assert (result.type, result.confidence) == ("meeting", 0.5)
