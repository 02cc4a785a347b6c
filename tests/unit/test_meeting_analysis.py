"""
Tests for out-of-band transcript analysis.
"""

from datetime import UTC, datetime

import pytest

from centri.features.integrations.domain.models import ClassificationResult, NormalizedMeeting
from centri.features.integrations.services.meeting_analysis_service import (
    MeetingAnalysisService,
    parse_analysis,
)
from tests.conftest import TENANT_ID, FakeTextGeneration

ANALYSIS = {
    "summary": "  Reviewed the Q4 pipeline.  ",
    "decisions": ["Hire two AEs", ""],
    "action_items": [
        {"description": "Send forecast", "owner": "Dana", "due_date": "2026-10-21"},
        {"owner": "nobody"},
        "not an item",
    ],
}


async def _store_meeting(sync_repo, transcript="Dana: the pipeline looks healthy"):
    meeting = NormalizedMeeting(
        calendar_event_id="ev-1",
        title="Pipeline review",
        source="zoom",
        start_time=datetime(2026, 10, 18, 9, 0, tzinfo=UTC),
        transcript=transcript,
    )
    outcome = await sync_repo.upsert_meeting(
        TENANT_ID, meeting, ClassificationResult("meeting", 0.95, "attendees"), "processing"
    )
    return outcome.id


def _status(sync_repo):
    [row] = sync_repo.meetings.values()
    return row["processing_status"]


def test_parse_analysis_keeps_well_formed_parts():
    analysis = parse_analysis(ANALYSIS)

    assert analysis.summary == "Reviewed the Q4 pipeline."
    assert analysis.decisions == ["Hire two AEs"]
    assert analysis.action_items == [
        {"description": "Send forecast", "owner": "Dana", "due_date": "2026-10-21"}
    ]


def test_parse_analysis_requires_summary():
    with pytest.raises(ValueError):
        parse_analysis({"decisions": ["x"]})


@pytest.mark.asyncio
async def test_analysis_stored_and_marked_processed(sync_repo):
    meeting_id = await _store_meeting(sync_repo)
    ai = FakeTextGeneration(ANALYSIS)

    assert await MeetingAnalysisService(sync_repo, ai).analyze(TENANT_ID, meeting_id) is True

    assert _status(sync_repo) == "processed"
    assert sync_repo.analyses[meeting_id].summary == "Reviewed the Q4 pipeline."
    assert "Pipeline review" in ai.calls[0][1]


@pytest.mark.asyncio
async def test_generation_error_marks_failed(sync_repo):
    meeting_id = await _store_meeting(sync_repo)
    ai = FakeTextGeneration(error=RuntimeError("model overloaded"))

    assert await MeetingAnalysisService(sync_repo, ai).analyze(TENANT_ID, meeting_id) is False
    assert _status(sync_repo) == "failed"


@pytest.mark.asyncio
async def test_malformed_output_marks_failed(sync_repo):
    meeting_id = await _store_meeting(sync_repo)
    ai = FakeTextGeneration({"decisions": []})

    assert await MeetingAnalysisService(sync_repo, ai).analyze(TENANT_ID, meeting_id) is False
    assert _status(sync_repo) == "failed"


@pytest.mark.asyncio
async def test_without_text_generation_marks_failed(sync_repo):
    meeting_id = await _store_meeting(sync_repo)

    assert await MeetingAnalysisService(sync_repo, None).analyze(TENANT_ID, meeting_id) is False
    assert _status(sync_repo) == "failed"


@pytest.mark.asyncio
async def test_meeting_without_transcript_is_processed(sync_repo):
    meeting_id = await _store_meeting(sync_repo, transcript=None)
    ai = FakeTextGeneration(ANALYSIS)

    assert await MeetingAnalysisService(sync_repo, ai).analyze(TENANT_ID, meeting_id) is False
    assert _status(sync_repo) == "processed"
    assert ai.calls == []


@pytest.mark.asyncio
async def test_other_tenants_meeting_is_not_analyzed(sync_repo):
    meeting_id = await _store_meeting(sync_repo)
    ai = FakeTextGeneration(ANALYSIS)

    assert await MeetingAnalysisService(sync_repo, ai).analyze("someone-else", meeting_id) is False
    assert _status(sync_repo) == "processing"


@pytest.mark.asyncio
async def test_schedule_and_drain(sync_repo):
    meeting_id = await _store_meeting(sync_repo)
    service = MeetingAnalysisService(sync_repo, FakeTextGeneration(ANALYSIS))

    service.schedule(TENANT_ID, meeting_id)
    assert service.pending == 1
    await service.drain()

    assert service.pending == 0
    assert _status(sync_repo) == "processed"
