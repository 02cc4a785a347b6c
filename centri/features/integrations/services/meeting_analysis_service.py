"""
Out-of-band transcript analysis for meetings.

Sync hands newly stored meetings with a transcript to `schedule`, which
starts an asyncio task and returns immediately. Whatever happens in that
task is confined to the meeting row: success stores the analysis with
status `processed`, any failure sets `failed`.
"""

import asyncio
from typing import Any

from centri.features.integrations.domain.models import FAILED, PROCESSED, MeetingAnalysis
from centri.features.integrations.repository.sync_repository import SyncRepository
from centri.infrastructure.observability.logging import get_logger
from centri.services.openai_service import TextGenerationService

logger = get_logger(__name__)

TRANSCRIPT_MAX_CHARS = 24_000

ANALYSIS_PROMPT = """You analyze meeting transcripts for a busy executive.
Return JSON only:
{
  "summary": "3-5 sentence summary",
  "decisions": ["decision", ...],
  "action_items": [{"description": "...", "owner": "name or null", "due_date": "YYYY-MM-DD or null"}]
}"""


def parse_analysis(raw: dict[str, Any]) -> MeetingAnalysis:
    summary = raw.get("summary")
    if not isinstance(summary, str) or not summary.strip():
        raise ValueError("Analysis has no summary")

    decisions = [str(d) for d in (raw.get("decisions") or []) if d]
    action_items = []
    for item in raw.get("action_items") or []:
        if isinstance(item, dict) and item.get("description"):
            action_items.append(
                {
                    "description": str(item["description"]),
                    "owner": item.get("owner"),
                    "due_date": item.get("due_date"),
                }
            )
    return MeetingAnalysis(summary=summary.strip(), decisions=decisions, action_items=action_items)


class MeetingAnalysisService:
    def __init__(
        self,
        meetings: SyncRepository,
        text_generation: TextGenerationService | None = None,
    ):
        self.meetings = meetings
        self.text_generation = text_generation
        # Running tasks are referenced here until done so they aren't collected
        self._tasks: set[asyncio.Task] = set()

    def schedule(self, tenant_id: str, meeting_id: str) -> asyncio.Task:
        task = asyncio.create_task(self.analyze(tenant_id, meeting_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.debug("Meeting analysis scheduled", tenant_id=tenant_id, meeting_id=meeting_id)
        return task

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for in-flight analyses; used on shutdown."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def analyze(self, tenant_id: str, meeting_id: str) -> bool:
        """
        Analyze one meeting's transcript and store the result.

        Returns:
            True when an analysis was stored, False otherwise
        """
        try:
            meeting = await self.meetings.get_meeting(tenant_id, meeting_id)
            if meeting is None:
                logger.warning("Meeting to analyze not found", tenant_id=tenant_id, meeting_id=meeting_id)
                return False
            if not meeting.transcript:
                await self.meetings.set_meeting_status(meeting_id, PROCESSED)
                return False
            if not self.text_generation or not self.text_generation.is_available:
                raise RuntimeError("Text generation not configured")

            raw = await self.text_generation.generate_json(
                ANALYSIS_PROMPT,
                f"Meeting: {meeting.title}\n\nTranscript:\n{meeting.transcript[:TRANSCRIPT_MAX_CHARS]}",
            )
            analysis = parse_analysis(raw)
            await self.meetings.save_meeting_analysis(meeting_id, analysis)
        except Exception as e:
            logger.error(
                "Meeting analysis failed",
                tenant_id=tenant_id,
                meeting_id=meeting_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            await self._mark_failed(tenant_id, meeting_id)
            return False

        logger.info(
            "Meeting analyzed",
            tenant_id=tenant_id,
            meeting_id=meeting_id,
            decision_count=len(analysis.decisions),
            action_item_count=len(analysis.action_items),
        )
        return True

    async def _mark_failed(self, tenant_id: str, meeting_id: str) -> None:
        try:
            await self.meetings.set_meeting_status(meeting_id, FAILED)
        except Exception as e:
            logger.error(
                "Could not mark meeting analysis failed",
                tenant_id=tenant_id,
                meeting_id=meeting_id,
                error=str(e),
            )
