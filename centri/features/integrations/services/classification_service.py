"""
Event classifier: decides whether a calendar-shaped record is a meeting
or a time-blocked task.

Cheap deterministic rules run first. Only verdicts at or below the
escalation threshold are sent to the text generation capability, and any
failure there yields the fixed fallback verdict.
"""

from centri.features.integrations.domain.models import (
    MEETING,
    TASK,
    ClassificationResult,
    EventContext,
)
from centri.infrastructure.observability.logging import get_logger
from centri.services.openai_service import TextGenerationService

logger = get_logger(__name__)

MEETING_KEYWORDS = (
    "call",
    "meeting",
    "sync",
    "standup",
    "interview",
    "review",
    "demo",
    "check-in",
    "1:1",
    "townhall",
)
TASK_VERBS = (
    "work on",
    "finish",
    "submit",
    "write",
    "review",
    "prepare",
    "follow up",
    "send",
    "plan",
)
TIME_BLOCKING_KEYWORDS = ("focus", "deep work", "personal", "admin", "study", "reading")

ESCALATION_THRESHOLD = 0.8
FALLBACK_CONFIDENCE = 0.5


def fallback_result() -> ClassificationResult:
    """Fixed verdict when the AI tier is unavailable or fails."""
    return ClassificationResult(type=MEETING, confidence=FALLBACK_CONFIDENCE, reason="fallback")


SYSTEM_PROMPT = """You are an executive assistant AI.
Classify the calendar event as either "meeting" or "task".

Rules:
- Meetings involve other people or real-time interaction.
- Tasks are solo work, reminders, or deadlines.

Return ONLY valid JSON in this format:
{"type": "meeting | task", "confidence": 0.0-1.0, "reason": "short explanation"}"""


def _contains_any(text: str, keywords: tuple[str, ...]) -> bool:
    return any(k in text for k in keywords)


def apply_rules(ctx: EventContext) -> ClassificationResult:
    """Rule tier. Deterministic, never calls out."""
    title = (ctx.title or "").lower().strip()
    has_meeting_keyword = _contains_any(title, MEETING_KEYWORDS)

    if ctx.attendee_count > 1 or ctx.has_conference_link:
        return ClassificationResult(MEETING, 0.95, "Has multiple attendees or conference link")
    if not ctx.is_self_organized:
        return ClassificationResult(MEETING, 0.9, "Organized by someone else")
    if has_meeting_keyword:
        return ClassificationResult(MEETING, 0.85, "Matched meeting keyword")

    if ctx.attendee_count <= 1 and not ctx.has_conference_link:
        if _contains_any(title, TASK_VERBS) or _contains_any(title, TIME_BLOCKING_KEYWORDS):
            return ClassificationResult(TASK, 0.9, "Solo event with task keywords")

    return ClassificationResult(MEETING, 0.4, "Ambiguous, defaulting to meeting")


class ClassificationService:
    """Two-tier classifier over EventContext."""

    def __init__(self, text_generation: TextGenerationService | None = None):
        self.text_generation = text_generation

    async def classify(self, ctx: EventContext) -> ClassificationResult:
        """
        Classify one event. Never raises.

        Args:
            ctx: Contextual signals of the event

        Returns:
            ClassificationResult from the rule tier when it is confident
            (> 0.8), otherwise the AI verdict or the fixed fallback.
        """
        rule_result = apply_rules(ctx)
        if rule_result.confidence > ESCALATION_THRESHOLD:
            return rule_result

        if not self.text_generation or not self.text_generation.is_available:
            logger.debug("AI classification unavailable, using fallback", title=ctx.title[:60])
            return fallback_result()

        try:
            raw = await self.text_generation.generate_json(SYSTEM_PROMPT, _describe(ctx))
            return _parse_ai_result(raw)
        except Exception as e:
            logger.warning(
                "AI classification failed, using fallback",
                error=str(e),
                error_type=type(e).__name__,
            )
            return fallback_result()


def _describe(ctx: EventContext) -> str:
    return (
        "Event:\n"
        f"Title: {ctx.title}\n"
        f"Description: {ctx.description or ''}\n"
        f"Attendees count: {ctx.attendee_count}\n"
        f"Has video link: {str(ctx.has_conference_link).lower()}\n"
        f"Organizer is user: {str(ctx.is_self_organized).lower()}\n"
        f"Duration minutes: {ctx.duration_minutes}"
    )


def _parse_ai_result(raw: dict) -> ClassificationResult:
    verdict = str(raw.get("type", "")).strip().lower()
    if verdict not in (MEETING, TASK):
        raise ValueError(f"Unexpected classification type: {raw.get('type')!r}")

    confidence = float(raw.get("confidence"))
    if not 0.0 <= confidence <= 1.0:
        raise ValueError(f"Confidence out of range: {confidence}")

    reason = raw.get("reason")
    return ClassificationResult(
        type=verdict,
        confidence=confidence,
        reason=str(reason) if reason else "AI classification",
    )
