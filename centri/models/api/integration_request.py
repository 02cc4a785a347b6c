# models/api/integration_request.py
"""
Request models for integration endpoints.
"""

from pydantic import BaseModel, Field

from centri.features.integrations.domain.models import EventContext


class ClassifyEventRequest(BaseModel):
    """Calendar-shaped signals of one event."""

    title: str = Field(..., min_length=1, max_length=500, description="Event title")
    description: str | None = Field(default=None, max_length=10_000)
    attendee_count: int = Field(default=0, ge=0, description="Number of attendees")
    has_conference_link: bool = Field(default=False, description="Has a video-call link")
    is_self_organized: bool = Field(default=True, description="The user organizes the event")
    duration_minutes: int = Field(default=0, ge=0)

    def to_context(self) -> EventContext:
        return EventContext(
            title=self.title,
            description=self.description,
            attendee_count=self.attendee_count,
            has_conference_link=self.has_conference_link,
            is_self_organized=self.is_self_organized,
            duration_minutes=self.duration_minutes,
        )
