from datetime import datetime

from pydantic import BaseModel, Field

MIN_TEXT_LENGTH = 10
MAX_TEXT_LENGTH = 25000


class EventExtractionRequest(BaseModel):
    text: str = Field(min_length=MIN_TEXT_LENGTH, max_length=MAX_TEXT_LENGTH)
    reference_now: datetime | None = None
    timezone: str | None = None


class EventAttendee(BaseModel):
    name: str | None = None
    email: str | None = None


class EventLocationDetails(BaseModel):
    name: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    is_well_known_place: bool = False


class ExtractedEvent(BaseModel):
    title: str | None = None
    start_date: datetime
    end_date: datetime
    location: str | None = None
    location_details: EventLocationDetails | None = None
    description: str | None = None
    meeting_link: str | None = None
    attendees: list[EventAttendee] = Field(default_factory=list)
    timezone: str | None = None
    meeting_type: str | None = None
    is_recurring: bool = False
    recurrence_pattern: str | None = None
    warnings: list[str] = Field(default_factory=list)


class EventExtractionResponse(BaseModel):
    has_event: bool
    events: list[ExtractedEvent] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
    ics_content: str | None = None


class IcsDownloadRequest(BaseModel):
    ics_content: str = ""
