from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, tzinfo
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

MEETING_LINK_SENTINEL = "MEETING_LINK_PRESENT_BUT_NOT_EXTRACTED"


@dataclass
class Attendee:
    name: str | None = None
    email: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "email": self.email}

    @classmethod
    def from_payload(cls, payload: Any) -> Attendee | None:
        if isinstance(payload, str):
            email = _normalize_email(payload)
            return cls(email=email) if email else None
        if not isinstance(payload, dict):
            return None
        name = _normalize_optional_text(payload.get("name"))
        email = _normalize_email(payload.get("email"))
        if not name and not email:
            return None
        return cls(name=name, email=email)


@dataclass
class LocationDetails:
    name: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    is_well_known_place: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "country": self.country,
            "is_well_known_place": self.is_well_known_place,
        }

    def is_empty(self) -> bool:
        return not any((self.name, self.address, self.city, self.state, self.country))

    @classmethod
    def from_payload(cls, payload: Any) -> LocationDetails | None:
        if not isinstance(payload, dict):
            return None
        details = cls(
            name=_normalize_optional_text(payload.get("name")),
            address=_normalize_optional_text(payload.get("address")),
            city=_normalize_optional_text(payload.get("city")),
            state=_normalize_optional_text(payload.get("state")),
            country=_normalize_optional_text(payload.get("country")),
            is_well_known_place=_normalize_bool(
                payload.get("isWellKnownPlace", payload.get("is_well_known_place")),
            ),
        )
        if details.is_empty():
            return None
        return details


@dataclass
class EventRecord:
    title: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    start_date_text: str | None = None
    end_date_text: str | None = None
    location: str | None = None
    location_details: LocationDetails | None = None
    description: str | None = None
    meeting_link: str | None = None
    attendees: list[Attendee] = field(default_factory=list)
    timezone: str | None = None
    meeting_type: str | None = None
    is_recurring: bool = False
    recurrence_pattern: str | None = None
    warnings: list[str] = field(default_factory=list)

    def add_warning(self, message: str) -> None:
        if message not in self.warnings:
            self.warnings.append(message)

    def has_resolved_meeting_link(self) -> bool:
        return bool(self.meeting_link) and self.meeting_link != MEETING_LINK_SENTINEL

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "start_date": _isoformat_utc(self.start_date),
            "end_date": _isoformat_utc(self.end_date),
            "location": self.location,
            "location_details": (
                self.location_details.to_dict() if self.location_details else None
            ),
            "description": self.description,
            "meeting_link": self.meeting_link,
            "attendees": [attendee.to_dict() for attendee in self.attendees],
            "timezone": self.timezone,
            "meeting_type": self.meeting_type,
            "is_recurring": self.is_recurring,
            "recurrence_pattern": self.recurrence_pattern,
            "warnings": list(self.warnings),
        }

    @classmethod
    def from_payload(
        cls,
        payload: dict[str, Any],
        *,
        default_timezone: str = "UTC",
    ) -> EventRecord:
        event_timezone = _normalize_optional_text(
            _first_present(payload, "timezone", "timeZone", "time_zone"),
        )
        parse_zone = resolve_zone(event_timezone or default_timezone)
        start_text = _normalize_date_text(
            _first_present(payload, "startDate", "start_date", "start"),
        )
        end_text = _normalize_date_text(
            _first_present(payload, "endDate", "end_date", "end"),
        )

        attendees: list[Attendee] = []
        raw_attendees = payload.get("attendees")
        if isinstance(raw_attendees, list):
            for raw_attendee in raw_attendees:
                attendee = Attendee.from_payload(raw_attendee)
                if attendee:
                    attendees.append(attendee)

        return cls(
            title=_normalize_optional_text(_first_present(payload, "title", "summary")),
            start_date=parse_instant(start_text, zone=parse_zone),
            end_date=parse_instant(end_text, zone=parse_zone),
            start_date_text=start_text,
            end_date_text=end_text,
            location=_normalize_optional_text(payload.get("location")),
            location_details=LocationDetails.from_payload(
                _first_present(payload, "locationDetails", "location_details"),
            ),
            description=_normalize_optional_text(payload.get("description")),
            meeting_link=_normalize_optional_text(
                _first_present(payload, "meetingLink", "meeting_link"),
            ),
            attendees=attendees,
            timezone=event_timezone,
            meeting_type=_normalize_optional_text(
                _first_present(payload, "meetingType", "meeting_type"),
            ),
            is_recurring=_normalize_bool(_first_present(payload, "isRecurring", "is_recurring")),
            recurrence_pattern=_normalize_optional_text(
                _first_present(payload, "recurrencePattern", "recurrence_pattern"),
            ),
        )


@dataclass
class ExtractionContext:
    reference_now: datetime
    timezone: str = "UTC"

    @property
    def zone(self) -> tzinfo:
        return resolve_zone(self.timezone)


@dataclass
class ExtractionResult:
    has_event: bool
    events: list[EventRecord] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)

    @classmethod
    def no_event(cls) -> ExtractionResult:
        return cls(has_event=False)


def resolve_zone(label: str | None) -> tzinfo:
    if not label or not label.strip():
        return UTC
    cleaned = label.strip()
    if cleaned.upper() in {"UTC", "GMT", "Z"}:
        return UTC
    try:
        return ZoneInfo(cleaned)
    except (ZoneInfoNotFoundError, ValueError):
        return UTC


def parse_instant(raw_value: str | None, *, zone: tzinfo = UTC) -> datetime | None:
    if not raw_value:
        return None
    normalized = raw_value.strip()
    if normalized.endswith(("Z", "z")):
        normalized = normalized[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(normalized)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=zone)
    return parsed.astimezone(UTC)


def _isoformat_utc(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


def _first_present(payload: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in payload and payload[key] is not None:
            return payload[key]
    return None


def _normalize_optional_text(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    cleaned = value.strip()
    if not cleaned or cleaned.lower() in {"null", "none", "not specified"}:
        return None
    return cleaned


def _normalize_date_text(value: Any) -> str | None:
    if value is None or isinstance(value, str):
        return _normalize_optional_text(value)
    return str(value)


def _normalize_email(value: Any) -> str | None:
    text = _normalize_optional_text(value)
    if not text:
        return None
    if text.lower().startswith("mailto:"):
        text = text[len("mailto:") :].strip()
    if "@" not in text or any(char.isspace() for char in text):
        return None
    return text


def _normalize_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"true", "1", "yes"}
    return False
