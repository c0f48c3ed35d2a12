from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from uuid import uuid4

from calextract.services.event_models import EventRecord

MAX_LINE_OCTETS = 75
CRLF = "\r\n"
PRODUCT_ID = "-//Calextract//Event Extractor//EN"
UID_DOMAIN = "calextract.local"
DEFAULT_TITLE = "No Title"


def encode(
    batch: Sequence[EventRecord],
    *,
    generated_at: datetime | None = None,
    uid_factory: Callable[[], str] | None = None,
) -> str:
    """Serialize validated events into one iCalendar (RFC 5545) document.

    Every content line is folded at 75 octets and terminated with CRLF.
    """
    stamp = format_ical_datetime(generated_at or datetime.now(UTC))
    make_uid = uid_factory or _default_uid

    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{PRODUCT_ID}",
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
        "X-WR-CALNAME:Calendar Invitation",
        "X-WR-TIMEZONE:UTC",
    ]
    for record in batch:
        lines.extend(_event_lines(record, stamp=stamp, uid=make_uid()))
    lines.append("END:VCALENDAR")
    return "".join(fold_line(line) + CRLF for line in lines)


def escape_text(value: str | None) -> str:
    if not value:
        return ""
    return (
        value.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\n", "\\n")
        .replace("\r", "\\r")
    )


def fold_line(line: str) -> str:
    """Fold *line* into 75-octet segments joined by CRLF + one space.

    Segments never split a multi-byte UTF-8 character.
    """
    if len(line.encode("utf-8")) <= MAX_LINE_OCTETS:
        return line

    segments: list[str] = []
    current = ""
    current_octets = 0
    limit = MAX_LINE_OCTETS
    for char in line:
        char_octets = len(char.encode("utf-8"))
        if current_octets + char_octets > limit:
            segments.append(current)
            current = ""
            current_octets = 0
            # continuation lines spend one octet on the leading space
            limit = MAX_LINE_OCTETS - 1
        current += char
        current_octets += char_octets
    segments.append(current)
    return (CRLF + " ").join(segments)


def format_ical_datetime(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime("%Y%m%dT%H%M%SZ")


def build_location_text(record: EventRecord) -> str:
    details = record.location_details
    if details is not None:
        parts: list[str] = []
        if details.name:
            parts.append(details.name)
        if details.address:
            parts.append(details.address)
        else:
            address_parts = [part for part in (details.city, details.state, details.country) if part]
            if address_parts:
                parts.append(", ".join(address_parts))
        if parts:
            return ", ".join(parts)
    return record.location or ""


def _event_lines(record: EventRecord, *, stamp: str, uid: str) -> list[str]:
    if record.start_date is None or record.end_date is None:
        raise ValueError("Cannot encode an event without start and end instants.")

    lines = [
        "BEGIN:VEVENT",
        f"UID:{uid}",
        f"DTSTAMP:{stamp}",
        f"DTSTART:{format_ical_datetime(record.start_date)}",
        f"DTEND:{format_ical_datetime(record.end_date)}",
        f"SUMMARY:{escape_text(record.title or DEFAULT_TITLE)}",
        f"DESCRIPTION:{escape_text(record.description)}",
        f"LOCATION:{escape_text(build_location_text(record))}",
    ]
    if record.has_resolved_meeting_link() and _looks_like_uri(record.meeting_link):
        lines.append(f"URL:{record.meeting_link}")
    lines.extend(["STATUS:CONFIRMED", "SEQUENCE:0", "TRANSP:OPAQUE"])

    attendees = [attendee for attendee in record.attendees if attendee.email]
    if record.attendees and record.attendees[0].email:
        organizer = record.attendees[0]
        lines.append(
            f'ORGANIZER;CN="{_common_name(organizer.name, organizer.email)}":mailto:{organizer.email}',
        )
    for attendee in attendees:
        lines.append(
            f'ATTENDEE;CN="{_common_name(attendee.name, attendee.email)}";ROLE=REQ-PARTICIPANT;'
            f"PARTSTAT=NEEDS-ACTION;RSVP=TRUE:mailto:{attendee.email}",
        )

    if record.timezone:
        lines.append(f"X-ORIGINAL-TIMEZONE:{escape_text(record.timezone)}")
    lines.append("END:VEVENT")
    return lines


def _common_name(name: str | None, email: str) -> str:
    raw_name = name or email.split("@")[0]
    # quoted parameter values may not contain DQUOTE or control characters
    cleaned = "".join(char for char in raw_name if char != '"' and ord(char) >= 0x20 and char != "\x7f")
    return cleaned.strip() or email.split("@")[0]


def _looks_like_uri(value: str | None) -> bool:
    if not value:
        return False
    return value.lower().startswith(("http://", "https://")) and not any(
        char.isspace() for char in value
    )


def _default_uid() -> str:
    return f"{uuid4()}@{UID_DOMAIN}"
