from datetime import UTC, datetime

import pytest
from icalendar import Calendar

from calextract.services.event_models import (
    MEETING_LINK_SENTINEL,
    Attendee,
    EventRecord,
    LocationDetails,
)
from calextract.services.ics_encoder import (
    MAX_LINE_OCTETS,
    build_location_text,
    encode,
    escape_text,
    fold_line,
    format_ical_datetime,
)

GENERATED_AT = datetime(2025, 6, 10, 8, 30, tzinfo=UTC)


def _record(**overrides: object) -> EventRecord:
    values: dict[str, object] = {
        "title": "Design review",
        "start_date": datetime(2025, 6, 11, 14, 0, tzinfo=UTC),
        "end_date": datetime(2025, 6, 11, 15, 0, tzinfo=UTC),
    }
    values.update(overrides)
    return EventRecord(**values)  # type: ignore[arg-type]


def _encode(*records: EventRecord) -> str:
    uids = iter(f"uid-{index}@calextract.local" for index in range(len(records)))
    return encode(list(records), generated_at=GENERATED_AT, uid_factory=lambda: next(uids))


def _property_value(document: str, name: str) -> str:
    for line in document.replace("\r\n ", "").split("\r\n"):
        if line.startswith(f"{name}:"):
            return line[len(name) + 1 :]
    raise AssertionError(f"{name} not found")


def _unescape(value: str) -> str:
    replacements = {"\\": "\\", ";": ";", ",": ",", "n": "\n", "N": "\n", "r": "\r"}
    output: list[str] = []
    index = 0
    while index < len(value):
        char = value[index]
        if char == "\\" and index + 1 < len(value):
            output.append(replacements.get(value[index + 1], value[index + 1]))
            index += 2
            continue
        output.append(char)
        index += 1
    return "".join(output)


def test_encode_produces_parseable_calendar() -> None:
    record = _record(
        description="Walk through the new flows",
        location_details=LocationDetails(name="CN Tower", address="290 Bremner Blvd, Toronto, ON M5V 3L9"),
        meeting_link="https://zoom.us/j/123",
    )

    document = _encode(record)
    calendar = Calendar.from_ical(document)
    events = calendar.walk("VEVENT")

    assert calendar["PRODID"] == "-//Calextract//Event Extractor//EN"
    assert calendar["METHOD"] == "PUBLISH"
    assert len(events) == 1
    event = events[0]
    assert str(event["UID"]) == "uid-0@calextract.local"
    assert event.decoded("DTSTART") == datetime(2025, 6, 11, 14, 0, tzinfo=UTC)
    assert event.decoded("DTEND") == datetime(2025, 6, 11, 15, 0, tzinfo=UTC)
    assert event.decoded("DTSTAMP") == GENERATED_AT
    assert str(event["SUMMARY"]) == "Design review"
    assert str(event["LOCATION"]) == "CN Tower, 290 Bremner Blvd, Toronto, ON M5V 3L9"
    assert str(event["URL"]) == "https://zoom.us/j/123"


def test_encode_terminates_every_line_with_crlf() -> None:
    document = _encode(_record())

    assert document.startswith("BEGIN:VCALENDAR\r\n")
    assert document.endswith("END:VCALENDAR\r\n")
    assert "\n" not in document.replace("\r\n", "")


def test_encode_writes_one_vevent_per_record() -> None:
    document = _encode(_record(title="First"), _record(title="Second"))

    calendar = Calendar.from_ical(document)
    summaries = [str(event["SUMMARY"]) for event in calendar.walk("VEVENT")]

    assert summaries == ["First", "Second"]
    assert "UID:uid-1@calextract.local\r\n" in document


def test_encode_uses_default_title_and_skips_unresolved_link() -> None:
    document = _encode(_record(title=None, meeting_link=MEETING_LINK_SENTINEL))

    assert "SUMMARY:No Title\r\n" in document
    assert "URL:" not in document


def test_encode_escapes_text_reversibly() -> None:
    summary = 'Budget; Q3, "final" \\ draft'
    description = "Line one\nLine two\r\nLine three"
    location = "Room 4\r\nBuilding 2; Floor 3, East"
    document = _encode(_record(title=summary, description=description, location=location))

    event = Calendar.from_ical(document).walk("VEVENT")[0]

    assert str(event["SUMMARY"]) == summary
    assert r'SUMMARY:Budget\; Q3\, "final" \\ draft' + "\r\n" in document
    assert _property_value(document, "DESCRIPTION") == r"Line one\nLine two\r\nLine three"
    assert _unescape(_property_value(document, "DESCRIPTION")) == description
    assert _unescape(_property_value(document, "LOCATION")) == location


def test_escape_text_round_trips_through_unescape() -> None:
    for value in (
        "a;b,c\\d",
        "tab\tkept",
        "carriage\rreturn",
        "multi\nline",
        "Room 4\r\nBuilding 2",
        "CN Tower, 290 Bremner Blvd\r\n\r\nToronto; ON",
    ):
        assert _unescape(escape_text(value)) == value
    assert escape_text(None) == ""


def test_fold_line_respects_octet_limit_and_rejoins() -> None:
    line = "DESCRIPTION:" + "x" * 200

    folded = fold_line(line)
    physical = folded.split("\r\n")

    assert len(physical) > 1
    assert all(len(part.encode("utf-8")) <= MAX_LINE_OCTETS for part in physical)
    assert all(part.startswith(" ") for part in physical[1:])
    assert folded.replace("\r\n ", "") == line


def test_fold_line_never_splits_multibyte_characters() -> None:
    line = "SUMMARY:" + "réunion 日本語 " * 20

    folded = fold_line(line)

    for part in folded.encode("utf-8").split(b"\r\n"):
        assert len(part) <= MAX_LINE_OCTETS
        part.decode("utf-8")
    assert folded.replace("\r\n ", "") == line


def test_fold_line_keeps_short_lines() -> None:
    assert fold_line("SUMMARY:Short") == "SUMMARY:Short"


def test_encode_folds_long_description() -> None:
    document = _encode(_record(description="word " * 59 + "end"))

    for line in document.split("\r\n"):
        assert len(line.encode("utf-8")) <= MAX_LINE_OCTETS
    event = Calendar.from_ical(document).walk("VEVENT")[0]
    assert str(event["DESCRIPTION"]) == "word " * 59 + "end"


def test_encode_writes_organizer_and_attendees() -> None:
    record = _record(
        attendees=[
            Attendee(name='Ana "The Boss" Ruiz', email="ana@example.com"),
            Attendee(name=None, email="bo@example.com"),
            Attendee(name="No Email"),
        ],
    )

    document = _encode(record).replace("\r\n ", "")

    assert 'ORGANIZER;CN="Ana The Boss Ruiz":mailto:ana@example.com' in document
    assert (
        'ATTENDEE;CN="bo";ROLE=REQ-PARTICIPANT;PARTSTAT=NEEDS-ACTION;RSVP=TRUE:mailto:bo@example.com'
        in document
    )
    assert document.count("ATTENDEE;") == 2


def test_encode_records_original_timezone() -> None:
    document = _encode(_record(timezone="America/Toronto"))

    assert "X-ORIGINAL-TIMEZONE:America/Toronto\r\n" in document
    assert "X-WR-TIMEZONE:UTC\r\n" in document


def test_encode_rejects_record_without_dates() -> None:
    with pytest.raises(ValueError):
        _encode(_record(end_date=None))


def test_encode_empty_batch_still_produces_calendar() -> None:
    document = _encode()

    assert Calendar.from_ical(document).walk("VEVENT") == []


def test_format_ical_datetime_converts_to_utc() -> None:
    naive = datetime(2025, 6, 11, 14, 0)
    offset = datetime.fromisoformat("2025-06-11T10:00:00-04:00")

    assert format_ical_datetime(naive) == "20250611T140000Z"
    assert format_ical_datetime(offset) == "20250611T140000Z"


def test_build_location_text_prefers_details() -> None:
    with_parts = _record(
        location="downtown",
        location_details=LocationDetails(name="Office", city="Austin", state="TX"),
    )
    flat_only = _record(location="Room 4")

    assert build_location_text(with_parts) == "Office, Austin, TX"
    assert build_location_text(flat_only) == "Room 4"
    assert build_location_text(_record()) == ""
