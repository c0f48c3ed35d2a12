from datetime import UTC, datetime

from calextract.services.event_models import EventRecord, LocationDetails
from calextract.services.event_suggestions import build_suggestions


def _record(start_hour: int, end: datetime, **overrides: object) -> EventRecord:
    return EventRecord(
        title="Sync",
        start_date=datetime(2025, 6, 11, start_hour, 0, tzinfo=UTC),
        end_date=end,
        **overrides,  # type: ignore[arg-type]
    )


def test_build_suggestions_is_empty_for_a_typical_meeting() -> None:
    record = _record(10, datetime(2025, 6, 11, 11, 0, tzinfo=UTC), location="Room 4")

    assert build_suggestions([record]) == []


def test_build_suggestions_flags_long_and_after_hours_meetings() -> None:
    record = _record(19, datetime(2025, 6, 12, 1, 0, tzinfo=UTC), location="Office")

    suggestions = build_suggestions([record])

    assert suggestions == [
        "This is a long meeting. Consider adding breaks or splitting it into several sessions.",
        "This meeting is outside typical business hours. Double-check the time zone.",
    ]


def test_build_suggestions_uses_event_timezone_for_business_hours() -> None:
    # 13:00 UTC is 09:00 in Toronto during daylight saving time
    record = _record(
        13,
        datetime(2025, 6, 11, 14, 0, tzinfo=UTC),
        location="Office",
        timezone="America/Toronto",
    )

    assert build_suggestions([record], timezone="Asia/Tokyo") == []


def test_build_suggestions_flags_short_meeting_without_location() -> None:
    record = _record(10, datetime(2025, 6, 11, 10, 10, tzinfo=UTC))

    suggestions = build_suggestions([record])

    assert "This is a very short meeting. Check that the duration is right." in suggestions
    assert (
        "No location specified. Consider noting whether it is in person or virtual." in suggestions
    )


def test_build_suggestions_asks_for_missing_video_link() -> None:
    record = _record(
        10,
        datetime(2025, 6, 11, 11, 0, tzinfo=UTC),
        location_details=LocationDetails(name="Zoom call"),
    )

    assert build_suggestions([record]) == [
        "This appears to be a video call. Consider adding the meeting link.",
    ]


def test_build_suggestions_reports_multiple_events() -> None:
    first = _record(10, datetime(2025, 6, 11, 11, 0, tzinfo=UTC), location="Room 4")
    second = _record(14, datetime(2025, 6, 11, 15, 0, tzinfo=UTC), location="Room 5")

    assert build_suggestions([first, second]) == [
        "Found 2 events. Each will be created as a separate calendar entry.",
    ]
    assert build_suggestions([]) == []


def test_build_suggestions_checks_every_event_in_a_batch() -> None:
    first = _record(10, datetime(2025, 6, 11, 11, 0, tzinfo=UTC), location="Room 4")
    second = _record(20, datetime(2025, 6, 11, 20, 5, tzinfo=UTC))
    third = _record(21, datetime(2025, 6, 11, 22, 0, tzinfo=UTC))

    assert build_suggestions([first, second, third]) == [
        "This is a very short meeting. Check that the duration is right.",
        "This meeting is outside typical business hours. Double-check the time zone.",
        "No location specified. Consider noting whether it is in person or virtual.",
        "Found 3 events. Each will be created as a separate calendar entry.",
    ]
