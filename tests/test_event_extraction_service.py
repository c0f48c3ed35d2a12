from datetime import UTC, datetime

import pytest

from calextract.core.config import Settings
from calextract.services.event_extraction_service import (
    TRUNCATION_MARKER,
    EventExtractionService,
    InferenceNotConfiguredError,
    ResponseFormatError,
    normalize_event_payloads,
    parse_inference_output,
    truncate_text,
)
from calextract.services.event_models import MEETING_LINK_SENTINEL, ExtractionContext
from calextract.services.event_validator import OrderingError
from calextract.services.inference_client import StaticInferenceClient

CONTEXT = ExtractionContext(reference_now=datetime(2025, 6, 10, 0, 0, tzinfo=UTC), timezone="UTC")


def _settings(**overrides: object) -> Settings:
    values: dict[str, object] = {
        "openai_api_key": "",
        "gemini_api_key": "",
        "google_places_api_key": "",
        "minimum_event_year": None,
        "_env_file": None,
    }
    values.update(overrides)
    return Settings(**values)  # type: ignore[arg-type]


def _service(reply: object, **settings_overrides: object) -> tuple[EventExtractionService, StaticInferenceClient]:
    client = StaticInferenceClient(reply)  # type: ignore[arg-type]
    return EventExtractionService(_settings(**settings_overrides), inference_client=client), client


def test_extract_corrects_time_and_fills_meeting_link_from_text() -> None:
    service, _ = _service(
        {
            "hasEvent": True,
            "events": [
                {
                    "title": "Meeting",
                    "startDate": "2024-06-11T16:00:00",
                    "endDate": "2024-06-11T17:00:00",
                    "meetingLink": None,
                },
            ],
        },
    )

    result = service.extract("Meeting tomorrow at 2pm, join via https://zoom.us/j/123", CONTEXT)

    assert result.has_event is True
    event = result.events[0]
    assert event.start_date == datetime(2025, 6, 11, 14, 0, tzinfo=UTC)
    assert event.end_date == datetime(2025, 6, 11, 15, 0, tzinfo=UTC)
    assert event.meeting_link == "https://zoom.us/j/123"
    assert result.warnings == [
        "Event year 2024 is in the past; moved to 2025.",
        'Time adjusted to match "2pm" in the text: 16:00 -> 14:00.',
    ]
    assert "No location specified. Consider noting whether it is in person or virtual." in (
        result.suggestions
    )


def test_extract_keeps_meeting_link_returned_by_inference() -> None:
    service, _ = _service(
        {
            "hasEvent": True,
            "title": "Sync",
            "startDate": "2025-06-11T14:00:00Z",
            "endDate": "2025-06-11T15:00:00Z",
            "meetingLink": "https://meet.google.com/abc-defg-hij",
        },
    )

    result = service.extract("Sync tomorrow at 2pm, see https://zoom.us/j/999", CONTEXT)

    assert result.events[0].meeting_link == "https://meet.google.com/abc-defg-hij"


def test_extract_marks_unresolved_meeting_link() -> None:
    service, _ = _service(
        {
            "hasEvent": True,
            "title": "Weekly sync",
            "startDate": "2025-06-11T14:00:00Z",
            "endDate": "2025-06-11T15:00:00Z",
        },
    )

    result = service.extract("Weekly sync tomorrow, click here to join.", CONTEXT)

    assert result.events[0].meeting_link == MEETING_LINK_SENTINEL


def test_extract_enhances_well_known_location() -> None:
    service, _ = _service(
        {
            "hasEvent": True,
            "events": [
                {
                    "title": "Team dinner",
                    "startDate": "2025-06-12T23:00:00Z",
                    "endDate": "2025-06-13T01:00:00Z",
                    "location": "CN Tower",
                    "locationDetails": {"name": "CN Tower", "address": None},
                },
            ],
        },
    )

    result = service.extract("Team dinner at the CN Tower on Thursday evening", CONTEXT)

    details = result.events[0].location_details
    assert details is not None
    assert details.name == "CN Tower"
    assert details.address == "290 Bremner Blvd, Toronto, ON M5V 3L9"
    assert details.is_well_known_place is True


def test_extract_returns_no_event_outcome() -> None:
    service, _ = _service({"hasEvent": False})

    result = service.extract("Thanks for the update, talk soon.", CONTEXT)

    assert result.has_event is False
    assert result.events == []
    assert result.warnings == []


def test_extract_raises_ordering_error_for_inverted_range() -> None:
    service, _ = _service(
        {
            "hasEvent": True,
            "title": "Planning",
            "startDate": "2025-06-11T15:00:00Z",
            "endDate": "2025-06-11T14:00:00Z",
        },
    )

    with pytest.raises(OrderingError):
        service.extract("Planning session tomorrow afternoon", CONTEXT)


def test_extract_does_not_override_times_for_batches() -> None:
    service, _ = _service(
        {
            "hasEvent": True,
            "events": [
                {"title": "Standup", "startDate": "2025-06-11T09:00:00Z", "endDate": "2025-06-11T09:15:00Z"},
                {"title": "Review", "startDate": "2025-06-11T15:00:00Z", "endDate": "2025-06-11T16:00:00Z"},
            ],
        },
    )

    result = service.extract("Tomorrow: standup at 9am and review at 3pm", CONTEXT)

    assert [event.start_date.hour for event in result.events if event.start_date] == [9, 15]
    assert "Found 2 events. Each will be created as a separate calendar entry." in result.suggestions


def test_extract_requires_configured_inference() -> None:
    service = EventExtractionService(_settings())

    with pytest.raises(InferenceNotConfiguredError):
        service.extract("Lunch tomorrow at noon", CONTEXT)


def test_extract_truncates_long_input() -> None:
    service, client = _service({"hasEvent": False}, inference_max_input_chars=20)

    service.extract("Quarterly review meeting with the whole product team", CONTEXT)

    assert client.prompts[0].content == "Quarterly review mee" + TRUNCATION_MARKER


def test_build_prompt_grounds_relative_dates() -> None:
    service, _ = _service({"hasEvent": False})

    prompt = service.build_prompt("Lunch tomorrow at noon", CONTEXT)

    assert "TODAY = Tuesday, June 10, 2025 (2025-06-10)" in prompt.instructions
    assert "TOMORROW = Wednesday, June 11, 2025 (2025-06-11)" in prompt.instructions
    assert "DAY AFTER TOMORROW = Thursday, June 12, 2025 (2025-06-12)" in prompt.instructions
    assert '"hasEvent": true' in prompt.instructions
    assert prompt.content == "Lunch tomorrow at noon"


def test_parse_inference_output_strips_code_fence() -> None:
    payload = parse_inference_output('```json\n{"hasEvent": false}\n```')

    assert payload == {"hasEvent": False}


def test_parse_inference_output_recovers_embedded_object() -> None:
    payload = parse_inference_output('Sure! Here it is: {"hasEvent": true, "title": "Demo"} Enjoy.')

    assert payload == {"hasEvent": True, "title": "Demo"}


def test_parse_inference_output_rejects_non_json() -> None:
    with pytest.raises(ResponseFormatError):
        parse_inference_output("I could not find any event.")


def test_extract_surfaces_unparseable_reply() -> None:
    service, _ = _service("no json here")

    with pytest.raises(ResponseFormatError):
        service.extract("Lunch tomorrow at noon", CONTEXT)


def test_normalize_event_payloads_handles_flat_and_string_flags() -> None:
    flat = normalize_event_payloads({"hasEvent": "true", "title": "Demo"})

    assert flat == [{"title": "Demo"}]
    assert normalize_event_payloads({"hasEvent": "false", "title": "Demo"}) == []
    assert normalize_event_payloads({}) == []


def test_normalize_event_payloads_rejects_non_list_events() -> None:
    with pytest.raises(ResponseFormatError):
        normalize_event_payloads({"hasEvent": True, "events": "tomorrow"})


def test_truncate_text_leaves_short_text_untouched() -> None:
    assert truncate_text("short", 10) == "short"


def test_extract_survives_geocoder_connection_reset(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_urlopen(req, timeout=5):  # type: ignore[no-untyped-def]
        raise ConnectionResetError(104, "Connection reset by peer")

    monkeypatch.setattr("calextract.services.geocoding_client.request.urlopen", fake_urlopen)
    service, _ = _service(
        {
            "hasEvent": True,
            "title": "Coffee",
            "startDate": "2025-06-11T14:00:00Z",
            "endDate": "2025-06-11T15:00:00Z",
            "locationDetails": {"name": "Some Cafe"},
        },
        google_places_api_key="places-key",
    )

    result = service.extract("Coffee tomorrow at 2pm at Some Cafe", CONTEXT)

    details = result.events[0].location_details
    assert details is not None
    assert details.name == "Some Cafe"
    assert details.address is None
