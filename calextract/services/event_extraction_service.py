from __future__ import annotations

import json
import logging
import re
from datetime import UTC, date, datetime, timedelta
from typing import Any

from calextract.core.config import Settings
from calextract.services.date_time_corrector import DateTimeCorrector
from calextract.services.event_models import EventRecord, ExtractionContext, ExtractionResult
from calextract.services.event_suggestions import build_suggestions
from calextract.services.event_validator import validate
from calextract.services.geocoding_client import GooglePlacesGeocodingClient
from calextract.services.inference_client import (
    InferenceClient,
    InferencePrompt,
    create_inference_client,
)
from calextract.services.location_enhancer import LocationEnhancer
from calextract.services.meeting_link_scanner import scan

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "\n\n[... content truncated ...]"
_CODE_FENCE_PATTERN = re.compile(r"^```[a-zA-Z]*\s*\n?(.*?)\n?```$", re.DOTALL)


class ResponseFormatError(Exception):
    pass


class InferenceNotConfiguredError(Exception):
    pass


class EventExtractionService:
    def __init__(
        self,
        settings: Settings,
        inference_client: InferenceClient | None = None,
        location_enhancer: LocationEnhancer | None = None,
    ) -> None:
        self.settings = settings
        self.inference_client = inference_client or create_inference_client(settings)
        self.location_enhancer = location_enhancer or LocationEnhancer(
            geocoder=self._create_geocoder(),
        )

    def extract(self, raw_text: str, context: ExtractionContext) -> ExtractionResult:
        if self.inference_client is None:
            raise InferenceNotConfiguredError("Inference service is not configured.")

        prompt = self.build_prompt(raw_text, context)
        response_text = self.inference_client.infer(prompt)
        payload = parse_inference_output(response_text)
        raw_events = normalize_event_payloads(payload)
        if not raw_events:
            logger.info("Inference reported no event")
            return ExtractionResult.no_event()

        corrector = DateTimeCorrector(
            minimum_year=self.settings.minimum_event_year,
            default_timezone=context.timezone,
        )
        apply_time_override = len(raw_events) == 1
        events: list[EventRecord] = []
        for raw_event in raw_events:
            record = EventRecord.from_payload(raw_event, default_timezone=context.timezone)
            self._process_record(
                record,
                raw_text=raw_text,
                context=context,
                corrector=corrector,
                apply_time_override=apply_time_override,
            )
            events.append(record)

        warnings: list[str] = []
        for record in events:
            for warning in record.warnings:
                if warning not in warnings:
                    warnings.append(warning)

        logger.info(
            "Extracted events count=%s first_title=%s warnings=%s",
            len(events),
            events[0].title,
            len(warnings),
        )
        return ExtractionResult(
            has_event=True,
            events=events,
            warnings=warnings,
            suggestions=build_suggestions(events, timezone=context.timezone),
        )

    def build_prompt(self, raw_text: str, context: ExtractionContext) -> InferencePrompt:
        return InferencePrompt(
            instructions=_build_instructions(context),
            content=truncate_text(raw_text, self.settings.inference_max_input_chars),
        )

    def _process_record(
        self,
        record: EventRecord,
        *,
        raw_text: str,
        context: ExtractionContext,
        corrector: DateTimeCorrector,
        apply_time_override: bool,
    ) -> None:
        if not record.meeting_link:
            record.meeting_link = scan(raw_text)

        self.location_enhancer.enhance_record(record)

        correction = corrector.correct(
            record,
            raw_text,
            context.reference_now,
            timezone=context.timezone,
            apply_time_override=apply_time_override,
        )
        for message in correction.messages:
            record.add_warning(message)

        validate(record)

    def _create_geocoder(self) -> GooglePlacesGeocodingClient | None:
        api_key = self.settings.google_places_api_key.strip()
        if not api_key:
            return None
        return GooglePlacesGeocodingClient(
            api_key=api_key,
            timeout_seconds=self.settings.geocoding_timeout_seconds,
        )


def truncate_text(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_MARKER


def parse_inference_output(raw_text: str) -> dict[str, Any]:
    cleaned = raw_text.strip()
    fence_match = _CODE_FENCE_PATTERN.match(cleaned)
    if fence_match:
        cleaned = fence_match.group(1).strip()

    direct = _loads_json_object(cleaned)
    if direct is not None:
        return direct

    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end == -1 or end <= start:
        raise ResponseFormatError("Inference output is not valid JSON.")

    candidate = _loads_json_object(cleaned[start : end + 1])
    if candidate is None:
        raise ResponseFormatError("Inference output could not be parsed as a JSON object.")
    return candidate


def normalize_event_payloads(payload: dict[str, Any]) -> list[dict[str, Any]]:
    """Return the events of an inference reply as a list, empty when there is none."""
    has_event = payload.get("hasEvent", payload.get("has_event"))
    if isinstance(has_event, str):
        has_event = has_event.strip().lower() == "true"
    if not has_event:
        return []

    raw_events = payload.get("events")
    if isinstance(raw_events, list):
        return [raw_event for raw_event in raw_events if isinstance(raw_event, dict)]
    if raw_events is not None:
        raise ResponseFormatError("Inference output 'events' is not a list.")

    flat_event = {
        key: value
        for key, value in payload.items()
        if key not in {"hasEvent", "has_event", "events"}
    }
    return [flat_event]


def _loads_json_object(value: str) -> dict[str, Any] | None:
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError:
        return None

    if not isinstance(parsed, dict):
        return None
    return parsed


def _describe_day(value: date) -> str:
    return f"{value:%A, %B} {value.day}, {value.year} ({value.isoformat()})"


def _build_instructions(context: ExtractionContext) -> str:
    zone = context.zone
    reference_now = context.reference_now
    if reference_now.tzinfo is None:
        reference_now = reference_now.replace(tzinfo=UTC)
    local_now = reference_now.astimezone(zone)
    today = local_now.date()
    tomorrow = today + timedelta(days=1)
    day_after = today + timedelta(days=2)
    timezone_label = context.timezone or "UTC"

    return (
        "You are an expert assistant for extracting calendar event details from text.\n"
        "Analyze the text and return a valid JSON object with the event details.\n"
        "Current date context:\n"
        f"- Current time (UTC): {reference_now.astimezone(UTC).isoformat(timespec='minutes')}\n"
        f"- User timezone: {timezone_label}\n"
        f"- TODAY = {_describe_day(today)}\n"
        f"- TOMORROW = {_describe_day(tomorrow)}\n"
        f"- DAY AFTER TOMORROW = {_describe_day(day_after)}\n"
        "Date rules:\n"
        "- Resolve relative dates (today, tomorrow, next Monday) from TODAY above.\n"
        "- If only a weekday is mentioned, use its next occurrence from TODAY.\n"
        "- If only a time is mentioned, use TODAY with that time.\n"
        "- If the year is missing, pick the next occurrence of that date.\n"
        "- Never return dates in a past year.\n"
        "Time rules:\n"
        "- Convert times to 24-hour format: 1PM=13:00, 3PM=15:00, 12AM=00:00, 12PM=12:00.\n"
        f"- If no timezone is mentioned, assume {timezone_label} and set timezone to it.\n"
        "- If a timezone is mentioned, keep it in the timezone field.\n"
        "- Format startDate and endDate as ISO 8601 with offset, e.g. 2025-08-06T15:00:00-04:00.\n"
        "- If no end time or duration is given, the event lasts exactly 1 hour.\n"
        "Worked examples:\n"
        f"- \"tomorrow at 2 PM\" -> {tomorrow.isoformat()}T14:00:00, end 15:00:00\n"
        f"- \"today at noon\" -> {today.isoformat()}T12:00:00, end 13:00:00\n"
        "- \"Wednesday, August 6th at 3PM\" -> next August 6th, 15:00\n"
        "- \"9:30am-11am\" -> start 09:30, end 11:00\n"
        "Attendees:\n"
        "- Extract every email address (To, CC, From and body) with its associated name.\n"
        "- Put the sender or organizer first.\n"
        "Location:\n"
        "- Extract venue, business or place names and any address components.\n"
        "- For well-known places provide their common address and set isWellKnownPlace true.\n"
        "- \"Conference Room B, Building 2\" -> name: \"Conference Room B, Building 2\", address: null\n"
        "Meeting link:\n"
        "- Copy any Zoom, Google Meet, Teams or Webex URL into meetingLink.\n"
        "If no event is found, return {\"hasEvent\": false}.\n"
        "Return ONLY a JSON object with this exact shape:\n"
        "{\n"
        '  "hasEvent": true,\n'
        '  "events": [\n'
        "    {\n"
        '      "title": "string",\n'
        '      "startDate": "ISO 8601 string",\n'
        '      "endDate": "ISO 8601 string",\n'
        '      "location": "string|null",\n'
        '      "locationDetails": {\n'
        '        "name": "string|null",\n'
        '        "address": "string|null",\n'
        '        "city": "string|null",\n'
        '        "state": "string|null",\n'
        '        "country": "string|null",\n'
        '        "isWellKnownPlace": false\n'
        "      },\n"
        '      "description": "string|null",\n'
        f'      "timezone": "{timezone_label}",\n'
        '      "attendees": [{"name": "string|null", "email": "string"}],\n'
        '      "meetingLink": "string|null",\n'
        '      "meetingType": "in-person|video-call|phone-call|null",\n'
        '      "isRecurring": false,\n'
        '      "recurrencePattern": "string|null"\n'
        "    }\n"
        "  ]\n"
        "}"
    )


def default_context(settings: Settings, *, timezone: str | None = None) -> ExtractionContext:
    return ExtractionContext(
        reference_now=datetime.now(UTC),
        timezone=timezone or settings.default_timezone,
    )
