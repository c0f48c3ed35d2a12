from calextract.services.event_models import EventRecord, resolve_zone

LONG_MEETING_HOURS = 4
SHORT_MEETING_MINUTES = 15
BUSINESS_HOURS = (8, 18)
_VIDEO_CALL_MARKERS = ("zoom", "teams", "google meet", "webex", "video call")


def build_suggestions(events: list[EventRecord], *, timezone: str | None = None) -> list[str]:
    """Advisory notes for every event in the batch, each note listed once."""
    suggestions: list[str] = []
    for event in events:
        for suggestion in _event_suggestions(event, timezone=timezone):
            if suggestion not in suggestions:
                suggestions.append(suggestion)

    if len(events) > 1:
        suggestions.append(
            f"Found {len(events)} events. Each will be created as a separate calendar entry.",
        )
    return suggestions


def _event_suggestions(event: EventRecord, *, timezone: str | None) -> list[str]:
    suggestions: list[str] = []
    if event.start_date is not None and event.end_date is not None:
        duration_minutes = (event.end_date - event.start_date).total_seconds() / 60
        if duration_minutes > LONG_MEETING_HOURS * 60:
            suggestions.append(
                "This is a long meeting. Consider adding breaks or splitting it into several sessions.",
            )
        if duration_minutes < SHORT_MEETING_MINUTES:
            suggestions.append("This is a very short meeting. Check that the duration is right.")

        zone = resolve_zone(event.timezone or timezone)
        start_hour = event.start_date.astimezone(zone).hour
        if start_hour < BUSINESS_HOURS[0] or start_hour > BUSINESS_HOURS[1]:
            suggestions.append(
                "This meeting is outside typical business hours. Double-check the time zone.",
            )

    location_text = " ".join(
        part
        for part in (
            event.location,
            event.location_details.name if event.location_details else None,
        )
        if part
    )
    if not location_text:
        suggestions.append("No location specified. Consider noting whether it is in person or virtual.")
    elif not event.has_resolved_meeting_link() and any(
        marker in location_text.lower() for marker in _VIDEO_CALL_MARKERS
    ):
        suggestions.append("This appears to be a video call. Consider adding the meeting link.")
    return suggestions
