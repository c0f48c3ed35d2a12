from calextract.services.event_models import EventRecord

MISSING_TITLE_WARNING = "Event title is missing."


class EventValidationError(Exception):
    pass


class MissingDateError(EventValidationError):
    pass


class MalformedDateError(EventValidationError):
    pass


class OrderingError(EventValidationError):
    pass


def validate(record: EventRecord) -> EventRecord:
    """Check that *record* is structurally usable by the calendar encoder.

    Raises ``MissingDateError`` when a start or end value is absent,
    ``MalformedDateError`` when one is present but cannot be read as an
    instant, and ``OrderingError`` when the event does not end after it
    starts. A missing title only adds a warning.
    """
    if record.start_date is None and not record.start_date_text:
        raise MissingDateError("Missing required start date.")
    if record.end_date is None and not record.end_date_text:
        raise MissingDateError("Missing required end date.")

    if record.start_date is None:
        raise MalformedDateError(f"Invalid start date format: {record.start_date_text!r}.")
    if record.end_date is None:
        raise MalformedDateError(f"Invalid end date format: {record.end_date_text!r}.")

    if record.end_date <= record.start_date:
        raise OrderingError("End date must be after start date.")

    if not record.title:
        record.add_warning(MISSING_TITLE_WARNING)
    return record
