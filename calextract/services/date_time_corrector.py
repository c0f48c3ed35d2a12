from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta, tzinfo

from calextract.services.event_models import EventRecord, resolve_zone

logger = logging.getLogger(__name__)

TIME_TOLERANCE_MINUTES = 5
PAST_WARNING_DAYS = 7
FUTURE_WARNING_YEARS = 2
_DEFAULT_EVENT_DURATION = timedelta(hours=1)

_TIME_PHRASE_PATTERN = re.compile(
    r"\b(1[0-2]|0?[1-9])(?::([0-5]\d))?\s*([ap])\.?\s?m\b\.?",
    re.IGNORECASE,
)
_WEEKDAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
_WEEKDAY_PATTERN = re.compile(
    r"\b(" + "|".join(_WEEKDAY_NAMES) + r")s?\b",
    re.IGNORECASE,
)
_RELATIVE_DAY_OFFSETS = (("tomorrow", 1), ("today", 0))


@dataclass
class CorrectionResult:
    record: EventRecord
    was_corrected: bool = False
    corrections: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def messages(self) -> list[str]:
        return [*self.corrections, *self.warnings]


class DateTimeCorrector:
    """Cross-check inferred start/end instants against the source text.

    Year floor and explicit clock times are corrected in place; relative
    dates, weekday names and sanity bounds only produce warnings. Running the
    corrector again with the same arguments changes nothing further.
    """

    def __init__(self, *, minimum_year: int | None = None, default_timezone: str = "UTC") -> None:
        self.minimum_year = minimum_year
        self.default_timezone = default_timezone

    def correct(
        self,
        record: EventRecord,
        source_text: str | None,
        reference_now: datetime,
        *,
        timezone: str | None = None,
        apply_time_override: bool = True,
    ) -> CorrectionResult:
        result = CorrectionResult(record=record)
        if record.start_date is None:
            return result

        zone = resolve_zone(record.timezone or timezone or self.default_timezone)
        now = _ensure_aware(reference_now)
        text = source_text or ""

        self._apply_year_floor(result, zone=zone, reference_now=now)
        if apply_time_override:
            self._apply_explicit_time(result, text=text, zone=zone)
        self._check_relative_dates(result, text=text, zone=zone, reference_now=now)
        self._check_weekday(result, text=text, zone=zone)
        self._check_sanity_bounds(result, reference_now=now)

        result.was_corrected = bool(result.corrections)
        return result

    def year_floor(self, reference_now: datetime, zone: tzinfo = UTC) -> int:
        current_year = _ensure_aware(reference_now).astimezone(zone).year
        if self.minimum_year is None:
            return current_year
        return max(self.minimum_year, current_year)

    def _apply_year_floor(
        self,
        result: CorrectionResult,
        *,
        zone: tzinfo,
        reference_now: datetime,
    ) -> None:
        record = result.record
        floor = self.year_floor(reference_now, zone)
        local_start = record.start_date.astimezone(zone)
        if local_start.year >= floor:
            return

        shift = floor - local_start.year
        original_year = local_start.year
        record.start_date = _shift_years(local_start, shift).astimezone(UTC)
        if record.end_date is not None:
            record.end_date = _shift_years(record.end_date.astimezone(zone), shift).astimezone(UTC)
        result.corrections.append(
            f"Event year {original_year} is in the past; moved to {floor}.",
        )
        logger.info("Applied year floor original_year=%s floor=%s", original_year, floor)

    def _apply_explicit_time(self, result: CorrectionResult, *, text: str, zone: tzinfo) -> None:
        match = _TIME_PHRASE_PATTERN.search(text)
        if not match:
            return

        hour = _to_24_hour(int(match.group(1)), match.group(3))
        minute = int(match.group(2)) if match.group(2) else 0
        record = result.record
        local_start = record.start_date.astimezone(zone)
        inferred_minutes = local_start.hour * 60 + local_start.minute
        if abs(inferred_minutes - (hour * 60 + minute)) <= TIME_TOLERANCE_MINUTES:
            return

        corrected_start = local_start.replace(
            hour=hour,
            minute=minute,
            second=0,
            microsecond=0,
        ).astimezone(UTC)
        if corrected_start == record.start_date:
            return

        record.start_date = corrected_start
        record.end_date = corrected_start + _DEFAULT_EVENT_DURATION
        fragment = match.group(0).strip()
        result.corrections.append(
            f'Time adjusted to match "{fragment}" in the text: '
            f"{local_start:%H:%M} -> {hour:02d}:{minute:02d}.",
        )
        logger.info(
            "Corrected event time fragment=%s before=%s after=%02d:%02d",
            fragment,
            f"{local_start:%H:%M}",
            hour,
            minute,
        )

    def _check_relative_dates(
        self,
        result: CorrectionResult,
        *,
        text: str,
        zone: tzinfo,
        reference_now: datetime,
    ) -> None:
        lowered = text.lower()
        reference_date = reference_now.astimezone(zone).date()
        event_date = result.record.start_date.astimezone(zone).date()
        for keyword, offset in _RELATIVE_DAY_OFFSETS:
            if not re.search(rf"\b{keyword}\b", lowered):
                continue
            expected_date = reference_date + timedelta(days=offset)
            if event_date == expected_date:
                continue
            result.warnings.append(
                f'You mentioned "{keyword}" but the extracted date is {_describe_date(event_date)}. '
                f"{keyword.capitalize()} should be {_describe_date(expected_date)}.",
            )

    def _check_weekday(self, result: CorrectionResult, *, text: str, zone: tzinfo) -> None:
        mentioned = [match.group(1).lower() for match in _WEEKDAY_PATTERN.finditer(text)]
        if not mentioned:
            return
        actual = _WEEKDAY_NAMES[result.record.start_date.astimezone(zone).weekday()]
        if actual in mentioned:
            return
        result.warnings.append(
            f"The text mentions {mentioned[0].capitalize()} but the extracted date falls on "
            f"{actual.capitalize()}.",
        )

    def _check_sanity_bounds(self, result: CorrectionResult, *, reference_now: datetime) -> None:
        record = result.record
        if record.start_date < reference_now - timedelta(days=PAST_WARNING_DAYS):
            result.warnings.append(
                f"Event starts more than {PAST_WARNING_DAYS} days in the past.",
            )
        if record.start_date > _shift_years(reference_now, FUTURE_WARNING_YEARS):
            result.warnings.append(
                f"Event starts more than {FUTURE_WARNING_YEARS} years in the future.",
            )
        if record.end_date is not None and record.end_date <= record.start_date:
            result.warnings.append("Event end time is not after its start time.")


def _to_24_hour(hour: int, meridiem: str) -> int:
    if meridiem.lower() == "a":
        return 0 if hour == 12 else hour
    return hour if hour == 12 else hour + 12


def _shift_years(value: datetime, years: int) -> datetime:
    year = value.year + years
    day = min(value.day, _days_in_month(year, value.month))
    return value.replace(year=year, day=day)


def _days_in_month(year: int, month: int) -> int:
    if month == 2:
        if (year % 4 == 0 and year % 100 != 0) or year % 400 == 0:
            return 29
        return 28
    if month in {4, 6, 9, 11}:
        return 30
    return 31


def _ensure_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _describe_date(value: date) -> str:
    return f"{value:%A, %B} {value.day}"
