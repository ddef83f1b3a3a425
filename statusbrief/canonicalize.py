from __future__ import annotations

import logging
import math
import re
from datetime import datetime, timezone
from typing import Any

from dateutil import parser as date_parser

from .numeric_utils import as_float, coerce_number, round_half_up
from .schema_shapes import (
    DOWNLOAD_ITEM_FIELDS,
    EVENT_ITEM_FIELDS,
    NEWS_ITEM_FIELDS,
    FieldTable,
    ShapeUnrecognized,
    detect_shape,
    first_list,
    first_present,
)


logger = logging.getLogger(__name__)

DEFAULT_LOCATION = "London"

PERIOD_MORNING = "morning"
PERIOD_AFTERNOON = "afternoon"
PERIOD_EVENING = "evening"
PERIOD_NIGHT = "night"
PERIODS = (PERIOD_MORNING, PERIOD_AFTERNOON, PERIOD_EVENING, PERIOD_NIGHT)

GREETINGS = {
    PERIOD_MORNING: "Good morning",
    PERIOD_AFTERNOON: "Good afternoon",
    PERIOD_EVENING: "Good evening",
    PERIOD_NIGHT: "Good night",
}

BRIEF_LABELS = {
    PERIOD_MORNING: "Morning brief",
    PERIOD_AFTERNOON: "Afternoon brief",
    PERIOD_EVENING: "Evening brief",
    PERIOD_NIGHT: "Night brief",
}

AQI_LEVELS = {
    1: "Good",
    2: "Moderate",
    3: "Unhealthy for sensitive groups",
    4: "Unhealthy",
    5: "Very unhealthy",
    6: "Hazardous",
}

KM_PER_STEP = 0.00075
CALORIES_PER_STEP = 0.04

# Bare sleep numbers at or above this are seconds.
SLEEP_SECONDS_THRESHOLD = 10000
# Bare sleep numbers strictly between 0 and this are hours.
SLEEP_HOURS_CEILING = 24

_HOURS_MARKER = re.compile(r"\{?(\d+(?:\.\d+)?|\.\d+)\}?\s*h", re.IGNORECASE)
_MINUTES_MARKER = re.compile(r"\{?(\d+(?:\.\d+)?|\.\d+)\}?\s*m", re.IGNORECASE)
_CLOCK_DURATION = re.compile(r"^\s*(\d{1,2}):([0-5]\d)\s*$")
_COORDINATE_PAIR = re.compile(r"^\s*([-+]?\d{1,3}(?:\.\d+)?)\s*,\s*([-+]?\d{1,3}(?:\.\d+)?)\s*$")
_FOUR_DIGIT_YEAR = re.compile(r"\b\d{4}\b")
_PERIOD_WORD = re.compile(r"\b(" + "|".join(PERIODS) + r")\b", re.IGNORECASE)


def period_for_hour(hour: int) -> str:
    if 5 <= hour < 12:
        return PERIOD_MORNING
    if 12 <= hour < 17:
        return PERIOD_AFTERNOON
    if 17 <= hour < 22:
        return PERIOD_EVENING
    return PERIOD_NIGHT


def _clean_text(value: Any) -> str | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        text = value.strip()
        return text or None
    if isinstance(value, (int, float)):
        number = coerce_number(value)
        return None if number is None else str(number)
    return None


def _non_negative(value: Any) -> int | float | None:
    number = coerce_number(value)
    if number is None or number < 0:
        return None
    return number


def parse_timestamp(value: Any) -> datetime | None:
    text = _clean_text(value) if isinstance(value, str) else None
    if not text:
        return None
    try:
        parsed = date_parser.isoparse(text)
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _text_duration_minutes(text: str) -> int | None:
    clock = _CLOCK_DURATION.match(text)
    if clock:
        return int(clock.group(1)) * 60 + int(clock.group(2))

    hours_match = _HOURS_MARKER.search(text)
    minutes_match = _MINUTES_MARKER.search(text)
    if not hours_match and not minutes_match:
        return None
    hours = float(hours_match.group(1)) if hours_match else 0.0
    minutes = float(minutes_match.group(1)) if minutes_match else 0.0
    total = hours * 60 + minutes
    if not math.isfinite(total):
        return None
    return round_half_up(total)


def _bare_number_minutes(value: Any) -> int | None:
    number = coerce_number(value)
    if number is None or number < 0:
        return None
    if number >= SLEEP_SECONDS_THRESHOLD:
        return round_half_up(number / 60)
    if 0 < number < SLEEP_HOURS_CEILING:
        return round_half_up(number * 60)
    return round_half_up(number)


def parse_sleep_minutes(value: Any) -> int | None:
    """Read a free-form sleep duration ("7h 30m", "7:30", 450, 7.5, 27000) as minutes."""
    if isinstance(value, str):
        text_minutes = _text_duration_minutes(value)
        if text_minutes is not None:
            return text_minutes
    if isinstance(value, (dict, list)):
        return None
    return _bare_number_minutes(value)


def sleep_duration_minutes(
    *,
    explicit_minutes: Any = None,
    start: Any = None,
    end: Any = None,
    raw: Any = None,
) -> int | None:
    explicit = _non_negative(explicit_minutes)
    if explicit is not None:
        return round_half_up(explicit)

    started = parse_timestamp(start)
    ended = parse_timestamp(end)
    if started is not None and ended is not None:
        elapsed = (ended - started).total_seconds() / 60
        if elapsed >= 0:
            return round_half_up(elapsed)

    return parse_sleep_minutes(raw)


def format_location(value: Any) -> str | None:
    if isinstance(value, dict):
        lat = as_float(value.get("lat", value.get("latitude")))
        lon = as_float(value.get("lon", value.get("lng", value.get("longitude"))))
        if lat is not None and lon is not None and abs(lat) <= 90 and abs(lon) <= 180:
            return f"Lat {lat:.2f} • Lon {lon:.2f}"
        return _clean_text(value.get("name") or value.get("city"))

    text = _clean_text(value)
    if text is None:
        return None
    match = _COORDINATE_PAIR.match(text)
    if match:
        lat = float(match.group(1))
        lon = float(match.group(2))
        if abs(lat) <= 90 and abs(lon) <= 180:
            return f"Lat {lat:.2f} • Lon {lon:.2f}"
    return text


def _date_label(moment: datetime) -> str:
    return moment.strftime("%A %d %b")


def format_date_label(value: Any, now: datetime) -> str:
    text = _clean_text(value)
    if text is None:
        return _date_label(now)
    # Labels we produced ourselves carry no year and pass through.
    if not _FOUR_DIGIT_YEAR.search(text):
        return text
    try:
        parsed = date_parser.parse(text)
    except (ValueError, OverflowError):
        return text
    return _date_label(parsed)


def _as_period(value: str | None) -> str | None:
    if not value:
        return None
    match = _PERIOD_WORD.search(value)
    if match is None:
        return None
    return match.group(1).lower()


def _as_hour(value: Any) -> int | None:
    number = coerce_number(value)
    if number is None or not 0 <= number < 24:
        return None
    return int(number)


def resolve_time_of_day(
    *,
    greeting: Any = None,
    brief_type: Any = None,
    time_of_day: Any = None,
    local_hour: Any = None,
    now: datetime,
) -> tuple[str, str]:
    """Return (period, greeting).

    Explicit strings win over any hour. A brief type naming a period only
    fixes the period; any other brief type is used as the greeting itself.
    """
    explicit_greeting = _clean_text(greeting)
    explicit_type = _clean_text(brief_type)

    period = _as_period(_clean_text(time_of_day)) or _as_period(explicit_type) or _as_period(explicit_greeting)
    if period is None:
        hour = _as_hour(local_hour)
        period = period_for_hour(hour if hour is not None else now.hour)

    if explicit_greeting:
        return period, explicit_greeting
    if explicit_type and _as_period(explicit_type) is None:
        return period, explicit_type
    return period, GREETINGS[period]


def _air_quality_level(level: Any, index: int | float | None) -> str | None:
    text = _clean_text(level)
    if text is not None:
        return text
    if index is None:
        return None
    return AQI_LEVELS.get(round_half_up(index))


def _item_fields(raw: dict[str, Any], table: FieldTable) -> dict[str, str | None]:
    return {field: _clean_text(first_present(raw, paths)) for field, paths in table.items()}


def _event_time_label(start: str | None) -> str | None:
    if start is None:
        return None
    try:
        parsed = date_parser.isoparse(start)
    except (ValueError, OverflowError):
        return start
    if ":" not in start:
        return None
    return parsed.strftime("%H:%M")


def normalize_events(value: Any) -> list[dict[str, Any]]:
    events: list[dict[str, Any]] = []
    for raw in value if isinstance(value, list) else []:
        if isinstance(raw, str):
            raw = {"title": raw}
        if not isinstance(raw, dict):
            continue
        start = _clean_text(first_present(raw, EVENT_ITEM_FIELDS["start"]))
        events.append(
            {
                "title": _clean_text(first_present(raw, EVENT_ITEM_FIELDS["title"])),
                "time": _clean_text(first_present(raw, EVENT_ITEM_FIELDS["time"])) or _event_time_label(start),
                "location": format_location(first_present(raw, EVENT_ITEM_FIELDS["location"])),
                "start": start,
            }
        )

    starts = [parse_timestamp(event["start"]) for event in events]
    if events and all(start is not None for start in starts):
        order = sorted(range(len(events)), key=lambda index: starts[index])
        events = [events[index] for index in order]
    return events


def normalize_news(value: Any) -> list[dict[str, Any]]:
    news: list[dict[str, Any]] = []
    for raw in value if isinstance(value, list) else []:
        if isinstance(raw, str):
            raw = {"title": raw}
        if not isinstance(raw, dict):
            continue
        news.append(_item_fields(raw, NEWS_ITEM_FIELDS))
    return news


def normalize_downloads(value: Any) -> list[dict[str, Any]]:
    downloads: list[dict[str, Any]] = []
    for raw in value if isinstance(value, list) else []:
        if isinstance(raw, str):
            raw = {"title": raw}
        if not isinstance(raw, dict):
            continue
        downloads.append(_item_fields(raw, DOWNLOAD_ITEM_FIELDS))
    return downloads


def _build_brief(document: Any, fields: FieldTable, now: datetime) -> dict[str, Any]:
    def resolve(field: str) -> Any:
        return first_present(document, fields.get(field, ()))

    def number(field: str) -> int | float | None:
        return coerce_number(resolve(field))

    def text(field: str) -> str | None:
        return _clean_text(resolve(field))

    def sequence(field: str) -> list[Any]:
        return first_list(document, fields.get(field, ()))

    period, greeting = resolve_time_of_day(
        greeting=resolve("meta.greeting"),
        brief_type=resolve("meta.briefType"),
        time_of_day=resolve("meta.timeOfDay"),
        local_hour=resolve("meta.localHour"),
        now=now,
    )

    steps = _non_negative(resolve("health.steps.count"))
    distance = _non_negative(resolve("health.steps.distanceKm"))
    calories = _non_negative(resolve("health.steps.calories"))
    if steps is not None:
        if distance is None:
            distance = coerce_number(steps * KM_PER_STEP)
        if calories is None:
            calories = round_half_up(steps * CALORIES_PER_STEP)

    aqi_index = number("weather.airQuality.index")

    return {
        "meta": {
            "date": format_date_label(resolve("meta.date"), now),
            "time": text("meta.time") or now.strftime("%H:%M"),
            "location": format_location(resolve("meta.location")),
            "timeOfDay": period,
            "greeting": greeting,
            "briefLabel": BRIEF_LABELS[period],
            "updatedAt": text("meta.updatedAt"),
        },
        "weather": {
            "tempC": number("weather.tempC"),
            "feelsLikeC": number("weather.feelsLikeC"),
            "condition": text("weather.condition"),
            "tonight": {
                "summary": text("weather.tonight.summary"),
                "rainChancePercent": number("weather.tonight.rainChancePercent"),
                "windMph": number("weather.tonight.windMph"),
            },
            "tomorrow": {
                "minC": number("weather.tomorrow.minC"),
                "maxC": number("weather.tomorrow.maxC"),
                "summary": text("weather.tomorrow.summary"),
            },
            "airQuality": {
                "level": _air_quality_level(resolve("weather.airQuality.level"), aqi_index),
                "index": aqi_index,
            },
        },
        "health": {
            "steps": {
                "count": steps,
                "distanceKm": distance,
                "calories": calories,
                "activeMinutes": _non_negative(resolve("health.steps.activeMinutes")),
            },
            "heartRateBpm": _non_negative(resolve("health.heartRateBpm")),
            "sleep": {
                "durationMinutes": sleep_duration_minutes(
                    explicit_minutes=resolve("health.sleep.minutes"),
                    start=resolve("health.sleep.start"),
                    end=resolve("health.sleep.end"),
                    raw=resolve("health.sleep.raw"),
                ),
                "quality": text("health.sleep.quality"),
                "notes": text("health.sleep.notes"),
                "startLocal": text("health.sleep.start"),
                "endLocal": text("health.sleep.end"),
            },
        },
        "events": normalize_events(sequence("events")),
        "news": normalize_news(sequence("news")),
        "downloads": normalize_downloads(sequence("downloads")),
    }


def default_brief(now: datetime) -> dict[str, Any]:
    brief = _build_brief({}, {}, now)
    brief["meta"]["location"] = DEFAULT_LOCATION
    return brief


def canonicalize_document(document: Any, now: datetime) -> tuple[dict[str, Any], str | None]:
    try:
        variant = detect_shape(document)
    except ShapeUnrecognized as exc:
        logger.info("Unrecognized brief document; using default brief (%s).", exc)
        return default_brief(now), None

    try:
        brief = _build_brief(document, variant.fields, now)
    except Exception:
        logger.exception("Failed to canonicalize %s document; using default brief.", variant.name)
        return default_brief(now), None
    return brief, variant.name


def canonicalize(document: Any, now: datetime) -> dict[str, Any]:
    brief, _shape = canonicalize_document(document, now)
    return brief
