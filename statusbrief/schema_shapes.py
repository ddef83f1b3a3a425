from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable


class ShapeUnrecognized(ValueError):
    """Raised when a decoded document matches none of the known producer shapes."""


def safe_get(value: Any, keys: list[Any], default: Any = None) -> Any:
    cursor = value
    for key in keys:
        if isinstance(cursor, dict):
            cursor = cursor.get(key, default)
        elif isinstance(cursor, list) and isinstance(key, int):
            if 0 <= key < len(cursor):
                cursor = cursor[key]
            else:
                return default
        else:
            return default
    return cursor


def _path_keys(path: str) -> list[Any]:
    return [int(part) if part.isdigit() else part for part in path.split(".")]


def get_path(document: Any, path: str) -> Any:
    return safe_get(document, _path_keys(path), default=None)


def is_present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def first_present(document: Any, paths: tuple[str, ...]) -> Any:
    """Walk a fallback chain and return the first present value, or None."""
    for path in paths:
        value = get_path(document, path)
        if is_present(value):
            return value
    return None


def first_list(document: Any, paths: tuple[str, ...]) -> list[Any]:
    for path in paths:
        value = get_path(document, path)
        if isinstance(value, list):
            return value
    return []


FieldTable = dict[str, tuple[str, ...]]


@dataclass(frozen=True)
class ShapeVariant:
    name: str
    detect: Callable[[dict[str, Any]], bool]
    fields: FieldTable


# Item-level chains are shared by every variant.
EVENT_ITEM_FIELDS: FieldTable = {
    "title": ("title", "name", "summary", "subject"),
    "time": ("time", "when", "timeLabel"),
    "location": ("location", "where", "place"),
    "start": ("start", "startTime", "start_time", "startDate", "startsAt", "starts_at"),
}

NEWS_ITEM_FIELDS: FieldTable = {
    "title": ("title", "headline", "name"),
    "source": ("source.name", "source", "publisher", "outlet"),
}

DOWNLOAD_ITEM_FIELDS: FieldTable = {
    "title": ("title", "name"),
    "date": ("date", "when"),
    "status": ("status", "state"),
}


CANONICAL_FIELDS: FieldTable = {
    "meta.date": ("meta.date",),
    "meta.time": ("meta.time",),
    "meta.location": ("meta.location",),
    "meta.timeOfDay": ("meta.timeOfDay",),
    "meta.greeting": ("meta.greeting",),
    "meta.briefType": (),
    "meta.localHour": (),
    "meta.updatedAt": ("meta.updatedAt",),
    "weather.tempC": ("weather.tempC",),
    "weather.feelsLikeC": ("weather.feelsLikeC",),
    "weather.condition": ("weather.condition",),
    "weather.tonight.summary": ("weather.tonight.summary",),
    "weather.tonight.rainChancePercent": ("weather.tonight.rainChancePercent",),
    "weather.tonight.windMph": ("weather.tonight.windMph",),
    "weather.tomorrow.minC": ("weather.tomorrow.minC",),
    "weather.tomorrow.maxC": ("weather.tomorrow.maxC",),
    "weather.tomorrow.summary": ("weather.tomorrow.summary",),
    "weather.airQuality.level": ("weather.airQuality.level",),
    "weather.airQuality.index": ("weather.airQuality.index",),
    "health.steps.count": ("health.steps.count",),
    "health.steps.distanceKm": ("health.steps.distanceKm",),
    "health.steps.calories": ("health.steps.calories",),
    "health.steps.activeMinutes": ("health.steps.activeMinutes",),
    "health.heartRateBpm": ("health.heartRateBpm",),
    "health.sleep.minutes": ("health.sleep.durationMinutes",),
    "health.sleep.start": ("health.sleep.startLocal",),
    "health.sleep.end": ("health.sleep.endLocal",),
    "health.sleep.raw": (),
    "health.sleep.quality": ("health.sleep.quality",),
    "health.sleep.notes": ("health.sleep.notes",),
    "events": ("events",),
    "news": ("news",),
    "downloads": ("downloads",),
}

# Nested generation with a structured tonight block and sleep minute counts.
NESTED_V2_FIELDS: FieldTable = {
    "meta.date": ("meta.date", "date", "meta.updatedAt", "updatedAt"),
    "meta.time": ("meta.time", "time"),
    "meta.location": ("meta.location", "location", "city"),
    "meta.timeOfDay": ("meta.timeOfDay", "timeOfDay"),
    "meta.greeting": ("meta.greeting", "greeting"),
    "meta.briefType": ("meta.briefType", "briefType", "brief_type"),
    "meta.localHour": ("meta.localHour", "localHour", "local_hour"),
    "meta.updatedAt": ("meta.updatedAt", "updatedAt", "updated_at"),
    "weather.tempC": ("weather.tempC", "weather.temp_c", "weather.temperature"),
    "weather.feelsLikeC": ("weather.feelsLikeC", "weather.feelsLike", "weather.feels_like_c"),
    "weather.condition": ("weather.condition", "weather.summary"),
    "weather.tonight.summary": ("weather.tonight.summary", "weather.tonight.condition"),
    "weather.tonight.rainChancePercent": (
        "weather.tonight.rainChancePercent",
        "weather.tonight.chance_of_rain_percent",
        "weather.tonight.rain_percent",
    ),
    "weather.tonight.windMph": ("weather.tonight.windMph", "weather.tonight.wind_mph"),
    "weather.tomorrow.minC": ("weather.tomorrow.minC", "weather.tomorrow.min_c", "weather.tomorrow.low"),
    "weather.tomorrow.maxC": ("weather.tomorrow.maxC", "weather.tomorrow.max_c", "weather.tomorrow.high"),
    "weather.tomorrow.summary": ("weather.tomorrow.summary", "weather.tomorrow.condition"),
    "weather.airQuality.level": ("weather.airQuality.level", "weather.air_quality.level", "weather.aqi_level"),
    "weather.airQuality.index": ("weather.airQuality.index", "weather.air_quality.index", "weather.aqi"),
    "health.steps.count": ("health.steps.count", "health.steps"),
    "health.steps.distanceKm": (
        "health.steps.distanceKm",
        "health.steps.distance_km",
        "health.distanceKm",
        "health.distance",
    ),
    "health.steps.calories": ("health.steps.calories", "health.activeCalories", "health.calories"),
    "health.steps.activeMinutes": (
        "health.steps.activeMinutes",
        "health.activeMinutes",
        "health.active_minutes",
    ),
    "health.heartRateBpm": (
        "health.heartRateBpm",
        "health.heartRate",
        "health.restingHeartRate",
        "health.resting_hr",
    ),
    "health.sleep.minutes": ("health.sleep.durationMinutes", "health.sleep.minutes"),
    "health.sleep.start": ("health.sleep.startLocal", "health.sleep.start"),
    "health.sleep.end": ("health.sleep.endLocal", "health.sleep.end"),
    "health.sleep.raw": ("health.sleep.duration", "health.sleep.text"),
    "health.sleep.quality": ("health.sleep.quality", "health.sleepQuality"),
    "health.sleep.notes": ("health.sleep.notes", "health.sleep.note", "health.sleepNote"),
    "events": ("events", "calendar.events", "calendarEvents"),
    "news": ("news", "headlines"),
    "downloads": ("downloads", "magazines", "magazine"),
}

# Nested generation with scalar health values and loose tonight_* keys.
# Nested object paths precede the legacy aliases.
NESTED_V1_FIELDS: FieldTable = {
    "meta.date": ("date", "updatedAt", "meta.date"),
    "meta.time": ("time", "meta.time"),
    "meta.location": ("location", "city", "meta.location"),
    "meta.timeOfDay": ("timeOfDay", "meta.timeOfDay"),
    "meta.greeting": ("greeting", "meta.greeting"),
    "meta.briefType": ("briefType", "brief_type", "meta.briefType"),
    "meta.localHour": ("localHour", "local_hour", "hour", "meta.localHour"),
    "meta.updatedAt": ("updatedAt", "meta.updatedAt"),
    "weather.tempC": ("weather.tempC", "weather.temp_c", "weather.temperature", "current_temperature_c", "tempC"),
    "weather.feelsLikeC": ("weather.feelsLikeC", "weather.feelsLike", "weather.feels_like_c", "feels_like_c"),
    "weather.condition": ("weather.condition", "weather.summary", "tonight_summary", "condition"),
    "weather.tonight.summary": (
        "weather.tonight.summary",
        "weather.tonight.condition",
        "tonight_summary",
        "tonight_conditions.summary",
    ),
    "weather.tonight.rainChancePercent": (
        "weather.tonight.rainChancePercent",
        "weather.tonight.chance_of_rain_percent",
        "tonight_rain_percent",
        "tonight_conditions.chance_of_rain_percent",
    ),
    "weather.tonight.windMph": (
        "weather.tonight.windMph",
        "weather.tonight.wind_mph",
        "tonight_wind_mph",
        "tonight_conditions.wind_mph",
    ),
    "weather.tomorrow.minC": ("weather.tomorrow.minC", "weather.tomorrow.min_c", "tomorrow_min_c"),
    "weather.tomorrow.maxC": ("weather.tomorrow.maxC", "weather.tomorrow.max_c", "tomorrow_max_c"),
    "weather.tomorrow.summary": ("weather.tomorrow.summary", "weather.tomorrow.condition", "tomorrow_summary"),
    "weather.airQuality.level": (
        "weather.airQuality.level",
        "weather.air_quality.level",
        "weather.aqi_level",
        "aqi_level",
    ),
    "weather.airQuality.index": (
        "weather.airQuality.index",
        "weather.air_quality.index",
        "weather.aqi",
        "aqi",
    ),
    "health.steps.count": ("health.steps.count", "health.steps", "steps_today", "stepsToday", "steps"),
    "health.steps.distanceKm": (
        "health.steps.distanceKm",
        "health.steps.distance_km",
        "health.distanceKm",
        "health.distance",
        "distance",
        "distance_km",
    ),
    "health.steps.calories": ("health.steps.calories", "health.activeCalories", "health.calories", "calories"),
    "health.steps.activeMinutes": ("health.steps.activeMinutes", "health.activeMinutes", "active_minutes"),
    "health.heartRateBpm": (
        "health.heartRateBpm",
        "health.heartRate",
        "health.restingHeartRate",
        "heart_rate",
        "resting_hr",
    ),
    "health.sleep.minutes": (
        "health.sleep.durationMinutes",
        "health.sleep.minutes",
        "health.sleepMinutes",
        "sleep_minutes",
    ),
    "health.sleep.start": ("health.sleep.startLocal", "health.sleep.start", "health.sleepStart", "sleep_start"),
    "health.sleep.end": ("health.sleep.endLocal", "health.sleep.end", "health.sleepEnd", "sleep_end"),
    "health.sleep.raw": ("health.sleep.duration", "health.sleep.text", "health.sleep", "sleepDuration", "sleep"),
    "health.sleep.quality": ("health.sleep.quality", "health.sleepQuality", "sleepQuality"),
    "health.sleep.notes": ("health.sleep.notes", "health.sleep.note", "health.sleepNote", "sleepNote"),
    "events": ("events", "calendarEvents"),
    "news": ("news", "headlines"),
    "downloads": ("magazine", "magazines", "downloads"),
}


# Oldest generation: everything at the top level.
FLAT_FIELDS: FieldTable = {
    "meta.date": ("date", "updatedAt", "updated_at"),
    "meta.time": ("time",),
    "meta.location": ("location", "city", "location_name"),
    "meta.timeOfDay": ("timeOfDay", "time_of_day"),
    "meta.greeting": ("greeting",),
    "meta.briefType": ("briefType", "brief_type"),
    "meta.localHour": ("localHour", "local_hour", "hour"),
    "meta.updatedAt": ("updatedAt", "updated_at"),
    "weather.tempC": ("current_temperature_c", "tempC", "temperature_c"),
    "weather.feelsLikeC": ("feels_like_c", "feelsLikeC", "feelsLike"),
    "weather.condition": ("condition", "current_condition", "tonight_summary"),
    "weather.tonight.summary": ("tonight_summary",),
    "weather.tonight.rainChancePercent": ("tonight_rain_percent", "tonight_chance_of_rain_percent"),
    "weather.tonight.windMph": ("tonight_wind_mph",),
    "weather.tomorrow.minC": ("tomorrow_min_c", "tomorrow_low_c"),
    "weather.tomorrow.maxC": ("tomorrow_max_c", "tomorrow_high_c"),
    "weather.tomorrow.summary": ("tomorrow_summary",),
    "weather.airQuality.level": ("aqi_level", "air_quality_level"),
    "weather.airQuality.index": ("aqi", "air_quality_index"),
    "health.steps.count": ("steps_today", "stepsToday", "steps"),
    "health.steps.distanceKm": ("distance_km", "distance"),
    "health.steps.calories": ("calories", "active_calories"),
    "health.steps.activeMinutes": ("active_minutes", "activeMinutes"),
    "health.heartRateBpm": ("resting_hr", "heart_rate", "heartRate"),
    "health.sleep.minutes": ("sleep_minutes", "sleepMinutes"),
    "health.sleep.start": ("sleep_start",),
    "health.sleep.end": ("sleep_end",),
    "health.sleep.raw": ("sleepDuration", "sleep_duration", "sleep"),
    "health.sleep.quality": ("sleepQuality", "sleep_quality"),
    "health.sleep.notes": ("sleepNote", "sleep_note"),
    "events": ("calendarEvents", "events", "calendar_events"),
    "news": ("news", "headlines"),
    "downloads": ("magazines", "magazine", "downloads"),
}

FLAT_MARKERS = frozenset({"current_temperature_c", "steps_today", "stepsToday", "tonight_summary", "sleepDuration"})

# Any top-level key the flat table knows about.
LOOSE_KEYS = frozenset(path.split(".")[0] for paths in FLAT_FIELDS.values() for path in paths)


def _is_canonical(document: dict[str, Any]) -> bool:
    # briefLabel only ever appears in our own output.
    meta = document.get("meta")
    health = document.get("health")
    return (
        isinstance(meta, dict)
        and "briefLabel" in meta
        and "timeOfDay" in meta
        and isinstance(document.get("weather"), dict)
        and isinstance(health, dict)
        and isinstance(health.get("steps"), dict)
        and isinstance(health.get("sleep"), dict)
        and isinstance(document.get("events"), list)
        and isinstance(document.get("news"), list)
    )


def _is_nested_v2(document: dict[str, Any]) -> bool:
    return is_present(get_path(document, "weather.tonight")) and is_present(
        get_path(document, "health.sleep.durationMinutes")
    )


def _is_nested_v1(document: dict[str, Any]) -> bool:
    return isinstance(document.get("weather"), dict) or isinstance(document.get("health"), dict)


def _is_flat(document: dict[str, Any]) -> bool:
    return any(key in document for key in FLAT_MARKERS)


def _is_loose(document: dict[str, Any]) -> bool:
    return any(key in document for key in LOOSE_KEYS)


CANONICAL = ShapeVariant("canonical", _is_canonical, CANONICAL_FIELDS)
NESTED_V2 = ShapeVariant("nested_v2", _is_nested_v2, NESTED_V2_FIELDS)
NESTED_V1 = ShapeVariant("nested_v1", _is_nested_v1, NESTED_V1_FIELDS)
FLAT = ShapeVariant("flat", _is_flat, FLAT_FIELDS)
LOOSE = ShapeVariant("loose", _is_loose, FLAT_FIELDS)

SHAPE_VARIANTS: tuple[ShapeVariant, ...] = (CANONICAL, NESTED_V2, NESTED_V1, FLAT, LOOSE)


def detect_shape(document: Any) -> ShapeVariant:
    if not isinstance(document, dict) or not document:
        raise ShapeUnrecognized("document is not a non-empty JSON object")
    for variant in SHAPE_VARIANTS:
        if variant.detect(document):
            return variant
    raise ShapeUnrecognized(f"no known shape matches keys {sorted(map(str, document))[:10]}")
