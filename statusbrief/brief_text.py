from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from jinja2 import StrictUndefined, TemplateError
from jinja2.sandbox import SandboxedEnvironment

from .config import Settings
from .numeric_utils import (
    PLACEHOLDER,
    count_label,
    distance_km,
    duration_hm,
    percentage,
    rounded_temperature,
    speed_mph,
)


logger = logging.getLogger(__name__)

DEFAULT_BRIEF_TEMPLATE = """{{ meta.greeting }} · {{ meta.briefLabel }}
📅 {{ meta.date }} {{ meta.time }}{{ " | 📍 " ~ meta.location if meta.location else "" }}
🌤️ {{ weather.tempC|temperature }} (feels {{ weather.feelsLikeC|temperature }}){{ " " ~ weather.condition if weather.condition else "" }}
🌙 Tonight: {{ weather.tonight.summary or none_value }} | ☔ {{ weather.tonight.rainChancePercent|percent }} | 💨 {{ weather.tonight.windMph|mph }}
📆 Tomorrow: {{ weather.tomorrow.minC|temperature }} to {{ weather.tomorrow.maxC|temperature }}{{ " " ~ weather.tomorrow.summary if weather.tomorrow.summary else "" }}
{% if weather.airQuality.level %}
🏭 Air quality: {{ weather.airQuality.level }}{{ " (" ~ weather.airQuality.index ~ ")" if weather.airQuality.index is not none else "" }}
{% endif %}
👣 {{ health.steps.count|thousands }} steps | 🗺️ {{ health.steps.distanceKm|km }} | 🔥 {{ health.steps.calories|thousands }} kcal
💤 {{ health.sleep.durationMinutes|duration }}{{ " (" ~ health.sleep.quality ~ ")" if health.sleep.quality else "" }} | 💓 {{ health.heartRateBpm|thousands }} bpm
{% for event in events %}
🗓️ {{ event.time ~ " " if event.time else "" }}{{ event.title or none_value }}{{ " @ " ~ event.location if event.location else "" }}
{% endfor %}
{% for item in news %}
📰 {{ item.title or none_value }}{{ " (" ~ item.source ~ ")" if item.source else "" }}
{% endfor %}
{% for item in downloads %}
📚 {{ item.title or none_value }}{{ " [" ~ item.status ~ "]" if item.status else "" }}
{% endfor %}"""

MAX_TEMPLATE_CHARS = 16000


def _template_environment() -> SandboxedEnvironment:
    env = SandboxedEnvironment(
        autoescape=False,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=False,
        undefined=StrictUndefined,
    )
    env.filters["temperature"] = rounded_temperature
    env.filters["percent"] = percentage
    env.filters["mph"] = speed_mph
    env.filters["km"] = distance_km
    env.filters["duration"] = duration_hm
    env.filters["thousands"] = count_label
    env.globals["none_value"] = PLACEHOLDER
    return env


def _normalize_template_text(template_text: str) -> str:
    return template_text.replace("\r\n", "\n").strip("\n")


def _normalize_rendered_text(rendered: str) -> str:
    lines = [line.rstrip() for line in rendered.replace("\r\n", "\n").split("\n")]
    return "\n".join(lines).strip()


def get_default_template() -> str:
    return DEFAULT_BRIEF_TEMPLATE


def render_brief_text(brief: dict[str, Any], template_text: str | None = None) -> dict[str, Any]:
    """Render a canonical brief as plain text.

    Returns ``{"ok", "error", "text"}``; template problems are reported in
    ``error`` rather than raised.
    """
    template_text = _normalize_template_text(template_text or DEFAULT_BRIEF_TEMPLATE)
    if len(template_text) > MAX_TEMPLATE_CHARS:
        return {
            "ok": False,
            "error": f"Template is too large ({len(template_text)} chars). Max allowed: {MAX_TEMPLATE_CHARS}.",
            "text": None,
        }

    env = _template_environment()
    try:
        rendered = env.from_string(template_text).render(brief)
    except TemplateError as exc:
        return {"ok": False, "error": str(exc), "text": None}
    return {"ok": True, "error": None, "text": _normalize_rendered_text(rendered)}


def get_active_template(settings: Settings) -> dict[str, Any]:
    path: Path = settings.text_template_file
    if path.exists():
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Could not read brief template %s: %s", path, exc)
        else:
            if text.strip():
                return {"template": text, "is_custom": True, "path": str(path)}
    return {"template": DEFAULT_BRIEF_TEMPLATE, "is_custom": False, "path": str(path)}


def render_with_active_template(settings: Settings, brief: dict[str, Any]) -> dict[str, Any]:
    active = get_active_template(settings)
    result = render_brief_text(brief, active["template"])
    result["is_custom_template"] = active["is_custom"]
    result["fallback_used"] = False
    if result["ok"] or not active["is_custom"]:
        return result

    logger.warning("Custom brief template failed (%s); using the default template.", result["error"])
    fallback = render_brief_text(brief, DEFAULT_BRIEF_TEMPLATE)
    fallback["is_custom_template"] = True
    fallback["fallback_used"] = fallback["ok"]
    fallback["fallback_reason"] = result["error"]
    return fallback
