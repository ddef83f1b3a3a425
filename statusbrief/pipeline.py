from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .canonicalize import canonicalize_document
from .config import DEFAULT_CACHE_KEY, Settings
from .decoder import DecodeFailure, decode
from .storage import delete_runtime_value, get_runtime_value, set_runtime_value


logger = logging.getLogger(__name__)

LAST_GOOD_CACHE_KEY = DEFAULT_CACHE_KEY

SOURCE_PARAM = "param"
SOURCE_CACHE = "cache"
SOURCE_DEFAULT = "default"


@dataclass(frozen=True)
class BriefResult:
    brief: dict[str, Any]
    source: str
    shape: str | None
    failure: DecodeFailure | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "status": "ok",
            "source": self.source,
            "shape": self.shape,
            "brief": self.brief,
        }
        if self.failure is not None:
            payload["decode_failure"] = {"reason": self.failure.reason, "detail": self.failure.detail}
        return payload


def load_last_good(cache_path: Path, cache_key: str = LAST_GOOD_CACHE_KEY) -> Any | None:
    return get_runtime_value(cache_path, cache_key)


def save_last_good(cache_path: Path, document: Any, cache_key: str = LAST_GOOD_CACHE_KEY) -> None:
    set_runtime_value(cache_path, cache_key, document)


def clear_last_good(cache_path: Path, cache_key: str = LAST_GOOD_CACHE_KEY) -> None:
    delete_runtime_value(cache_path, cache_key)


def build_brief(
    raw: str | None,
    *,
    now: datetime,
    cache_path: Path | None = None,
    cache_key: str = LAST_GOOD_CACHE_KEY,
) -> BriefResult:
    decoded = decode(raw)

    if not isinstance(decoded, DecodeFailure):
        brief, shape = canonicalize_document(decoded, now)
        if cache_path is not None and shape is not None:
            save_last_good(cache_path, decoded, cache_key)
        return BriefResult(brief=brief, source=SOURCE_PARAM, shape=shape)

    if cache_path is not None:
        cached = load_last_good(cache_path, cache_key)
        if cached is not None:
            logger.info("Using last-good brief document after decode failure (%s).", decoded.reason)
            brief, shape = canonicalize_document(cached, now)
            return BriefResult(brief=brief, source=SOURCE_CACHE, shape=shape, failure=decoded)

    brief, shape = canonicalize_document(None, now)
    return BriefResult(brief=brief, source=SOURCE_DEFAULT, shape=shape, failure=decoded)


def local_tz(settings: Settings) -> ZoneInfo:
    try:
        return ZoneInfo(settings.timezone)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone '%s'. Falling back to UTC.", settings.timezone)
        return ZoneInfo("UTC")


def build_brief_for_settings(
    settings: Settings,
    raw: str | None,
    *,
    now: datetime | None = None,
) -> BriefResult:
    tz = local_tz(settings)
    if now is None:
        current = datetime.now(tz)
    elif now.tzinfo is None:
        current = now.replace(tzinfo=tz)
    else:
        current = now.astimezone(tz)

    cache_path = settings.runtime_db_file if settings.enable_last_good_cache else None
    return build_brief(raw, now=current, cache_path=cache_path, cache_key=settings.cache_key)
