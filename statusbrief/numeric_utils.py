from __future__ import annotations

import math
import re
from typing import Any

PLACEHOLDER = "—"

_NUMBER_TOKEN = re.compile(r"[-+]?(?:\d+\.?\d*|\.\d+)")


def as_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            parsed = float(value)
        except OverflowError:
            return None
        return parsed if math.isfinite(parsed) else None
    if isinstance(value, str):
        try:
            parsed = float(value.strip())
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return None


def round_half_up(value: float) -> int:
    """Round halves towards positive infinity, the way browsers' Math.round does."""
    return int(math.floor(value + 0.5))


def _tidy(value: float) -> int | float:
    if value.is_integer():
        return int(value)
    return value


def coerce_number(value: Any) -> int | float | None:
    """Best-effort numeric read of a producer value.

    Strings have thousands separators and surrounding text stripped, so
    "8,432 steps" reads as 8432 and "-3°C" as -3. Anything that does not
    yield a finite number comes back as None.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        if as_float(value) is None:
            return None
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        return _tidy(value)
    if not isinstance(value, str):
        return None

    text = value.replace("−", "-").replace(",", "").replace("_", "")
    match = _NUMBER_TOKEN.search(text)
    if match is None:
        return None
    try:
        parsed = float(match.group(0))
    except ValueError:
        return None
    if not math.isfinite(parsed):
        return None
    return _tidy(parsed)


def rounded_temperature(value: Any, *, none_value: str = PLACEHOLDER) -> str:
    parsed = coerce_number(value)
    if parsed is None:
        return none_value
    return f"{round_half_up(parsed)}°C"


def percentage(value: Any, *, none_value: str = PLACEHOLDER) -> str:
    parsed = coerce_number(value)
    if parsed is None:
        return none_value
    return f"{round_half_up(parsed)}%"


def speed_mph(value: Any, *, none_value: str = PLACEHOLDER) -> str:
    parsed = coerce_number(value)
    if parsed is None or parsed < 0:
        return none_value
    return f"{round_half_up(parsed)} mph"


def distance_km(value: Any, *, none_value: str = PLACEHOLDER) -> str:
    # Short walks get an extra decimal.
    parsed = coerce_number(value)
    if parsed is None or parsed < 0:
        return none_value
    if round_half_up(parsed * 100) < 100:
        return f"{parsed:.2f} km"
    return f"{parsed:.1f} km"


def duration_hm(minutes: Any, *, none_value: str = PLACEHOLDER) -> str:
    parsed = coerce_number(minutes)
    if parsed is None or parsed < 0:
        return none_value
    total = round_half_up(parsed)
    hours, remainder = divmod(total, 60)
    if hours == 0:
        return f"{remainder}m"
    return f"{hours}h {remainder:02d}m"


def count_label(value: Any, *, none_value: str = PLACEHOLDER) -> str:
    parsed = coerce_number(value)
    if parsed is None:
        return none_value
    return f"{round_half_up(parsed):,}"
