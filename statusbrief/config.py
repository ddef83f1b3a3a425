from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from dotenv import load_dotenv


load_dotenv()

DEFAULT_CACHE_KEY = "brief.last_good"
DEFAULT_DATA_PARAM = "data"


EnvGetter = Callable[[str], str | None]


def _bool_env(name: str, default: bool, *, getenv: EnvGetter = os.getenv) -> bool:
    value = getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _str_env(*names: str, default: str = "", getenv: EnvGetter = os.getenv) -> str:
    for name in names:
        value = getenv(name)
        if value is not None:
            return value.strip()
    return default


def _int_env(
    name: str,
    default: int,
    minimum: int | None = None,
    maximum: int | None = None,
    *,
    getenv: EnvGetter = os.getenv,
) -> int:
    value = getenv(name)
    if value is None:
        parsed = default
    else:
        try:
            parsed = int(value.strip())
        except ValueError:
            parsed = default

    if minimum is not None and parsed < minimum:
        parsed = minimum
    if maximum is not None and parsed > maximum:
        parsed = maximum
    return parsed


@dataclass(frozen=True)
class Settings:
    log_level: str
    timezone: str
    api_port: int

    state_dir: Path
    runtime_db_file: Path

    data_param_name: str
    cache_key: str
    enable_last_good_cache: bool
    text_template_file: Path

    @classmethod
    def from_env(cls) -> "Settings":
        state_dir = Path(os.getenv("STATE_DIR", "state")).resolve()

        runtime_db_name = _str_env("RUNTIME_DB_FILE", default="runtime_state.db") or "runtime_state.db"
        runtime_db_file = Path(runtime_db_name)
        if not runtime_db_file.is_absolute():
            runtime_db_file = state_dir / runtime_db_file

        text_template_file = Path(_str_env("BRIEF_TEXT_TEMPLATE_FILE", default="brief_template.j2") or "brief_template.j2")
        if not text_template_file.is_absolute():
            text_template_file = state_dir / text_template_file

        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            timezone=_str_env("TIMEZONE", "TZ", default="UTC") or "UTC",
            api_port=_int_env("API_PORT", 8080, minimum=1, maximum=65535),
            state_dir=state_dir,
            runtime_db_file=runtime_db_file,
            data_param_name=_str_env("BRIEF_DATA_PARAM", default=DEFAULT_DATA_PARAM) or DEFAULT_DATA_PARAM,
            cache_key=_str_env("BRIEF_CACHE_KEY", default=DEFAULT_CACHE_KEY) or DEFAULT_CACHE_KEY,
            enable_last_good_cache=_bool_env("ENABLE_LAST_GOOD_CACHE", True),
            text_template_file=text_template_file,
        )

    def ensure_state_paths(self) -> None:
        self.state_dir.mkdir(parents=True, exist_ok=True)
        self.runtime_db_file.parent.mkdir(parents=True, exist_ok=True)
