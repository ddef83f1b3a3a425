from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


logger = logging.getLogger(__name__)


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _connect_runtime_db(db_path: Path) -> sqlite3.Connection:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path, timeout=30)
    conn.row_factory = sqlite3.Row
    try:
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS runtime_kv (
                key TEXT PRIMARY KEY,
                value_json TEXT NOT NULL,
                updated_at_utc TEXT NOT NULL
            )
            """
        )
    except sqlite3.Error:
        conn.close()
        raise
    return conn


def _to_json_string(value: Any) -> str:
    return json.dumps(value, sort_keys=True)


def _from_json_string(value_json: str) -> Any:
    return json.loads(value_json)


def set_runtime_value(db_path: Path, key: str, value: Any) -> None:
    try:
        value_json = _to_json_string(value)
    except (TypeError, ValueError) as exc:
        logger.warning("Not storing runtime value '%s': %s", key, exc)
        return
    try:
        conn = _connect_runtime_db(db_path)
        try:
            with conn:
                conn.execute(
                    """
                    INSERT INTO runtime_kv (key, value_json, updated_at_utc)
                    VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value_json = excluded.value_json,
                        updated_at_utc = excluded.updated_at_utc
                    """,
                    (key, value_json, _utc_now_iso()),
                )
        finally:
            conn.close()
    except (sqlite3.Error, OSError) as exc:
        logger.warning("Failed to write runtime value '%s': %s", key, exc)


def get_runtime_value(db_path: Path, key: str, default: Any = None) -> Any:
    try:
        conn = _connect_runtime_db(db_path)
        try:
            row = conn.execute(
                "SELECT value_json FROM runtime_kv WHERE key = ? LIMIT 1",
                (key,),
            ).fetchone()
        finally:
            conn.close()
    except (sqlite3.Error, OSError) as exc:
        logger.warning("Failed to read runtime value '%s': %s", key, exc)
        return default

    if row is None:
        return default
    try:
        return _from_json_string(str(row[0]))
    except (json.JSONDecodeError, TypeError, ValueError):
        return default


def get_runtime_updated_at(db_path: Path, key: str) -> datetime | None:
    try:
        conn = _connect_runtime_db(db_path)
        try:
            row = conn.execute(
                "SELECT updated_at_utc FROM runtime_kv WHERE key = ? LIMIT 1",
                (key,),
            ).fetchone()
        finally:
            conn.close()
    except (sqlite3.Error, OSError):
        return None
    if row is None:
        return None
    try:
        parsed = datetime.fromisoformat(str(row[0]).replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def delete_runtime_value(db_path: Path, key: str) -> None:
    try:
        conn = _connect_runtime_db(db_path)
        try:
            with conn:
                conn.execute("DELETE FROM runtime_kv WHERE key = ?", (key,))
        finally:
            conn.close()
    except (sqlite3.Error, OSError) as exc:
        logger.warning("Failed to delete runtime value '%s': %s", key, exc)


def write_json(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(".tmp")
    tmp_path.write_text(json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False), encoding="utf-8")
    tmp_path.replace(path)


def read_json(path: Path) -> dict[str, Any] | None:
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError:
        return None
