import base64
import json
import os
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path
from unittest import mock

from statusbrief.canonicalize import canonicalize, default_brief
from statusbrief.config import Settings
from statusbrief.pipeline import (
    BriefResult,
    build_brief,
    build_brief_for_settings,
    clear_last_good,
    load_last_good,
    save_last_good,
)


NOW = datetime(2025, 12, 26, 9, 15, tzinfo=timezone.utc)
DOCUMENT = {"location": "Leeds", "current_temperature_c": 6, "steps_today": 1000}


def _encode(document: object) -> str:
    text = json.dumps(document, ensure_ascii=False)
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


class TestBuildBrief(unittest.TestCase):
    def test_decoded_document_is_used_and_cached(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            cache_path = Path(td) / "runtime_state.db"
            result = build_brief(_encode(DOCUMENT), now=NOW, cache_path=cache_path)

            self.assertEqual(result.source, "param")
            self.assertEqual(result.shape, "flat")
            self.assertIsNone(result.failure)
            self.assertEqual(result.brief["meta"]["location"], "Leeds")
            self.assertEqual(load_last_good(cache_path), DOCUMENT)

    def test_decode_failure_falls_back_to_last_good(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            cache_path = Path(td) / "runtime_state.db"
            save_last_good(cache_path, DOCUMENT)

            with self.assertLogs("statusbrief.pipeline", level="INFO"):
                result = build_brief("abcde", now=NOW, cache_path=cache_path)

            self.assertEqual(result.source, "cache")
            self.assertEqual(result.shape, "flat")
            self.assertEqual(result.failure.reason, "base64")
            self.assertEqual(result.brief, canonicalize(DOCUMENT, NOW))

    def test_decode_failure_without_cache_gives_default(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            cache_path = Path(td) / "runtime_state.db"
            result = build_brief(None, now=NOW, cache_path=cache_path)

            self.assertEqual(result.source, "default")
            self.assertIsNone(result.shape)
            self.assertEqual(result.failure.reason, "empty")
            self.assertEqual(result.brief, default_brief(NOW))

    def test_no_cache_path_never_touches_storage(self) -> None:
        result = build_brief("", now=NOW)
        self.assertEqual(result.source, "default")
        self.assertEqual(result.brief, default_brief(NOW))

    def test_unrecognized_document_does_not_replace_last_good(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            cache_path = Path(td) / "runtime_state.db"
            save_last_good(cache_path, DOCUMENT)

            result = build_brief(_encode({"unrelated": True}), now=NOW, cache_path=cache_path)

            self.assertEqual(result.source, "param")
            self.assertIsNone(result.shape)
            self.assertEqual(result.brief, default_brief(NOW))
            self.assertEqual(load_last_good(cache_path), DOCUMENT)

    def test_cleared_last_good_is_not_used(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            cache_path = Path(td) / "runtime_state.db"
            save_last_good(cache_path, DOCUMENT)
            clear_last_good(cache_path)

            result = build_brief("abcde", now=NOW, cache_path=cache_path)

            self.assertIsNone(load_last_good(cache_path))
            self.assertEqual(result.source, "default")

    def test_custom_cache_key(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            cache_path = Path(td) / "runtime_state.db"
            build_brief(_encode(DOCUMENT), now=NOW, cache_path=cache_path, cache_key="kitchen.brief")
            self.assertIsNone(load_last_good(cache_path))
            self.assertEqual(load_last_good(cache_path, "kitchen.brief"), DOCUMENT)

    def test_payload_reports_decode_failure(self) -> None:
        result = build_brief("abcde", now=NOW)
        payload = result.to_payload()
        self.assertEqual(payload["status"], "ok")
        self.assertEqual(payload["source"], "default")
        self.assertIsNone(payload["shape"])
        self.assertEqual(payload["decode_failure"]["reason"], "base64")

        payload = BriefResult(brief={}, source="param", shape="flat").to_payload()
        self.assertNotIn("decode_failure", payload)


class TestBuildBriefForSettings(unittest.TestCase):
    def _settings(self, td: str, **env: str) -> Settings:
        values = {"STATE_DIR": td}
        values.update(env)
        with mock.patch.dict(os.environ, values, clear=True):
            return Settings.from_env()

    def test_naive_clock_uses_configured_timezone(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            settings = self._settings(td, TIMEZONE="Europe/London")
            result = build_brief_for_settings(settings, None, now=datetime(2025, 6, 1, 20, 0))
            self.assertEqual(result.brief["meta"]["time"], "20:00")
            self.assertEqual(result.brief["meta"]["timeOfDay"], "evening")

    def test_aware_clock_is_converted(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            settings = self._settings(td, TIMEZONE="Europe/London")
            now = datetime(2025, 6, 1, 11, 30, tzinfo=timezone.utc)
            result = build_brief_for_settings(settings, None, now=now)
            self.assertEqual(result.brief["meta"]["time"], "12:30")
            self.assertEqual(result.brief["meta"]["timeOfDay"], "afternoon")

    def test_unknown_timezone_falls_back_to_utc(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            settings = self._settings(td, TIMEZONE="Mars/Olympus_Mons")
            now = datetime(2025, 6, 1, 11, 30, tzinfo=timezone.utc)
            with self.assertLogs("statusbrief.pipeline", level="WARNING"):
                result = build_brief_for_settings(settings, None, now=now)
            self.assertEqual(result.brief["meta"]["time"], "11:30")

    def test_cache_round_trip_through_settings(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            settings = self._settings(td)
            first = build_brief_for_settings(settings, _encode(DOCUMENT), now=NOW)
            second = build_brief_for_settings(settings, "not base64!", now=NOW)
            self.assertEqual(first.source, "param")
            self.assertEqual(second.source, "cache")
            self.assertEqual(second.brief, first.brief)

    def test_disabled_cache_writes_nothing(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            settings = self._settings(td, ENABLE_LAST_GOOD_CACHE="false")
            build_brief_for_settings(settings, _encode(DOCUMENT), now=NOW)
            result = build_brief_for_settings(settings, None, now=NOW)
            self.assertEqual(result.source, "default")
            self.assertFalse(settings.runtime_db_file.exists())


if __name__ == "__main__":
    unittest.main()
