import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from statusbrief.config import Settings


class TestSettingsFromEnv(unittest.TestCase):
    def test_defaults(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings.from_env()
        self.assertEqual(settings.log_level, "INFO")
        self.assertEqual(settings.timezone, "UTC")
        self.assertEqual(settings.api_port, 8080)
        self.assertEqual(settings.state_dir, Path("state").resolve())
        self.assertEqual(settings.runtime_db_file, Path("state").resolve() / "runtime_state.db")
        self.assertEqual(settings.data_param_name, "data")
        self.assertEqual(settings.cache_key, "brief.last_good")
        self.assertTrue(settings.enable_last_good_cache)

    def test_reads_overrides(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            with patch.dict(
                os.environ,
                {
                    "STATE_DIR": tmpdir,
                    "RUNTIME_DB_FILE": "brief.db",
                    "BRIEF_CACHE_KEY": "hallway.brief",
                    "BRIEF_DATA_PARAM": "payload",
                    "ENABLE_LAST_GOOD_CACHE": "no",
                    "TIMEZONE": "Europe/London",
                    "LOG_LEVEL": "debug",
                    "API_PORT": "9090",
                },
                clear=True,
            ):
                settings = Settings.from_env()
            self.assertEqual(settings.runtime_db_file, Path(tmpdir).resolve() / "brief.db")
            self.assertEqual(settings.cache_key, "hallway.brief")
            self.assertEqual(settings.data_param_name, "payload")
            self.assertFalse(settings.enable_last_good_cache)
            self.assertEqual(settings.timezone, "Europe/London")
            self.assertEqual(settings.log_level, "DEBUG")
            self.assertEqual(settings.api_port, 9090)

    def test_absolute_runtime_db_path_is_kept(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            db_path = Path(tmpdir).resolve() / "elsewhere" / "runtime.db"
            with patch.dict(os.environ, {"RUNTIME_DB_FILE": str(db_path)}, clear=True):
                settings = Settings.from_env()
            self.assertEqual(settings.runtime_db_file, db_path)

    def test_tz_is_an_alias_for_timezone(self) -> None:
        with patch.dict(os.environ, {"TZ": "America/New_York"}, clear=True):
            self.assertEqual(Settings.from_env().timezone, "America/New_York")
        with patch.dict(os.environ, {"TZ": "America/New_York", "TIMEZONE": "Asia/Tokyo"}, clear=True):
            self.assertEqual(Settings.from_env().timezone, "Asia/Tokyo")

    def test_bad_values_fall_back(self) -> None:
        with patch.dict(
            os.environ,
            {"API_PORT": "not-a-port", "BRIEF_DATA_PARAM": "  ", "BRIEF_CACHE_KEY": ""},
            clear=True,
        ):
            settings = Settings.from_env()
        self.assertEqual(settings.api_port, 8080)
        self.assertEqual(settings.data_param_name, "data")
        self.assertEqual(settings.cache_key, "brief.last_good")

        with patch.dict(os.environ, {"API_PORT": "70000"}, clear=True):
            self.assertEqual(Settings.from_env().api_port, 65535)
        with patch.dict(os.environ, {"API_PORT": "0"}, clear=True):
            self.assertEqual(Settings.from_env().api_port, 1)

    def test_ensure_state_paths_creates_directories(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            state_dir = Path(tmpdir) / "nested" / "state"
            with patch.dict(os.environ, {"STATE_DIR": str(state_dir)}, clear=True):
                settings = Settings.from_env()
            settings.ensure_state_paths()
            self.assertTrue(state_dir.is_dir())
            self.assertFalse(settings.runtime_db_file.exists())


if __name__ == "__main__":
    unittest.main()
