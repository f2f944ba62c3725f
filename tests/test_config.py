from __future__ import annotations

import sys
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from userdesk.config import DEFAULT_API_URL, load_settings


class SettingsTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tempdir = TemporaryDirectory()
        self.base = Path(self._tempdir.name)

    def tearDown(self) -> None:
        self._tempdir.cleanup()

    def _write(self, text: str) -> Path:
        path = self.base / "userdesk.yaml"
        path.write_text(text, encoding="utf-8")
        return path

    def test_yaml_values_are_loaded_relative_to_the_file(self) -> None:
        path = self._write(
            "database_path: data/users.sqlite3\n"
            "api_url: https://api.example.com\n"
            "dashboard_transport: HTTP\n"
            "secure_cookies: true\n"
            "session_ttl_hours: 2\n"
            "log_level: debug\n"
        )

        settings = load_settings(path, environ={})

        self.assertEqual(settings.database_path, (self.base / "data" / "users.sqlite3").resolve())
        self.assertEqual(settings.api_url, "https://api.example.com")
        self.assertEqual(settings.dashboard_transport, "http")
        self.assertTrue(settings.secure_cookies)
        self.assertTrue(settings.allow_signup)
        self.assertEqual(settings.session_ttl_hours, 2)
        self.assertEqual(settings.log_level, "DEBUG")

    def test_environment_overrides_yaml(self) -> None:
        path = self._write("api_url: https://api.example.com\nsecure_cookies: true\n")
        db_path = self.base / "override.sqlite3"

        settings = load_settings(
            path,
            environ={
                "USERDESK_DB_PATH": str(db_path),
                "USERDESK_API_URL": "http://localhost:9000",
                "USERDESK_SESSION_SECURE": "0",
                "USERDESK_ALLOW_SIGNUP": "false",
                "USERDESK_LOG_LEVEL": "warning",
            },
        )

        self.assertEqual(settings.database_path, db_path.resolve())
        self.assertEqual(settings.api_url, "http://localhost:9000")
        self.assertFalse(settings.secure_cookies)
        self.assertFalse(settings.allow_signup)
        self.assertEqual(settings.log_level, "WARNING")

    def test_defaults_without_configuration(self) -> None:
        settings = load_settings(None, environ={"USERDESK_DB_PATH": str(self.base / "db.sqlite3")})

        self.assertEqual(settings.api_url, DEFAULT_API_URL)
        self.assertEqual(settings.dashboard_transport, "direct")
        self.assertFalse(settings.secure_cookies)

    def test_unknown_keys_are_rejected(self) -> None:
        path = self._write("database_path: a.sqlite3\ncolour: blue\n")

        with self.assertRaises(ValueError):
            load_settings(path, environ={})

    def test_invalid_transport_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            load_settings(
                self._write("dashboard_transport: carrier-pigeon\n"),
                environ={},
            )

    def test_top_level_must_be_a_mapping(self) -> None:
        with self.assertRaises(ValueError):
            load_settings(self._write("- one\n- two\n"), environ={})


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
