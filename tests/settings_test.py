from __future__ import annotations

import os
import unittest
from pathlib import Path
from unittest.mock import patch

from workflow_cli.rules.builtins import DEFAULT_NOW_FORMAT, DEFAULT_TIMEZONE
from workflow_cli.settings import AppSettings, load_settings


class LoadSettingsTests(unittest.TestCase):
    def _load(self, env: dict[str, str]) -> AppSettings:
        with patch("workflow_cli.settings.load_dotenv"), patch.dict(os.environ, env, clear=True):
            return load_settings()

    def test_defaults(self) -> None:
        settings = self._load({})
        self.assertEqual(settings.timezone, DEFAULT_TIMEZONE)
        self.assertEqual(settings.now_format, DEFAULT_NOW_FORMAT)
        self.assertEqual(settings.regex_timeout_seconds, 0.25)
        self.assertIsNone(settings.context_path)
        self.assertEqual(settings.preview_max_chars, 2000)

    def test_environment_overrides(self) -> None:
        settings = self._load(
            {
                "WORKFLOW_TIMEZONE": "UTC",
                "WORKFLOW_NOW_FORMAT": "%Y",
                "WORKFLOW_REGEX_TIMEOUT_SECONDS": "1.5",
                "WORKFLOW_CONTEXT_PATH": "data/context.json",
                "WORKFLOW_PREVIEW_MAX_CHARS": "80",
            }
        )
        self.assertEqual(settings.timezone, "UTC")
        self.assertEqual(settings.now_format, "%Y")
        self.assertEqual(settings.regex_timeout_seconds, 1.5)
        self.assertEqual(settings.context_path, Path("data/context.json"))
        self.assertEqual(settings.preview_max_chars, 80)

    def test_invalid_values_fall_back(self) -> None:
        with self.assertLogs("workflow_cli.settings", level="WARNING"):
            settings = self._load(
                {
                    "WORKFLOW_TIMEZONE": "Mars/Olympus",
                    "WORKFLOW_REGEX_TIMEOUT_SECONDS": "-1",
                    "WORKFLOW_PREVIEW_MAX_CHARS": "lots",
                }
            )
        self.assertEqual(settings.timezone, DEFAULT_TIMEZONE)
        self.assertEqual(settings.regex_timeout_seconds, 0.25)
        self.assertEqual(settings.preview_max_chars, 2000)

    def test_evaluation_options_follow_settings(self) -> None:
        options = AppSettings(timezone="UTC", regex_timeout_seconds=0.5).evaluation_options()
        self.assertEqual(options.timezone, "UTC")
        self.assertEqual(options.regex_timeout_seconds, 0.5)
        self.assertIn("now", options.builtins)


if __name__ == "__main__":
    unittest.main()
