from __future__ import annotations

import os
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory
from unittest.mock import patch

from workflow_studio.settings import load_settings


class SettingsTests(unittest.TestCase):
    def test_reads_environment_overrides(self) -> None:
        with TemporaryDirectory() as tmp_dir:
            env = {
                "WORKFLOW_EXECUTION_DELAY_SECONDS": "0",
                "WORKFLOW_MAX_LOG_ENTRIES": "25",
                "WORKFLOW_MAX_HISTORY_SIZE": "10",
                "WORKFLOW_SQLITE_PATH": str(Path(tmp_dir) / "nested" / "flow.db"),
                "WORKFLOW_STORAGE_KEY": "demo",
                "WORKFLOW_AUTOSAVE": "off",
            }
            with patch.dict(os.environ, env):
                settings = load_settings()

            self.assertEqual(settings.execution_delay_seconds, 0.0)
            self.assertEqual(settings.max_log_entries, 25)
            self.assertEqual(settings.max_history_size, 10)
            self.assertEqual(settings.storage_key, "demo")
            self.assertFalse(settings.autosave_enabled)
            self.assertTrue(settings.sqlite_path.parent.is_dir())

    def test_bad_values_fall_back_to_defaults(self) -> None:
        with TemporaryDirectory() as tmp_dir:
            env = {
                "WORKFLOW_EXECUTION_DELAY_SECONDS": "soon",
                "WORKFLOW_MAX_LOG_ENTRIES": "many",
                "WORKFLOW_AUTOSAVE": "maybe",
                "WORKFLOW_SQLITE_PATH": str(Path(tmp_dir) / "flow.db"),
            }
            with patch.dict(os.environ, env):
                settings = load_settings()

            self.assertEqual(settings.execution_delay_seconds, 0.5)
            self.assertEqual(settings.max_log_entries, 100)
            self.assertTrue(settings.autosave_enabled)


if __name__ == "__main__":
    unittest.main()
