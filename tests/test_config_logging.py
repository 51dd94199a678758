"""
Tests for settings loading and logging setup.
Run from project root: python -m pytest tests/test_config_logging.py -v
Or: python -m unittest tests.test_config_logging -v
"""
import json
import logging
import os
import unittest
from unittest.mock import patch

from config import Settings
from utils.log import JsonFormatter, get_logger, setup_logging


class TestSettings(unittest.TestCase):
    def test_defaults(self):
        """Business constants default to the lending policy values."""
        settings = Settings(_env_file=None)
        self.assertEqual(settings.second_approval_threshold, 200_000)
        self.assertEqual(settings.reloan_min_progress, 0.70)
        self.assertEqual(settings.max_draft_count, 10)
        self.assertEqual(settings.max_document_bytes, 5 * 1024 * 1024)
        self.assertTrue(settings.is_sqlite)

    def test_environment_overrides(self):
        env = {
            "SECOND_APPROVAL_THRESHOLD": "150000",
            "DATABASE_URL": "postgresql+asyncpg://db/loans",
            "CORS_ORIGINS": "http://a.test, ,http://b.test",
        }
        with patch.dict(os.environ, env):
            settings = Settings(_env_file=None)
        self.assertEqual(settings.second_approval_threshold, 150_000)
        self.assertFalse(settings.is_sqlite)
        self.assertEqual(settings.cors_origin_list, ["http://a.test", "http://b.test"])


class TestLogging(unittest.TestCase):
    def setUp(self):
        root = logging.getLogger()
        self._handlers = root.handlers[:]
        self._level = root.level

    def tearDown(self):
        root = logging.getLogger()
        root.handlers = self._handlers
        root.setLevel(self._level)

    def test_setup_replaces_handlers(self):
        setup_logging("debug")
        setup_logging("warning")
        root = logging.getLogger()
        self.assertEqual(len(root.handlers), 1)
        self.assertEqual(root.level, logging.WARNING)
        self.assertEqual(logging.getLogger("httpx").level, logging.WARNING)

    def test_unknown_level_falls_back_to_info(self):
        setup_logging("chatty")
        self.assertEqual(logging.getLogger().level, logging.INFO)

    def test_json_format(self):
        setup_logging("INFO", "json")
        self.assertIsInstance(logging.getLogger().handlers[0].formatter, JsonFormatter)

    def test_json_formatter_output(self):
        record = logging.LogRecord("services.wizard", logging.INFO, __file__, 1, "Loan %s created", ("101",), None)
        record.extra = {"loan_id": "101"}
        data = json.loads(JsonFormatter().format(record))
        self.assertEqual(data["level"], "INFO")
        self.assertEqual(data["logger"], "services.wizard")
        self.assertEqual(data["message"], "Loan 101 created")
        self.assertEqual(data["loan_id"], "101")
        self.assertNotIn("exception", data)

    def test_get_logger(self):
        self.assertIs(get_logger("services.approval"), logging.getLogger("services.approval"))


if __name__ == "__main__":
    unittest.main()
