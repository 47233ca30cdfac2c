import os
import unittest
from unittest import mock

import structlog

from backend.app.log_config import get_environment, get_log_level, setup_structlog


class TestLogConfig(unittest.TestCase):
    def tearDown(self):
        structlog.reset_defaults()

    def test_env_and_environment_are_both_read(self):
        with mock.patch.dict(os.environ, {"ENV": "Production"}, clear=True):
            self.assertEqual(get_environment(), "production")
        with mock.patch.dict(os.environ, {"ENVIRONMENT": "staging"}, clear=True):
            self.assertEqual(get_environment(), "staging")
        with mock.patch.dict(os.environ, {}, clear=True):
            self.assertEqual(get_environment(), "development")

    def test_log_level(self):
        with mock.patch.dict(os.environ, {"ENV": "test"}, clear=True):
            self.assertEqual(get_log_level(), "WARNING")
        with mock.patch.dict(os.environ, {"ENV": "production", "LOG_LEVEL": "debug"}, clear=True):
            self.assertEqual(get_log_level(), "DEBUG")

    def test_env_selects_json_renderer(self):
        with mock.patch.dict(os.environ, {"ENV": "production"}, clear=True):
            setup_structlog()
        self.assertIsInstance(structlog.get_config()["processors"][-1], structlog.processors.JSONRenderer)

        with mock.patch.dict(os.environ, {"ENV": "development"}, clear=True):
            setup_structlog()
        self.assertIsInstance(structlog.get_config()["processors"][-1], structlog.dev.ConsoleRenderer)
