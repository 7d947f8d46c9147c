import unittest
import os
import sys
from datetime import timedelta
from unittest import mock

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
from pdfcite.config import load_config
from pdfcite.errors import ConfigError


class TestLoadConfig(unittest.TestCase):
    def test_defaults(self):
        with mock.patch.dict(os.environ, {}, clear=True):
            config = load_config()
        self.assertIsNone(config.chunk_api_url)
        self.assertFalse(config.fetch_enabled)
        self.assertEqual(config.first_load_settle, timedelta(milliseconds=500))
        self.assertEqual(config.resize_settle, timedelta(milliseconds=150))
        self.assertEqual(config.resize_debounce, timedelta(milliseconds=300))
        self.assertEqual(config.resize_threshold, 10.0)
        self.assertEqual(config.granularity, "tokens")
        self.assertTrue(config.auto_scroll)
        self.assertEqual(config.log_level, "INFO")

    def test_environment_overrides(self):
        env = {
            "PDFCITE_CHUNK_API_URL": "http://retrieval.local/chunk",
            "PDFCITE_HTTP_TIMEOUT_SECONDS": "2.5",
            "PDFCITE_RESIZE_DEBOUNCE_MS": "100",
            "PDFCITE_GRANULARITY": "Lines",
            "PDFCITE_AUTO_SCROLL": "off",
            "LOG_LEVEL": "debug",
        }
        with mock.patch.dict(os.environ, env, clear=True):
            config = load_config()
        self.assertTrue(config.fetch_enabled)
        self.assertEqual(config.http_timeout, 2.5)
        self.assertEqual(config.resize_debounce, timedelta(milliseconds=100))
        self.assertEqual(config.granularity, "lines")
        self.assertFalse(config.auto_scroll)
        self.assertEqual(config.log_level, "DEBUG")

    def test_invalid_values(self):
        for env in (
            {"PDFCITE_GRANULARITY": "pixels"},
            {"PDFCITE_AUTO_SCROLL": "maybe"},
            {"PDFCITE_RESIZE_THRESHOLD_PX": "wide"},
        ):
            with mock.patch.dict(os.environ, env, clear=True):
                with self.assertRaises(ConfigError):
                    load_config()

    def test_error_names_the_variable(self):
        env = {"PDFCITE_RESIZE_DEBOUNCE_MS": "soon"}
        with mock.patch.dict(os.environ, env, clear=True):
            with self.assertRaises(ConfigError) as ctx:
                load_config()
        self.assertEqual(ctx.exception.key, "PDFCITE_RESIZE_DEBOUNCE_MS")
        self.assertIn("soon", str(ctx.exception))

        with mock.patch.dict(os.environ, {"LOG_LEVEL": "loud"}, clear=True):
            with self.assertRaises(ConfigError) as ctx:
                load_config()
        self.assertEqual(ctx.exception.key, "LOG_LEVEL")


if __name__ == "__main__":
    unittest.main()
