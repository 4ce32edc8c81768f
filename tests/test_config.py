"""
Tests for building the engine configuration from the environment
"""

import unittest

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'src'))

from pydantic import ValidationError

from ingest_manager.config import EngineConfig


class TestEngineConfig(unittest.TestCase):
    def test_defaults(self):
        config = EngineConfig.from_env({})
        self.assertEqual(config.retry_attempts, 3)
        self.assertEqual(config.retry_base_seconds, 1.0)
        self.assertEqual(config.log_level, 'INFO')
        self.assertIsNone(config.max_rows)
        self.assertTrue(config.auto_resize_columns)

    def test_values_are_coerced(self):
        config = EngineConfig.from_env({
            'INGEST_RETRY_ATTEMPTS': '5',
            'INGEST_RETRY_BASE_SECONDS': '0.5',
            'INGEST_LOG_LEVEL': 'debug',
            'INGEST_MAX_ROWS': '1000',
            'INGEST_ACTIVE_SPREADSHEET': 'https://docs.google.com/spreadsheets/d/abc/edit',
            'INGEST_NOTIFY_ON': 'errors',
            'INGEST_AUTO_RESIZE_COLUMNS': 'false',
        })
        self.assertEqual(config.retry_attempts, 5)
        self.assertEqual(config.retry_base_seconds, 0.5)
        self.assertEqual(config.log_level, 'DEBUG')
        self.assertEqual(config.max_rows, 1000)
        self.assertEqual(config.notify_on, 'errors')
        self.assertFalse(config.auto_resize_columns)

    def test_empty_values_fall_back_to_defaults(self):
        self.assertEqual(EngineConfig.from_env({'INGEST_MAX_ROWS': ''}).max_rows, None)

    def test_invalid_values_are_rejected(self):
        with self.assertRaises(ValidationError):
            EngineConfig.from_env({'INGEST_RETRY_ATTEMPTS': '0'})
        with self.assertRaises(ValidationError):
            EngineConfig.from_env({'INGEST_NOTIFY_ON': 'sometimes'})

    def test_config_is_immutable(self):
        config = EngineConfig()
        with self.assertRaises(ValidationError):
            config.retry_attempts = 10


if __name__ == '__main__':
    unittest.main()
