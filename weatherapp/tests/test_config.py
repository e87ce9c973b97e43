"""
Tests for Settings validation and environment loading.
"""

from __future__ import annotations

import os
import unittest
from unittest.mock import patch

import voluptuous as vol

from weatherapp.config import (
    DEFAULT_STORE_PATH,
    FAVORITES_BACKEND_DISABLED,
    FAVORITES_BACKEND_FIREBASE,
    FAVORITES_BACKEND_MEMORY,
    Settings,
)
from weatherapp.const import REQUEST_TIMEOUT

FIREBASE_ENV = {
    "FIREBASE_API_KEY": "api-key",
    "FIREBASE_DATABASE_URL": "https://weatherapp-test.firebaseio.com",
}


class TestSettingsFromDict(unittest.TestCase):

    def test_defaults(self):
        settings = Settings.from_dict({})
        self.assertEqual(settings.store_path, DEFAULT_STORE_PATH)
        self.assertEqual(settings.request_timeout, REQUEST_TIMEOUT)
        self.assertFalse(settings.firebase_configured)
        self.assertEqual(settings.resolved_favorites_backend, FAVORITES_BACKEND_MEMORY)

    def test_timeout_is_coerced(self):
        self.assertEqual(Settings.from_dict({"request_timeout": "12"}).request_timeout, 12)

    def test_invalid_values(self):
        for data in (
            {"request_timeout": "0"},
            {"request_timeout": "soon"},
            {"firebase_database_url": "http://insecure.example"},
            {"favorites_backend": "sqlite"},
        ):
            with self.subTest(data=data), self.assertRaises(vol.Invalid):
                Settings.from_dict(data)

    def test_firebase_selected_when_configured(self):
        settings = Settings.from_dict(
            {"firebase_api_key": "api-key", "firebase_database_url": "https://x.firebaseio.com"}
        )
        self.assertEqual(settings.resolved_favorites_backend, FAVORITES_BACKEND_FIREBASE)

    def test_explicit_backend_wins(self):
        settings = Settings.from_dict({"favorites_backend": FAVORITES_BACKEND_DISABLED})
        self.assertEqual(settings.resolved_favorites_backend, FAVORITES_BACKEND_DISABLED)


class TestSettingsFromEnv(unittest.TestCase):

    def test_reads_environment(self):
        env = dict(FIREBASE_ENV, WEATHERAPP_REQUEST_TIMEOUT="5", WEATHERAPP_STORE_PATH="/tmp/prefs.json")
        with patch.dict(os.environ, env, clear=True), patch("weatherapp.config.load_dotenv"):
            settings = Settings.from_env()

        self.assertEqual(settings.request_timeout, 5)
        self.assertEqual(settings.store_path, "/tmp/prefs.json")
        self.assertTrue(settings.firebase_configured)

    def test_empty_values_fall_back_to_defaults(self):
        with patch.dict(os.environ, {"WEATHERAPP_REQUEST_TIMEOUT": ""}, clear=True), \
                patch("weatherapp.config.load_dotenv"):
            self.assertEqual(Settings.from_env().request_timeout, REQUEST_TIMEOUT)

    def test_firebase_backend_without_keys_is_rejected(self):
        env = {"WEATHERAPP_FAVORITES_BACKEND": FAVORITES_BACKEND_FIREBASE}
        with patch.dict(os.environ, env, clear=True), patch("weatherapp.config.load_dotenv"):
            with self.assertRaises(vol.Invalid):
                Settings.from_env()
