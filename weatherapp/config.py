"""Settings for weatherapp, read from the environment (and an optional .env file)."""
from __future__ import annotations

import dataclasses
import logging
import os
from pathlib import Path

import voluptuous as vol
from dotenv import load_dotenv

from .const import REQUEST_TIMEOUT, STORE_FILE_NAME

_LOGGER = logging.getLogger(__name__)

FAVORITES_BACKEND_FIREBASE = "firebase"
FAVORITES_BACKEND_MEMORY = "memory"
FAVORITES_BACKEND_DISABLED = "disabled"

DEFAULT_STORE_PATH = str(Path("~") / f".{__package__}" / STORE_FILE_NAME)

positive_int = vol.All(vol.Coerce(int), vol.Range(min=1))
optional_string = vol.Any(None, vol.All(str, vol.Strip, vol.Length(min=1)))

SETTINGS_SCHEMA = vol.Schema(
    {
        vol.Required("store_path", default=DEFAULT_STORE_PATH): vol.All(str, vol.Length(min=1)),
        vol.Required("request_timeout", default=REQUEST_TIMEOUT): positive_int,
        vol.Optional("firebase_api_key", default=None): optional_string,
        vol.Optional("firebase_database_url", default=None): vol.Any(
            None, vol.All(str, vol.Match(r"^https://"))
        ),
        vol.Optional("favorites_backend", default=None): vol.Any(
            None,
            vol.In([FAVORITES_BACKEND_FIREBASE, FAVORITES_BACKEND_MEMORY, FAVORITES_BACKEND_DISABLED]),
        ),
    }
)

# setting name → environment variable
ENVIRONMENT_KEYS = {
    "store_path": "WEATHERAPP_STORE_PATH",
    "request_timeout": "WEATHERAPP_REQUEST_TIMEOUT",
    "firebase_api_key": "FIREBASE_API_KEY",
    "firebase_database_url": "FIREBASE_DATABASE_URL",
    "favorites_backend": "WEATHERAPP_FAVORITES_BACKEND",
}


@dataclasses.dataclass(frozen=True)
class Settings:
    store_path: str = DEFAULT_STORE_PATH
    request_timeout: int = REQUEST_TIMEOUT
    firebase_api_key: str | None = None
    firebase_database_url: str | None = None
    favorites_backend: str | None = None

    @property
    def firebase_configured(self) -> bool:
        return bool(self.firebase_api_key and self.firebase_database_url)

    @property
    def resolved_favorites_backend(self) -> str:
        """Explicit backend if set, otherwise Firebase when configured and memory when not."""
        if self.favorites_backend:
            return self.favorites_backend
        return FAVORITES_BACKEND_FIREBASE if self.firebase_configured else FAVORITES_BACKEND_MEMORY

    @classmethod
    def from_dict(cls, data: dict) -> Settings:
        """Validate *data*; raises vol.Invalid on bad values."""
        return cls(**SETTINGS_SCHEMA(dict(data)))

    @classmethod
    def from_env(cls, env_file: str | None = None) -> Settings:
        load_dotenv(env_file)
        data = {}
        for name, variable in ENVIRONMENT_KEYS.items():
            value = os.getenv(variable)
            if value not in (None, ""):
                data[name] = value
        settings = cls.from_dict(data)
        if settings.resolved_favorites_backend == FAVORITES_BACKEND_FIREBASE and not settings.firebase_configured:
            raise vol.Invalid("FIREBASE_API_KEY and FIREBASE_DATABASE_URL are required for the firebase backend")
        _LOGGER.debug("Loaded settings (favorites backend: %s)", settings.resolved_favorites_backend)
        return settings
