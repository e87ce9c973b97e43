"""
Shared helpers and factory functions for weatherapp tests.
Import from this module in each test file to avoid duplication.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

from weatherapp.cache_store import LocalCacheStore
from weatherapp.favorites_reconciler import FavoritesReconciler
from weatherapp.api.auth import LocalIdentity
from weatherapp.models import (
    DailyForecast,
    FavoriteEntry,
    Location,
    WeatherSnapshot,
)
from weatherapp.remote_store import InMemoryDatabase, InMemoryListStore
from weatherapp.weather_reconciler import WeatherReconciler


FIXED_NOW = 1_700_000_000_000


def make_location(name: str = "London", **kwargs) -> Location:
    defaults = dict(
        name=name,
        latitude=51.50853,
        longitude=-0.12574,
        country="United Kingdom",
        region="England",
    )
    defaults.update(kwargs)
    return Location(**defaults)


def make_geocoding_payload(*names: str) -> dict:
    return {
        "results": [
            {"name": name, "latitude": 51.5, "longitude": -0.12, "country": "United Kingdom", "admin1": "England"}
            for name in names
        ]
    }


def make_forecast_payload(
    temperature: float = 12.5,
    apparent_temperature: float = 10.2,
    weather_code: int = 3,
    days: int = 7,
    hours: int | None = 48,
) -> dict:
    """Forecast response shaped like the Open-Meteo /v1/forecast body."""
    payload = {
        "latitude": 51.5,
        "longitude": -0.12,
        "timezone": "Europe/London",
        "current": {
            "time": "2024-01-15T14:00",
            "temperature_2m": temperature,
            "relative_humidity_2m": 81,
            "apparent_temperature": apparent_temperature,
            "precipitation": 0.0,
            "weather_code": weather_code,
            "wind_speed_10m": 14.8,
        },
        "daily": {
            "time": [f"2024-01-{15 + i:02d}" for i in range(days)],
            "temperature_2m_max": [13.0 + i for i in range(days)],
            "temperature_2m_min": [7.0 + i for i in range(days)],
            "weather_code": [3, 61, 0, 95, 71, 45, 2][:days],
            "precipitation_sum": [0.0, 4.2, 0.0, 12.0, 1.1, 0.0, 0.0][:days],
        },
    }
    if hours is not None:
        payload["hourly"] = {
            "time": [f"2024-01-{15 + h // 24:02d}T{h % 24:02d}:00" for h in range(hours)],
            "temperature_2m": [10.0 + (h % 5) for h in range(hours)],
            "weather_code": [3] * hours,
            "relative_humidity_2m": [80] * hours,
        }
    return payload


def make_snapshot(city_name: str = "London", **kwargs) -> WeatherSnapshot:
    defaults = dict(
        city_name=city_name,
        country="United Kingdom",
        temperature=12.5,
        feels_like=10.2,
        condition="Partly cloudy",
        emoji="⛅",
        humidity=81,
        wind_speed=14.8,
        min_temp=7.0,
        max_temp=13.0,
        last_update_label="Jan 15, 14:00",
        daily_forecast=(
            DailyForecast(date="Mon, Jan 15", max_temp=13.0, min_temp=7.0,
                          condition="Partly cloudy", emoji="⛅", precipitation=0.0),
        ),
        hourly_forecast=(),
        is_offline=False,
    )
    defaults.update(kwargs)
    return WeatherSnapshot(**defaults)


def make_client(forecast=None, locations=None) -> MagicMock:
    """WeatherClient stand-in; pass exceptions as side effects via .side_effect afterwards."""
    client = MagicMock()
    client.fetch_forecast = AsyncMock(return_value=forecast if forecast is not None else make_forecast_payload())
    client.search_cities = AsyncMock(return_value=locations if locations is not None else [make_location()])
    return client


def make_weather_reconciler(connected: bool = True, client=None, store=None) -> WeatherReconciler:
    """Reconciler with an in-memory store, a fake client and a fixed clock."""
    return WeatherReconciler(
        client or make_client(),
        store or LocalCacheStore(),
        connectivity_check=AsyncMock(return_value=connected),
        clock=lambda: FIXED_NOW,
    )


def make_favorite(city_name: str = "London", **kwargs) -> FavoriteEntry:
    defaults = dict(
        city_name=city_name,
        country="United Kingdom",
        latitude=51.5,
        longitude=-0.12,
        note="",
    )
    defaults.update(kwargs)
    return FavoriteEntry(**defaults)


def make_record(entry_id: str = "-Nabc", owner: str = "user-1", **kwargs) -> dict:
    defaults = {
        "id": entry_id,
        "cityName": "London",
        "country": "United Kingdom",
        "latitude": 51.5,
        "longitude": -0.12,
        "note": "",
        "createdAt": FIXED_NOW,
        "createdBy": owner,
        "updatedAt": FIXED_NOW,
    }
    defaults.update(kwargs)
    return defaults


class Clock:
    """Monotonically increasing fake epoch-millis clock."""

    def __init__(self, start: int = FIXED_NOW, step: int = 1000) -> None:
        self.now = start
        self.step = step

    def __call__(self) -> int:
        self.now += self.step
        return self.now


def make_favorites_reconciler(user_id: str | None = "user-1", database: InMemoryDatabase | None = None):
    """FavoritesReconciler on an in-memory store; returns (reconciler, database)."""
    database = database or InMemoryDatabase()
    identity = LocalIdentity(user_id)
    store = InMemoryListStore(identity, database)
    return FavoritesReconciler(identity, store, clock=Clock()), database
