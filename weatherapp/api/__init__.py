"""
HTTP clients for the external services.

WeatherClient bundles the two Open-Meteo calls behind one object so the
weather reconciler can be handed a fake in tests.
"""
from __future__ import annotations

import aiohttp

from weatherapp.const import REQUEST_TIMEOUT
from weatherapp.models import Location, UnitPreference

from .forecast import fetch_forecast
from .geocoding import search_cities


class WeatherClient:
    """Stateless request/response client for geocoding and forecasts."""

    def __init__(self, session: aiohttp.ClientSession | None = None, timeout: int = REQUEST_TIMEOUT) -> None:
        self._session = session
        self._timeout = timeout

    async def search_cities(self, name: str) -> list[Location]:
        return await search_cities(name, session=self._session, timeout=self._timeout)

    async def fetch_forecast(self, latitude: float, longitude: float, unit: UnitPreference) -> dict:
        return await fetch_forecast(latitude, longitude, unit, session=self._session, timeout=self._timeout)
