"""
Low-level forecast fetching from the Open-Meteo forecast API.

Responsible for:
- Requesting current, daily and hourly blocks for one coordinate in one unit
- Translating HTTP / transport failures into weatherapp errors

Mapping the payload into a WeatherSnapshot lives in weather_reconciler.
"""
import asyncio
import logging

import aiohttp

from weatherapp.const import (
    CURRENT_FIELDS,
    DAILY_FIELDS,
    FORECAST_API_URL,
    HOURLY_FIELDS,
    REQUEST_TIMEOUT,
)
from weatherapp.errors import NoConnectivityError, ParseFailureError, WeatherTimeoutError, status_error
from weatherapp.models import UnitPreference
from weatherapp.requests import make_request, HttpStatusError

_LOGGER = logging.getLogger(__name__)


def build_forecast_params(latitude: float, longitude: float, unit: UnitPreference) -> dict:
    """Query parameters for one forecast request. Conversion is done by the API, never locally."""
    return {
        "latitude": latitude,
        "longitude": longitude,
        "current": CURRENT_FIELDS,
        "daily": DAILY_FIELDS,
        "hourly": HOURLY_FIELDS,
        "timezone": "auto",
        "temperature_unit": UnitPreference(unit).value,
        "wind_speed_unit": "kmh",
    }


async def fetch_forecast(
    latitude: float,
    longitude: float,
    unit: UnitPreference = UnitPreference.CELSIUS,
    session: aiohttp.ClientSession = None,
    timeout: int = REQUEST_TIMEOUT,
) -> dict:
    """
    Fetch the raw forecast payload for the given coordinate.

    Example request:
    https://api.open-meteo.com/v1/forecast?latitude=51.5&longitude=-0.12&current=...&timezone=auto
    """
    params = build_forecast_params(latitude, longitude, unit)
    headers = {"accept": "application/json"}
    try:
        raw_json = await make_request(
            "GET", FORECAST_API_URL, headers, params=params, timeout=timeout, session=session
        )
    except HttpStatusError as e:
        _LOGGER.warning("Forecast request for (%s, %s) failed: %s", latitude, longitude, e)
        raise status_error(e.status, f"Failed to fetch weather: {e.status}") from e
    except (asyncio.TimeoutError, TimeoutError) as e:
        _LOGGER.warning("Timeout while fetching forecast for (%s, %s)", latitude, longitude)
        raise WeatherTimeoutError() from e
    except aiohttp.ClientError as e:
        _LOGGER.warning("Transport error while fetching forecast: %s", e)
        raise NoConnectivityError(str(e)) from e
    except ValueError as e:
        raise ParseFailureError(str(e)) from e

    if not isinstance(raw_json, dict):
        raise ParseFailureError("Empty response from server")
    return raw_json
