"""
Low-level city search against the Open-Meteo geocoding API.

Responsible for:
- Sending the search request with the fixed query parameters
- Translating HTTP / transport failures into weatherapp errors
- Parsing the result list into Location objects (API order preserved)
"""
import asyncio
import logging

import aiohttp

from weatherapp.const import GEOCODING_API_URL, GEOCODING_RESULT_COUNT, REQUEST_TIMEOUT
from weatherapp.errors import (
    NoConnectivityError,
    NotFoundError,
    ParseFailureError,
    WeatherTimeoutError,
    status_error,
)
from weatherapp.models import Location
from weatherapp.requests import make_request, HttpStatusError

_LOGGER = logging.getLogger(__name__)


async def search_cities(
    name: str,
    session: aiohttp.ClientSession = None,
    timeout: int = REQUEST_TIMEOUT,
) -> list[Location]:
    """
    Search cities matching *name*.

    Raises NotFoundError when the API returns no match.

    Example request:
    https://geocoding-api.open-meteo.com/v1/search?name=London&count=5&language=en&format=json
    """
    params = {
        "name": name,
        "count": GEOCODING_RESULT_COUNT,
        "language": "en",
        "format": "json",
    }
    headers = {"accept": "application/json"}
    try:
        raw_json = await make_request(
            "GET", GEOCODING_API_URL, headers, params=params, timeout=timeout, session=session
        )
    except HttpStatusError as e:
        _LOGGER.error("Error while searching city %r: %s", name, e)
        raise status_error(e.status, f"Failed to search city: {e.status}") from e
    except (asyncio.TimeoutError, TimeoutError) as e:
        _LOGGER.warning("Timeout while searching city %r", name)
        raise WeatherTimeoutError() from e
    except aiohttp.ClientError as e:
        _LOGGER.warning("Transport error while searching city %r: %s", name, e)
        raise NoConnectivityError(str(e)) from e
    except ValueError as e:
        raise ParseFailureError(str(e)) from e

    results = raw_json.get("results") if isinstance(raw_json, dict) else None
    if not results:
        raise NotFoundError()

    try:
        return [Location.from_api(result) for result in results]
    except (KeyError, TypeError, ValueError) as e:
        _LOGGER.error("Unexpected geocoding response format: %s", raw_json)
        raise ParseFailureError(f"Malformed geocoding result: {e}") from e
