"""
WeatherReconciler — decides between fresh network data, cached data and an error.

Responsibilities:
- Geocode a city query (never masked by the cache).
- Fetch a forecast, map it into a WeatherSnapshot and write it through to the
  single-slot LocalCacheStore together with the search history.
- Fall back to the cached snapshot (flagged offline) when the network is
  unavailable or the request fails; fail only when both are unavailable.
- Publish WeatherState snapshots for the presentation layer, last caller wins.
"""
from __future__ import annotations

import dataclasses
import logging
import time
from typing import Awaitable, Callable

from .api import WeatherClient
from .cache_store import LocalCacheStore
from .const import DAILY_FORECAST_DAYS, DOMAIN, HOURLY_FORECAST_HOURS
from .errors import (
    InvalidInputError,
    NoConnectivityError,
    NotFoundError,
    ParseFailureError,
    WeatherAppError,
    WeatherError,
)
from .formatting import (
    condition_from_code,
    emoji_from_code,
    format_date,
    format_date_time,
    format_hour,
)
from .models import DailyForecast, HourlyForecast, Location, UnitPreference, WeatherSnapshot
from .publisher import StatePublisher
from .requests import check_connectivity
from .state import Status, WeatherState

_LOGGER = logging.getLogger(__name__)


def _epoch_millis() -> int:
    return int(time.time() * 1000)


# ---------------------------------------------------------------------------
# Payload mapping
# ---------------------------------------------------------------------------

def map_forecast(raw: dict, location: Location) -> WeatherSnapshot:
    """
    Map a forecast payload plus the originating Location into a snapshot.

    Daily and hourly arrays are read index-aligned; a short block yields
    fewer rows, never padding. Raises ParseFailureError when the current or
    daily block is missing or malformed.
    """
    try:
        current = raw["current"]
        daily = raw["daily"]
        hourly = raw.get("hourly")

        forecast = tuple(
            DailyForecast(
                date=format_date(date),
                max_temp=float(max_temp),
                min_temp=float(min_temp),
                condition=condition_from_code(code),
                emoji=emoji_from_code(code),
                precipitation=float(precipitation),
            )
            for date, max_temp, min_temp, code, precipitation in zip(
                daily["time"][:DAILY_FORECAST_DAYS],
                daily["temperature_2m_max"],
                daily["temperature_2m_min"],
                daily["weather_code"],
                daily["precipitation_sum"],
            )
        )

        hourly_forecast = ()
        if hourly:
            hourly_forecast = tuple(
                HourlyForecast(
                    time=format_hour(hour),
                    temperature=float(temperature),
                    condition=condition_from_code(code),
                    emoji=emoji_from_code(code),
                    humidity=int(humidity),
                )
                for hour, temperature, code, humidity in zip(
                    hourly["time"][:HOURLY_FORECAST_HOURS],
                    hourly["temperature_2m"],
                    hourly["weather_code"],
                    hourly["relative_humidity_2m"],
                )
            )

        temperature = float(current["temperature_2m"])
        max_temps = daily["temperature_2m_max"]
        min_temps = daily["temperature_2m_min"]
        code = current["weather_code"]

        return WeatherSnapshot(
            city_name=location.name,
            country=location.country,
            temperature=temperature,
            feels_like=float(current["apparent_temperature"]),
            condition=condition_from_code(code),
            emoji=emoji_from_code(code),
            humidity=int(current["relative_humidity_2m"]),
            wind_speed=float(current["wind_speed_10m"]),
            min_temp=float(min_temps[0]) if min_temps else temperature,
            max_temp=float(max_temps[0]) if max_temps else temperature,
            last_update_label=format_date_time(current["time"]),
            daily_forecast=forecast,
            hourly_forecast=hourly_forecast,
            is_offline=False,
        )
    except (KeyError, TypeError, ValueError) as exc:
        _LOGGER.error("Unexpected forecast payload for %s: %s: %s", location.name, type(exc).__name__, exc)
        raise ParseFailureError(f"Malformed forecast response: {exc}") from exc


# ---------------------------------------------------------------------------
# WeatherReconciler
# ---------------------------------------------------------------------------

class WeatherReconciler(StatePublisher[WeatherState]):
    """
    Offline-first weather source.

    Collaborators are passed in so tests can swap the client, the store,
    the connectivity probe and the clock.
    """

    def __init__(
        self,
        client: WeatherClient,
        store: LocalCacheStore,
        connectivity_check: Callable[[], Awaitable[bool]] = check_connectivity,
        clock: Callable[[], int] = _epoch_millis,
    ) -> None:
        super().__init__(WeatherState(), name=f"{DOMAIN}.weather")
        self.client = client
        self.store = store
        self._connectivity_check = connectivity_check
        self._clock = clock

        # Incremented by every async_select(); older requests drop their result
        self._select_generation: int = 0

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    async def fetch_cities(self, query: str) -> list[Location]:
        """Geocode *query*. Errors propagate; there is no cached substitute."""
        name = (query or "").strip()
        if not name:
            raise InvalidInputError()
        if not await self._connectivity_check():
            raise NoConnectivityError()
        return await self.client.search_cities(name)

    async def fetch_weather(self, location: Location, unit: UnitPreference) -> WeatherSnapshot:
        """
        Return fresh weather for *location*, or the cached snapshot flagged
        offline when the network path fails. Raises only when neither is available.
        """
        if not await self._connectivity_check():
            _LOGGER.debug("No connectivity, serving %s from cache", location.name)
            return await self._from_cache(
                NoConnectivityError("No internet connection and no cached data")
            )

        try:
            raw = await self.client.fetch_forecast(location.latitude, location.longitude, unit)
            snapshot = map_forecast(raw, location)
        except WeatherError as exc:
            _LOGGER.warning("Failed to fetch weather for %s, trying cache: %s", location.name, exc)
            return await self._from_cache(exc)

        # Write-through: the cache always holds the latest successful fetch
        try:
            await self.store.save_snapshot(snapshot, self._clock())
            await self.store.add_to_search_history(location.name)
        except OSError as exc:
            _LOGGER.error("Failed to write weather cache: %s", exc)

        return snapshot

    async def _from_cache(self, error: WeatherError) -> WeatherSnapshot:
        record = await self.store.load_record()
        if record is None:
            raise error
        return record.snapshot.as_offline()

    # ------------------------------------------------------------------
    # Published-state operations
    # ------------------------------------------------------------------

    async def async_load(self) -> None:
        """Restore preferences, history and, on a fresh state, the cached snapshot."""
        unit = await self.store.get_unit()
        history = await self.store.get_search_history()
        new_data = dataclasses.replace(self.data, unit=unit, history=tuple(history))

        record = await self.store.load_record()
        if record is not None and new_data.status == Status.INITIAL:
            new_data = dataclasses.replace(
                new_data, status=Status.SUCCESS, snapshot=record.snapshot.as_offline()
            )
        self.async_set_updated_data(new_data)

    async def async_search(self, query: str) -> list[Location] | None:
        """Search cities and publish the outcome; returns the matches or None on error."""
        self.async_set_updated_data(
            dataclasses.replace(self.data, search_status=Status.LOADING, search_error=None)
        )
        try:
            locations = await self.fetch_cities(query)
        except WeatherError as exc:
            message = exc.message
            if isinstance(exc, NotFoundError):
                message = f"No cities found for '{(query or '').strip()}'"
            self.async_set_updated_data(
                dataclasses.replace(
                    self.data, search_status=Status.ERROR, locations=(), search_error=message
                )
            )
            return None

        self.async_set_updated_data(
            dataclasses.replace(self.data, search_status=Status.SUCCESS, locations=tuple(locations))
        )
        return locations

    async def async_search_from_history(self, city_name: str) -> list[Location] | None:
        return await self.async_search(city_name)

    async def async_select(self, location: Location) -> WeatherSnapshot | None:
        """
        Fetch weather for *location* in the current unit and publish it.

        A newer call supersedes this one: if another async_select() started
        while this one was in flight, the result is dropped unpublished.
        """
        self._select_generation += 1
        generation = self._select_generation
        unit = self.data.unit

        self.async_set_updated_data(
            dataclasses.replace(self.data, status=Status.LOADING, error_message=None)
        )
        error = None
        try:
            snapshot = await self.fetch_weather(location, unit)
        except WeatherAppError as exc:
            error = exc

        if generation != self._select_generation:
            _LOGGER.debug("Dropping superseded weather result for %s", location.name)
            return None

        # async_set_unit() does not refetch while we are loading, so do it here
        if unit != self.data.unit:
            _LOGGER.debug("Unit changed to %s while fetching %s, fetching again", self.data.unit, location.name)
            return await self.async_select(location)

        if error is not None:
            self.async_set_updated_data(
                dataclasses.replace(
                    self.data,
                    status=Status.ERROR,
                    error_message=error.message,
                    search_status=Status.INITIAL,
                    locations=(),
                )
            )
            return None

        history = await self.store.get_search_history()
        if generation != self._select_generation:
            return None
        self.async_set_updated_data(
            dataclasses.replace(
                self.data,
                status=Status.SUCCESS,
                snapshot=snapshot,
                location=location,
                error_message=None,
                history=tuple(history),
                search_status=Status.INITIAL,
                locations=(),
            )
        )
        return snapshot

    async def async_set_unit(self, unit: UnitPreference) -> None:
        """
        Persist the unit and re-fetch the displayed city in it.

        Temperatures are never converted locally; the API returns them in the
        requested unit.
        """
        unit = UnitPreference(unit)
        await self.store.set_unit(unit)
        self.async_set_updated_data(dataclasses.replace(self.data, unit=unit))

        if self.data.status != Status.SUCCESS or self.data.snapshot is None:
            return

        location = self.data.location or await self._locate_displayed_city()
        if location is None:
            return
        await self.async_select(location)

    async def _locate_displayed_city(self) -> Location | None:
        """
        Resolve the displayed snapshot's city when it was restored from cache
        and no Location is known; prefers an exact name + country match.
        """
        snapshot = self.data.snapshot
        try:
            matches = await self.fetch_cities(snapshot.city_name)
        except WeatherError as exc:
            _LOGGER.warning("Cannot refresh %s in the new unit: %s", snapshot.city_name, exc)
            self.async_set_updated_data(dataclasses.replace(self.data, error_message=exc.message))
            return None
        for match in matches:
            if match.name == snapshot.city_name and match.country == snapshot.country:
                return match
        return matches[0]

    def reset_search(self) -> None:
        self.async_set_updated_data(
            dataclasses.replace(self.data, search_status=Status.INITIAL, locations=(), search_error=None)
        )

    # ------------------------------------------------------------------
    # Cache passthroughs
    # ------------------------------------------------------------------

    async def cache_timestamp(self) -> int:
        return await self.store.cache_timestamp()

    async def clear_cache(self) -> None:
        await self.store.clear_cache()
