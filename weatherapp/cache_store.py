"""
LocalCacheStore — persisted key-value store for offline data and preferences.

Holds four logical keys in one JSON document:
    cached_weather   — the single cached WeatherSnapshot (full overwrite on every save)
    cache_timestamp  — epoch millis of that snapshot
    temperature_unit — "celsius" | "fahrenheit"
    search_history   — comma-joined city names, most recent first

Every read-modify-write runs under one asyncio.Lock so a write is atomic with
respect to reads. File I/O runs in the default executor and the document is
replaced atomically (temp file + os.replace).
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path

from .const import (
    CACHE_TIMESTAMP_KEY,
    CACHED_WEATHER_KEY,
    SEARCH_HISTORY_DELIMITER,
    SEARCH_HISTORY_KEY,
    SEARCH_HISTORY_LIMIT,
    TEMPERATURE_UNIT_KEY,
)
from .models import CacheRecord, UnitPreference, WeatherSnapshot

_LOGGER = logging.getLogger(__name__)


class LocalCacheStore:
    """
    Single-city weather cache plus search history and unit preference.

    With path=None the document only lives in memory, which is what the
    tests and throwaway sessions use.
    """

    def __init__(self, path: str | os.PathLike | None = None) -> None:
        self._path = Path(path).expanduser() if path is not None else None
        self._lock = asyncio.Lock()
        # Lazily loaded copy of the persisted document
        self._data: dict | None = None

    @property
    def path(self) -> Path | None:
        return self._path

    # ------------------------------------------------------------------
    # Weather cache
    # ------------------------------------------------------------------

    async def load_record(self) -> CacheRecord | None:
        """Return the cached record, or None when nothing (or nothing readable) is cached."""
        async with self._lock:
            data = await self._ensure_loaded()
            raw = data.get(CACHED_WEATHER_KEY)
            timestamp = data.get(CACHE_TIMESTAMP_KEY, 0)
        if raw is None:
            return None
        try:
            snapshot = WeatherSnapshot.from_dict(json.loads(raw))
        except (TypeError, ValueError, KeyError) as exc:
            _LOGGER.warning("Discarding unreadable cached weather: %s", exc)
            return None
        return CacheRecord(snapshot=snapshot, fetched_at_epoch_millis=_parse_timestamp(timestamp))

    async def save_snapshot(self, snapshot: WeatherSnapshot, fetched_at_epoch_millis: int) -> None:
        """Overwrite the single cache slot."""
        serialized = json.dumps(snapshot.to_dict(), ensure_ascii=False)
        async with self._lock:
            data = dict(await self._ensure_loaded())
            data[CACHED_WEATHER_KEY] = serialized
            data[CACHE_TIMESTAMP_KEY] = int(fetched_at_epoch_millis)
            await self._commit(data)
        _LOGGER.debug("Cached weather for %s", snapshot.city_name)

    async def cache_timestamp(self) -> int:
        """Epoch millis of the cached snapshot, 0 when the cache is empty."""
        async with self._lock:
            data = await self._ensure_loaded()
            return _parse_timestamp(data.get(CACHE_TIMESTAMP_KEY, 0))

    async def clear_cache(self) -> None:
        async with self._lock:
            data = dict(await self._ensure_loaded())
            data.pop(CACHED_WEATHER_KEY, None)
            data.pop(CACHE_TIMESTAMP_KEY, None)
            await self._commit(data)

    # ------------------------------------------------------------------
    # Unit preference
    # ------------------------------------------------------------------

    async def get_unit(self) -> UnitPreference:
        async with self._lock:
            data = await self._ensure_loaded()
            return UnitPreference.parse(data.get(TEMPERATURE_UNIT_KEY))

    async def set_unit(self, unit: UnitPreference) -> None:
        async with self._lock:
            data = dict(await self._ensure_loaded())
            data[TEMPERATURE_UNIT_KEY] = UnitPreference(unit).value
            await self._commit(data)

    # ------------------------------------------------------------------
    # Search history
    # ------------------------------------------------------------------

    async def get_search_history(self) -> list[str]:
        async with self._lock:
            data = await self._ensure_loaded()
            return _split_history(data.get(SEARCH_HISTORY_KEY, ""))

    async def add_to_search_history(self, city_name: str) -> list[str]:
        """
        Move city_name to the front of the history, dropping the oldest entry
        beyond SEARCH_HISTORY_LIMIT. Returns the new history.
        """
        # The delimiter cannot appear inside a stored name
        name = city_name.replace(SEARCH_HISTORY_DELIMITER, " ").strip()
        if not name:
            return await self.get_search_history()

        async with self._lock:
            data = dict(await self._ensure_loaded())
            history = _split_history(data.get(SEARCH_HISTORY_KEY, ""))
            if name in history:
                history.remove(name)
            history.insert(0, name)
            history = history[:SEARCH_HISTORY_LIMIT]
            data[SEARCH_HISTORY_KEY] = SEARCH_HISTORY_DELIMITER.join(history)
            await self._commit(data)
        return history

    # ------------------------------------------------------------------
    # Persistence helpers (call with the lock held)
    # ------------------------------------------------------------------

    async def _ensure_loaded(self) -> dict:
        if self._data is None:
            if self._path is None:
                self._data = {}
            else:
                loop = asyncio.get_running_loop()
                self._data = await loop.run_in_executor(None, _read_document, self._path)
        return self._data

    async def _commit(self, data: dict) -> None:
        if self._path is not None:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, _write_document, self._path, data)
        self._data = data


def _parse_timestamp(value) -> int:
    """Stored epoch millis; anything unparseable reads as 0 (unknown age)."""
    try:
        return int(value)
    except (TypeError, ValueError):
        _LOGGER.warning("Ignoring unreadable cache timestamp %r", value)
        return 0


def _split_history(value: str) -> list[str]:
    if not value or not isinstance(value, str):
        return []
    return [name for name in value.split(SEARCH_HISTORY_DELIMITER) if name]


def _read_document(path: Path) -> dict:
    try:
        with open(path, encoding="utf-8") as file:
            data = json.load(file)
    except FileNotFoundError:
        return {}
    except (OSError, ValueError) as exc:
        _LOGGER.error("Could not read local store %s, starting empty: %s", path, exc)
        return {}
    if not isinstance(data, dict):
        _LOGGER.error("Local store %s does not hold an object, starting empty", path)
        return {}
    return data


def _write_document(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as file:
            json.dump(data, file, ensure_ascii=False)
        os.replace(tmp_name, path)
    except BaseException:
        os.unlink(tmp_name)
        raise
