"""
Domain models for weatherapp.

This module contains pure data classes for locations, weather snapshots and
favorite cities. These classes have no dependencies on HTTP, storage or
the reconcilers.
"""
from __future__ import annotations

import dataclasses
import enum


class UnitPreference(str, enum.Enum):
    """Temperature unit requested from the forecast API."""

    CELSIUS = "celsius"
    FAHRENHEIT = "fahrenheit"

    @property
    def symbol(self) -> str:
        return "°F" if self is UnitPreference.FAHRENHEIT else "°C"

    @classmethod
    def parse(cls, value: str | None) -> UnitPreference:
        """Map a stored value to a unit; anything unrecognised falls back to celsius."""
        if value == cls.FAHRENHEIT.value:
            return cls.FAHRENHEIT
        return cls.CELSIUS


@dataclasses.dataclass(frozen=True)
class Location:
    """Single geocoding result."""

    name: str
    latitude: float
    longitude: float
    country: str
    region: str | None = None

    @classmethod
    def from_api(cls, result: dict) -> Location:
        return cls(
            name=result["name"],
            latitude=float(result["latitude"]),
            longitude=float(result["longitude"]),
            country=result.get("country", ""),
            region=result.get("admin1"),
        )


@dataclasses.dataclass(frozen=True)
class DailyForecast:
    date: str
    max_temp: float
    min_temp: float
    condition: str
    emoji: str
    precipitation: float


@dataclasses.dataclass(frozen=True)
class HourlyForecast:
    time: str
    temperature: float
    condition: str
    emoji: str
    humidity: int


@dataclasses.dataclass(frozen=True)
class WeatherSnapshot:
    """
    UI-facing weather for one city, derived from a single forecast response.

    is_offline is a presentation flag: it is only ever True on copies served
    from the local cache. Use dataclasses.replace() to derive such a copy.
    """

    city_name: str
    country: str
    temperature: float
    feels_like: float
    condition: str
    emoji: str
    humidity: int
    wind_speed: float
    min_temp: float
    max_temp: float
    last_update_label: str
    daily_forecast: tuple[DailyForecast, ...] = ()
    hourly_forecast: tuple[HourlyForecast, ...] = ()
    is_offline: bool = False

    def as_offline(self) -> WeatherSnapshot:
        return dataclasses.replace(self, is_offline=True)

    def to_dict(self) -> dict:
        """JSON-ready form for the local cache. is_offline is not persisted."""
        data = dataclasses.asdict(self)
        data.pop("is_offline")
        data["daily_forecast"] = list(data["daily_forecast"])
        data["hourly_forecast"] = list(data["hourly_forecast"])
        return data

    @classmethod
    def from_dict(cls, data: dict) -> WeatherSnapshot:
        """Rebuild a snapshot serialised by to_dict(). Raises KeyError/TypeError on malformed input."""
        fields = dict(data)
        fields.pop("is_offline", None)
        fields["daily_forecast"] = tuple(DailyForecast(**d) for d in data.get("daily_forecast", []))
        fields["hourly_forecast"] = tuple(HourlyForecast(**h) for h in data.get("hourly_forecast", []))
        return cls(**fields)


@dataclasses.dataclass(frozen=True)
class CacheRecord:
    """The single cached snapshot and when it was fetched."""

    snapshot: WeatherSnapshot
    fetched_at_epoch_millis: int


@dataclasses.dataclass(frozen=True)
class FavoriteEntry:
    """
    One favorite city owned by a single user.

    id and created_by are assigned when the entry is written; only note and
    updated_at change afterwards.
    """

    city_name: str
    country: str
    latitude: float = 0.0
    longitude: float = 0.0
    note: str = ""
    id: str = ""
    created_at: int = 0
    created_by: str = ""
    updated_at: int = 0

    @classmethod
    def from_location(cls, location: Location, note: str = "") -> FavoriteEntry:
        return cls(
            city_name=location.name,
            country=location.country,
            latitude=location.latitude,
            longitude=location.longitude,
            note=note,
        )

    def to_record(self) -> dict:
        """Wire representation stored under favorites/<owner>/<id>."""
        return {
            "id": self.id,
            "cityName": self.city_name,
            "country": self.country,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "note": self.note,
            "createdAt": self.created_at,
            "createdBy": self.created_by,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_record(cls, record: dict) -> FavoriteEntry:
        """
        Parse a wire record. Optional fields fall back to defaults;
        missing required fields raise KeyError.
        """
        return cls(
            id=str(record["id"]),
            city_name=str(record["cityName"]),
            country=str(record["country"]),
            latitude=float(record.get("latitude", 0.0)),
            longitude=float(record.get("longitude", 0.0)),
            note=str(record.get("note", "")),
            created_at=int(record["createdAt"]),
            created_by=str(record["createdBy"]),
            updated_at=int(record.get("updatedAt", 0)),
        )
