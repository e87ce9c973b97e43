"""
Immutable state snapshots published by the reconcilers.

This is a pure data module with no network or storage dependencies.
Always replace via dataclasses.replace() — never mutate in place.
"""
from __future__ import annotations

import dataclasses
import enum

from .models import FavoriteEntry, Location, UnitPreference, WeatherSnapshot


class Status(str, enum.Enum):
    INITIAL = "initial"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


class AuthStatus(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    AUTH_FAILED = "auth_failed"


@dataclasses.dataclass(frozen=True)
class WeatherState:
    """Everything the weather screen renders."""

    # Weather panel
    status: Status = Status.INITIAL
    snapshot: WeatherSnapshot | None = None
    error_message: str | None = None
    # Location the displayed snapshot was fetched for (None when restored from cache)
    location: Location | None = None

    # City search
    search_status: Status = Status.INITIAL
    locations: tuple[Location, ...] = ()
    search_error: str | None = None

    # Persisted preferences
    history: tuple[str, ...] = ()
    unit: UnitPreference = UnitPreference.CELSIUS


@dataclasses.dataclass(frozen=True)
class FavoritesState:
    """Identity plus the last published favorites list."""

    auth: AuthStatus = AuthStatus.UNINITIALIZED
    user_id: str | None = None
    auth_error: str | None = None

    status: Status = Status.LOADING
    # Last good list; kept while an error is displayed
    favorites: tuple[FavoriteEntry, ...] = ()
    error_message: str | None = None
