"""
Offline-first weather client core with synced favorite cities.

async_setup() wires the collaborators together; everything is constructed
here and passed in, nothing is a process-wide singleton.
"""
import logging

import aiohttp

from .api import WeatherClient
from .api.auth import IdentityClient, LocalIdentity
from .api.favorites import RealtimeDatabaseStore
from .cache_store import LocalCacheStore
from .config import FAVORITES_BACKEND_FIREBASE, FAVORITES_BACKEND_MEMORY, Settings
from .const import DOMAIN, VERSION
from .favorites_reconciler import FavoritesReconciler
from .remote_store import InMemoryListStore
from .weather_reconciler import WeatherReconciler

_LOGGER = logging.getLogger(__name__)

__all__ = ["DOMAIN", "VERSION", "WeatherApp", "async_setup"]


class WeatherApp:
    """The two reconcilers plus the HTTP session they share."""

    def __init__(
        self,
        weather: WeatherReconciler,
        favorites: FavoritesReconciler | None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.weather = weather
        self.favorites = favorites
        self._session = session

    async def async_close(self) -> None:
        """Stop the favorites subscription and release the HTTP session."""
        if self.favorites is not None:
            await self.favorites.async_stop()
            await self.favorites.store.close()
        if self._session is not None:
            await self._session.close()


async def async_setup(settings: Settings = None) -> WeatherApp:
    """Build the app from *settings* (environment when omitted) and load persisted state."""
    if settings is None:
        settings = Settings.from_env()

    session = aiohttp.ClientSession()
    store = LocalCacheStore(settings.store_path)
    weather = WeatherReconciler(WeatherClient(session, timeout=settings.request_timeout), store)

    favorites = None
    backend = settings.resolved_favorites_backend
    if backend == FAVORITES_BACKEND_FIREBASE:
        identity = IdentityClient(settings.firebase_api_key, session)
        remote = RealtimeDatabaseStore(
            settings.firebase_database_url, identity, session, timeout=settings.request_timeout
        )
        favorites = FavoritesReconciler(identity, remote)
    elif backend == FAVORITES_BACKEND_MEMORY:
        identity = LocalIdentity()
        favorites = FavoritesReconciler(identity, InMemoryListStore(identity))
    else:
        _LOGGER.debug("Favorites sync disabled")

    try:
        await weather.async_load()
    except Exception:
        await session.close()
        raise

    return WeatherApp(weather, favorites, session)
