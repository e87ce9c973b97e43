"""
FavoritesReconciler — per-user favorite cities synced through a RemoteListStore.

Responsibilities:
- Drive the one-shot identity transition
  UNINITIALIZED → AUTHENTICATING → AUTHENTICATED(id) | AUTH_FAILED.
- Scope add / update_note / delete to the signed-in identity.
- Turn the store's change feed into full, sorted FavoriteEntry lists and
  replace the published state wholesale on every emission.
"""
from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import logging
import time
from typing import AsyncIterator, Callable

import aiohttp
import voluptuous as vol

from .const import DOMAIN, NOTE_MAX_LENGTH
from .errors import (
    AuthFailureError,
    FavoritesError,
    InvalidInputError,
    NotAuthenticatedError,
    WeatherAppError,
)
from .models import FavoriteEntry
from .publisher import StatePublisher
from .remote_store import RemoteListStore, validate_record
from .state import AuthStatus, FavoritesState, Status

_LOGGER = logging.getLogger(__name__)


def _epoch_millis() -> int:
    return int(time.time() * 1000)


def parse_favorites(raw: dict | None) -> list[FavoriteEntry]:
    """
    Convert a raw {id: record} snapshot into entries sorted by updated_at,
    newest first. Records that fail validation are skipped, not fatal.
    """
    entries = []
    for key, record in (raw or {}).items():
        try:
            entries.append(FavoriteEntry.from_record(validate_record(record)))
        except (vol.Invalid, KeyError, TypeError, ValueError) as exc:
            _LOGGER.debug("Skipping malformed favorite %s: %s", key, exc)
    entries.sort(key=lambda entry: entry.updated_at, reverse=True)
    return entries


def _check_note(note: str) -> None:
    if len(note) > NOTE_MAX_LENGTH:
        raise InvalidInputError(f"Note must be at most {NOTE_MAX_LENGTH} characters")


class FavoritesReconciler(StatePublisher[FavoritesState]):
    """
    Owns the identity and the published favorites list.

    Writes do not touch the published list; changes come back through the
    live subscription.
    """

    def __init__(
        self,
        identity,
        store: RemoteListStore,
        clock: Callable[[], int] = _epoch_millis,
    ) -> None:
        super().__init__(FavoritesState(), name=f"{DOMAIN}.favorites")
        self.identity = identity
        self.store = store
        self._clock = clock
        self._observer: asyncio.Task | None = None

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    @property
    def user_id(self) -> str | None:
        if self.data.auth == AuthStatus.AUTHENTICATED:
            return self.data.user_id
        return None

    async def async_sign_in(self) -> str | None:
        """
        Reuse the existing session or create an anonymous identity.

        Failure leaves AUTH_FAILED; nothing retries until this is called again.
        """
        if self.data.auth == AuthStatus.AUTHENTICATED:
            return self.data.user_id
        if self.data.auth == AuthStatus.AUTHENTICATING:
            _LOGGER.debug("Sign-in already in progress")
            return None

        self.async_set_updated_data(
            dataclasses.replace(self.data, auth=AuthStatus.AUTHENTICATING, auth_error=None)
        )
        try:
            user_id = self.identity.current_user_id or await self.identity.sign_in_anonymously()
        except AuthFailureError as exc:
            _LOGGER.error("Anonymous sign-in failed: %s", exc)
            self.async_set_updated_data(
                dataclasses.replace(self.data, auth=AuthStatus.AUTH_FAILED, auth_error=exc.message)
            )
            return None

        self.async_set_updated_data(
            dataclasses.replace(self.data, auth=AuthStatus.AUTHENTICATED, user_id=user_id)
        )
        return user_id

    def _require_user(self) -> str:
        user_id = self.user_id
        if user_id is None:
            raise NotAuthenticatedError()
        return user_id

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def add(self, entry: FavoriteEntry) -> str:
        """Store *entry* for the current identity and return the assigned id."""
        user_id = self._require_user()
        _check_note(entry.note)
        now = self._clock()
        # createdBy always comes from the identity, never from the caller
        record = dataclasses.replace(
            entry, id="", created_by=user_id, created_at=now, updated_at=now
        ).to_record()
        entry_id = await self.store.push(user_id, record)
        _LOGGER.debug("Added favorite %s (%s)", entry_id, entry.city_name)
        return entry_id

    async def update_note(self, entry_id: str, note: str) -> None:
        """Change note and updatedAt only. A missing id is a silent no-op."""
        user_id = self._require_user()
        _check_note(note)
        await self.store.update(user_id, entry_id, {"note": note, "updatedAt": self._clock()})

    async def delete(self, entry_id: str) -> None:
        user_id = self._require_user()
        await self.store.remove(user_id, entry_id)

    async def is_city_favorited(self, city_name: str) -> bool:
        """
        Advisory duplicate check. It is not atomic with add(), so two
        devices can still create the same city; any failure reads as False.
        """
        try:
            user_id = self._require_user()
            matches = await self.store.query_equal(user_id, "cityName", city_name)
        except (FavoritesError, aiohttp.ClientError, asyncio.TimeoutError) as exc:
            _LOGGER.debug("Favorite check for %s failed: %s", city_name, exc)
            return False
        return bool(matches)

    # ------------------------------------------------------------------
    # Live subscription
    # ------------------------------------------------------------------

    @contextlib.asynccontextmanager
    async def subscribe(self):
        """
        Subscribe to the current identity's favorites.

        Yields an async iterator of full lists, newest update first; the first
        item is the current list. The listener is released when the context
        exits. On error the error state is published and the iterator raises;
        subscribe again to recover.
        """
        user_id = self._require_user()
        async with contextlib.AsyncExitStack() as stack:
            try:
                changes = await stack.enter_async_context(self.store.watch(user_id))
            except FavoritesError as exc:
                self._subscription_failed(exc)
                raise
            # Only watch and stream failures are published, not errors from the caller's block
            yield self._publish_each(changes)

    async def _publish_each(self, changes: AsyncIterator[dict]) -> AsyncIterator[list[FavoriteEntry]]:
        try:
            async for raw in changes:
                favorites = parse_favorites(raw)
                self.async_set_updated_data(
                    dataclasses.replace(
                        self.data,
                        status=Status.SUCCESS,
                        favorites=tuple(favorites),
                        error_message=None,
                    )
                )
                yield favorites
        except FavoritesError as exc:
            self._subscription_failed(exc)
            raise

    def _subscription_failed(self, exc: FavoritesError) -> None:
        _LOGGER.warning("Favorites subscription ended: %s", exc)
        self._publish_error(exc)

    def _publish_error(self, exc: WeatherAppError) -> None:
        # The last good list stays in state next to the error
        self.async_set_updated_data(
            dataclasses.replace(self.data, status=Status.ERROR, error_message=exc.message)
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def async_start(self) -> None:
        """Sign in and keep the published list in sync in the background."""
        if await self.async_sign_in() is None:
            return
        if self._observer is None or self._observer.done():
            self._observer = asyncio.ensure_future(self._observe())

    async def _observe(self) -> None:
        try:
            async with self.subscribe() as favorites:
                async for _ in favorites:
                    pass
        except FavoritesError:
            # Already published; the caller decides when to resubscribe
            return

    async def async_add_favorite(self, entry: FavoriteEntry) -> str | None:
        """add() for the presentation layer: failures become an error state."""
        try:
            return await self.add(entry)
        except (FavoritesError, InvalidInputError) as exc:
            _LOGGER.error("Failed to add favorite %s: %s", entry.city_name, exc)
            self._publish_error(exc)
            return None

    async def async_stop(self) -> None:
        """Cancel the background subscription and release its listener."""
        if self._observer is None:
            return
        self._observer.cancel()
        await asyncio.gather(self._observer, return_exceptions=True)
        self._observer = None
