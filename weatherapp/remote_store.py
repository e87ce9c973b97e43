"""
Remote list store contract, record validation and the in-memory implementation.

Favorites live under favorites/<owner>/<id>. Writes are allowed only when the
signed-in identity equals <owner> and the record's createdBy equals that
identity; reads are allowed only for one's own path.
"""
from __future__ import annotations

import abc
import asyncio
import contextlib
import copy
import logging
import random
import threading
import time
from typing import AsyncIterator

import voluptuous as vol

from .const import CITY_NAME_MAX_LENGTH, NOTE_MAX_LENGTH
from .errors import PermissionDeniedError

_LOGGER = logging.getLogger(__name__)

non_empty_string = vol.All(str, vol.Length(min=1))
epoch_millis = vol.All(vol.Coerce(int), vol.Range(min=0))

# Minimum shape of a stored favorite; anything else in the record is left alone
FAVORITE_RECORD_SCHEMA = vol.Schema(
    {
        vol.Required("id"): non_empty_string,
        vol.Required("cityName"): vol.All(str, vol.Length(min=1, max=CITY_NAME_MAX_LENGTH)),
        vol.Required("country"): str,
        vol.Required("createdAt"): epoch_millis,
        vol.Required("createdBy"): non_empty_string,
        vol.Optional("note", default=""): vol.All(str, vol.Length(max=NOTE_MAX_LENGTH)),
        vol.Optional("latitude", default=0.0): vol.Coerce(float),
        vol.Optional("longitude", default=0.0): vol.Coerce(float),
        vol.Optional("updatedAt", default=0): epoch_millis,
    },
    extra=vol.ALLOW_EXTRA,
)


def validate_record(record) -> dict:
    """Return the normalised record. Raises vol.Invalid when it does not match the schema."""
    return FAVORITE_RECORD_SCHEMA(record)


# ---------------------------------------------------------------------------
# Push ids
# ---------------------------------------------------------------------------

PUSH_CHARS = "-0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ_abcdefghijklmnopqrstuvwxyz"


class PushIdGenerator:
    """
    Chronologically ordered 20-character keys: 8 characters of millisecond
    timestamp followed by 12 random characters. Two ids generated within the
    same millisecond increment the random part so they still sort in order.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last_time = 0
        self._last_random = [0] * 12

    def __call__(self) -> str:
        with self._lock:
            now = int(time.time() * 1000)
            duplicate_time = now == self._last_time
            self._last_time = now

            time_chars = []
            for _ in range(8):
                time_chars.append(PUSH_CHARS[now % 64])
                now //= 64
            time_part = "".join(reversed(time_chars))

            if not duplicate_time:
                self._last_random = [random.randrange(64) for _ in range(12)]
            else:
                index = 11
                while index >= 0 and self._last_random[index] == 63:
                    self._last_random[index] = 0
                    index -= 1
                if index >= 0:
                    self._last_random[index] += 1

            return time_part + "".join(PUSH_CHARS[i] for i in self._last_random)


generate_push_id = PushIdGenerator()


# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------

class RemoteListStore(abc.ABC):
    """Per-owner mapping of id → raw favorite record with a live change feed."""

    @abc.abstractmethod
    async def push(self, owner: str, record: dict) -> str:
        """Store *record* under a new id (also written into record["id"]) and return the id."""

    @abc.abstractmethod
    async def update(self, owner: str, entry_id: str, fields: dict) -> None:
        """Merge *fields* into an existing record; a missing id is a silent no-op."""

    @abc.abstractmethod
    async def remove(self, owner: str, entry_id: str) -> None:
        """Delete the record; deleting a missing id is not an error."""

    @abc.abstractmethod
    async def query_equal(self, owner: str, field: str, value) -> dict:
        """Records whose *field* equals *value*, keyed by id."""

    @abc.abstractmethod
    def watch(self, owner: str) -> contextlib.AbstractAsyncContextManager[AsyncIterator[dict]]:
        """
        Async context manager yielding an iterator of full {id: record}
        snapshots, starting with the current one. Leaving the context
        releases the listener.
        """

    async def close(self) -> None:
        """Release any resources held by the store."""


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------

class InMemoryDatabase:
    """
    Shared tree behind one or more InMemoryListStore handles.

    Several handles (one per simulated device or user) can point at the same
    database to exercise multi-device sync and owner scoping.
    """

    def __init__(self) -> None:
        self.tree: dict[str, dict[str, dict]] = {}
        # owner → queues of the active watchers
        self._watchers: dict[str, set[asyncio.Queue]] = {}

    def snapshot(self, owner: str) -> dict:
        return copy.deepcopy(self.tree.get(owner, {}))

    def add_watcher(self, owner: str, queue: asyncio.Queue) -> None:
        self._watchers.setdefault(owner, set()).add(queue)
        queue.put_nowait(self.snapshot(owner))

    def remove_watcher(self, owner: str, queue: asyncio.Queue) -> None:
        watchers = self._watchers.get(owner)
        if watchers is not None:
            watchers.discard(queue)
            if not watchers:
                del self._watchers[owner]

    def watcher_count(self, owner: str) -> int:
        return len(self._watchers.get(owner, ()))

    def notify(self, owner: str) -> None:
        """Send every watcher of *owner* one consistent full snapshot."""
        for queue in list(self._watchers.get(owner, ())):
            queue.put_nowait(self.snapshot(owner))

    def fail_watchers(self, owner: str, error: Exception) -> None:
        """Terminate every watcher of *owner* with *error* (simulates a cancelled listener)."""
        for queue in list(self._watchers.get(owner, ())):
            queue.put_nowait(error)


class InMemoryListStore(RemoteListStore):
    """RemoteListStore kept in process memory, enforcing the same owner rules as the server."""

    def __init__(self, identity, database: InMemoryDatabase | None = None) -> None:
        self._identity = identity
        self.database = database or InMemoryDatabase()

    def _check_owner(self, owner: str) -> None:
        if not owner or self._identity.current_user_id != owner:
            raise PermissionDeniedError(f"Permission denied on favorites/{owner}")

    async def push(self, owner: str, record: dict) -> str:
        self._check_owner(owner)
        entry_id = generate_push_id()
        record = dict(record, id=entry_id)
        try:
            record = validate_record(record)
        except vol.Invalid as exc:
            raise PermissionDeniedError(f"Permission denied: {exc}") from exc
        if record["createdBy"] != owner:
            raise PermissionDeniedError("Permission denied: createdBy does not match owner")

        self.database.tree.setdefault(owner, {})[entry_id] = record
        self.database.notify(owner)
        return entry_id

    async def update(self, owner: str, entry_id: str, fields: dict) -> None:
        self._check_owner(owner)
        existing = self.database.tree.get(owner, {}).get(entry_id)
        if existing is None:
            _LOGGER.debug("Update of missing favorite %s ignored", entry_id)
            return
        protected = {"id", "createdAt", "createdBy"} & fields.keys()
        if protected:
            raise PermissionDeniedError(f"Permission denied: {sorted(protected)} are immutable")
        try:
            record = validate_record({**existing, **fields})
        except vol.Invalid as exc:
            raise PermissionDeniedError(f"Permission denied: {exc}") from exc
        self.database.tree[owner][entry_id] = record
        self.database.notify(owner)

    async def remove(self, owner: str, entry_id: str) -> None:
        self._check_owner(owner)
        if self.database.tree.get(owner, {}).pop(entry_id, None) is not None:
            self.database.notify(owner)

    async def query_equal(self, owner: str, field: str, value) -> dict:
        self._check_owner(owner)
        return {
            entry_id: copy.deepcopy(record)
            for entry_id, record in self.database.tree.get(owner, {}).items()
            if isinstance(record, dict) and record.get(field) == value
        }

    @contextlib.asynccontextmanager
    async def watch(self, owner: str):
        self._check_owner(owner)
        queue: asyncio.Queue = asyncio.Queue()
        self.database.add_watcher(owner, queue)
        try:
            yield _drain(queue)
        finally:
            self.database.remove_watcher(owner, queue)


async def _drain(queue: asyncio.Queue):
    while True:
        item = await queue.get()
        if isinstance(item, Exception):
            raise item
        yield item
