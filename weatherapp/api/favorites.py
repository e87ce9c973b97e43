"""
Low-level favorites storage on the Firebase Realtime Database REST API.

Responsible for:
- Writing, patching, deleting and querying records under favorites/<uid>
- Streaming live changes (text/event-stream) and folding them into full snapshots
- Translating HTTP / transport failures into weatherapp errors
"""
import asyncio
import contextlib
import copy
import json
import logging

import aiohttp
import voluptuous as vol

from weatherapp.const import FAVORITES_ROOT, REQUEST_TIMEOUT
from weatherapp.errors import AuthFailureError, FavoritesError, PermissionDeniedError
from weatherapp.remote_store import RemoteListStore, generate_push_id, validate_record
from weatherapp.requests import make_request, HttpStatusError

_LOGGER = logging.getLogger(__name__)


def _translate(exc: Exception, action: str) -> FavoritesError:
    """Map a request failure onto the favorites error kinds."""
    if isinstance(exc, HttpStatusError):
        if exc.status in (401, 403):
            return PermissionDeniedError(f"Permission denied while trying to {action}")
        return FavoritesError(f"Failed to {action}: {exc.detail or exc.status}")
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return FavoritesError(f"Timed out while trying to {action}")
    return FavoritesError(f"Failed to {action}: {exc}")


class StreamTree:
    """
    Local copy of the watched node, updated from streaming put/patch events.

    A put replaces the value at its path (null deletes it); a patch merges
    each of its keys at the path.
    """

    def __init__(self) -> None:
        self.root: dict = {}

    def apply(self, event: str, payload: dict) -> None:
        parts = [part for part in payload["path"].split("/") if part]
        value = payload.get("data")
        if event == "put":
            self._set(parts, value)
        elif event == "patch":
            for key, child_value in (value or {}).items():
                self._set(parts + [part for part in key.split("/") if part], child_value)

    def _set(self, parts: list[str], value) -> None:
        if not parts:
            self.root = value if isinstance(value, dict) else {}
            return

        node = self.root
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                if value is None:
                    return
                child = {}
                node[part] = child
            node = child

        if value is None:
            node.pop(parts[-1], None)
        else:
            node[parts[-1]] = value

    def snapshot(self) -> dict:
        return copy.deepcopy(self.root)


async def iter_stream_events(lines):
    """Yield (event, data) pairs from an async iterator of raw event-stream lines."""
    event = None
    data_lines: list[str] = []
    async for raw in lines:
        line = raw.decode("utf-8").rstrip("\r\n") if isinstance(raw, bytes) else raw.rstrip("\r\n")
        if not line:
            if event is not None:
                yield event, "\n".join(data_lines)
            event = None
            data_lines = []
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "event":
            event = value
        elif field == "data":
            data_lines.append(value)


async def iter_snapshots(lines):
    """
    Fold a Realtime Database event stream into full {id: record} snapshots.

    The first put on "/" carries the current value, so the first snapshot
    arrives immediately. Raises on cancel / auth_revoked and when the
    stream ends.
    """
    tree = StreamTree()
    async for event, data in iter_stream_events(lines):
        if event in ("put", "patch"):
            try:
                payload = json.loads(data)
                tree.apply(event, payload)
            except (ValueError, KeyError, TypeError, AttributeError) as exc:
                _LOGGER.warning("Skipping malformed %s event: %s", event, exc)
                continue
            yield tree.snapshot()
        elif event == "keep-alive":
            continue
        elif event == "cancel":
            raise PermissionDeniedError(f"Favorites subscription cancelled: {data}")
        elif event == "auth_revoked":
            raise AuthFailureError("Credential expired, sign in again")
        else:
            _LOGGER.debug("Ignoring unknown stream event %s", event)

    raise FavoritesError("Favorites stream closed")


class RealtimeDatabaseStore(RemoteListStore):
    """RemoteListStore backed by the Firebase Realtime Database REST API."""

    def __init__(
        self,
        database_url: str,
        identity,
        session: aiohttp.ClientSession = None,
        timeout: int = REQUEST_TIMEOUT,
    ) -> None:
        self._base_url = database_url.rstrip("/")
        self._identity = identity
        self._session = session
        self._timeout = timeout

    def _url(self, owner: str, entry_id: str | None = None) -> str:
        path = f"{FAVORITES_ROOT}/{owner}"
        if entry_id is not None:
            path = f"{path}/{entry_id}"
        return f"{self._base_url}/{path}.json"

    async def _auth_params(self) -> dict:
        token = await self._identity.get_id_token()
        return {"auth": token} if token else {}

    async def _call(self, method: str, url: str, action: str, payload=None, extra_params: dict = None):
        params = await self._auth_params()
        if extra_params:
            params.update(extra_params)
        try:
            return await make_request(
                method, url, {"accept": "application/json"},
                payload=payload, params=params, timeout=self._timeout, session=self._session,
            )
        except (HttpStatusError, asyncio.TimeoutError, TimeoutError, aiohttp.ClientError, ValueError) as exc:
            _LOGGER.warning("Realtime Database %s %s failed: %s", method, url, exc)
            raise _translate(exc, action) from exc

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def push(self, owner: str, record: dict) -> str:
        """
        Write *record* under a freshly generated push id.

        Corresponding CURL command:
        curl -X PUT -d '{...}' 'https://<db>/favorites/<uid>/<push-id>.json?auth=<id-token>'
        """
        entry_id = generate_push_id()
        try:
            record = validate_record(dict(record, id=entry_id))
        except vol.Invalid as exc:
            raise PermissionDeniedError(f"Permission denied: {exc}") from exc
        await self._call("PUT", self._url(owner, entry_id), "add favorite", payload=record)
        return entry_id

    async def update(self, owner: str, entry_id: str, fields: dict) -> None:
        """
        Patch an existing record. The record is read first so that an update
        for a missing id does not create a partial child.
        """
        url = self._url(owner, entry_id)
        existing = await self._call("GET", url, "update favorite")
        if existing is None:
            _LOGGER.debug("Update of missing favorite %s ignored", entry_id)
            return
        await self._call("PATCH", url, "update favorite", payload=fields)

    async def remove(self, owner: str, entry_id: str) -> None:
        await self._call("DELETE", self._url(owner, entry_id), "delete favorite")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def query_equal(self, owner: str, field: str, value) -> dict:
        """
        Example request:
        https://<db>/favorites/<uid>.json?orderBy="cityName"&equalTo="London"
        """
        result = await self._call(
            "GET", self._url(owner), "query favorites",
            extra_params={"orderBy": json.dumps(field), "equalTo": json.dumps(value)},
        )
        return result if isinstance(result, dict) else {}

    @contextlib.asynccontextmanager
    async def watch(self, owner: str):
        """Open an event-stream on favorites/<owner>; closed when the context exits."""
        params = await self._auth_params()
        own_session = self._session is None
        session = self._session or aiohttp.ClientSession()
        # No total timeout on a live stream; only connecting is bounded
        stream_timeout = aiohttp.ClientTimeout(total=None, sock_connect=self._timeout)
        response = None
        try:
            try:
                response = await session.get(
                    self._url(owner),
                    headers={"Accept": "text/event-stream"},
                    params=params,
                    timeout=stream_timeout,
                )
            except (asyncio.TimeoutError, TimeoutError, aiohttp.ClientError) as exc:
                raise _translate(exc, "subscribe to favorites") from exc

            if response.status != 200:
                detail = await response.text()
                raise _translate(HttpStatusError(response.status, detail[:200]), "subscribe to favorites")

            yield self._snapshots(response)
        finally:
            if response is not None:
                response.close()
            if own_session:
                await session.close()

    async def _snapshots(self, response):
        try:
            async for snapshot in iter_snapshots(response.content):
                yield snapshot
        except (asyncio.TimeoutError, TimeoutError, aiohttp.ClientError) as exc:
            raise _translate(exc, "receive favorites") from exc
