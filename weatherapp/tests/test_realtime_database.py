"""
Tests for the Realtime Database store: event-stream folding, request shapes
and error translation.
"""

from __future__ import annotations

import json
import unittest
from unittest.mock import AsyncMock, MagicMock, patch

from weatherapp.api.favorites import RealtimeDatabaseStore, StreamTree, iter_snapshots, iter_stream_events
from weatherapp.errors import AuthFailureError, FavoritesError, PermissionDeniedError
from weatherapp.requests import HttpStatusError

from .test_common import make_record

DATABASE_URL = "https://weatherapp-test.firebaseio.com/"
MAKE_REQUEST = "weatherapp.api.favorites.make_request"


async def _stream(*events):
    """Encode (event, data) pairs as raw event-stream lines."""
    for event, data in events:
        yield f"event: {event}\n".encode()
        yield f"data: {json.dumps(data)}\n".encode()
        yield b"\n"


async def _collect(iterator):
    return [item async for item in iterator]


def _identity(token="id-token"):
    identity = MagicMock()
    identity.get_id_token = AsyncMock(return_value=token)
    return identity


class TestStreamTree(unittest.TestCase):

    def test_put_on_root_replaces_everything(self):
        tree = StreamTree()
        tree.apply("put", {"path": "/", "data": {"a": {"cityName": "London"}}})
        tree.apply("put", {"path": "/", "data": {"b": {"cityName": "Paris"}}})
        self.assertEqual(tree.snapshot(), {"b": {"cityName": "Paris"}})

    def test_put_null_on_root_empties(self):
        tree = StreamTree()
        tree.apply("put", {"path": "/", "data": {"a": {}}})
        tree.apply("put", {"path": "/", "data": None})
        self.assertEqual(tree.snapshot(), {})

    def test_put_on_child_and_delete(self):
        tree = StreamTree()
        tree.apply("put", {"path": "/a", "data": {"note": ""}})
        tree.apply("put", {"path": "/b", "data": {"note": ""}})
        tree.apply("put", {"path": "/a", "data": None})
        self.assertEqual(tree.snapshot(), {"b": {"note": ""}})

    def test_patch_merges_keys(self):
        tree = StreamTree()
        tree.apply("put", {"path": "/a", "data": {"note": "", "cityName": "London"}})
        tree.apply("patch", {"path": "/a", "data": {"note": "home", "updatedAt": 5}})
        self.assertEqual(tree.snapshot(), {"a": {"note": "home", "cityName": "London", "updatedAt": 5}})

    def test_delete_below_missing_node_is_ignored(self):
        tree = StreamTree()
        tree.apply("put", {"path": "/x/note", "data": None})
        self.assertEqual(tree.snapshot(), {})

    def test_snapshot_is_a_copy(self):
        tree = StreamTree()
        tree.apply("put", {"path": "/a", "data": {"note": ""}})
        tree.snapshot()["a"]["note"] = "changed"
        self.assertEqual(tree.snapshot(), {"a": {"note": ""}})


class TestEventStream(unittest.IsolatedAsyncioTestCase):

    async def test_parses_events_and_skips_comments(self):
        async def lines():
            for line in (": comment", "event: put", 'data: {"path": "/",', 'data: "data": null}', ""):
                yield line

        events = await _collect(iter_stream_events(lines()))
        self.assertEqual(events, [("put", '{"path": "/",\n"data": null}')])

    async def test_first_put_is_initial_snapshot(self):
        stream = _stream(
            ("put", {"path": "/", "data": {"-a": make_record("-a")}}),
            ("keep-alive", None),
            ("patch", {"path": "/-a", "data": {"note": "home"}}),
        )
        snapshots = []
        with self.assertRaises(FavoritesError):
            async for snapshot in iter_snapshots(stream):
                snapshots.append(snapshot)

        self.assertEqual(len(snapshots), 2)
        self.assertEqual(snapshots[0]["-a"]["note"], "")
        self.assertEqual(snapshots[1]["-a"]["note"], "home")

    async def test_cancel_is_permission_denied(self):
        with self.assertRaises(PermissionDeniedError):
            await _collect(iter_snapshots(_stream(("cancel", "Permission denied"))))

    async def test_auth_revoked(self):
        with self.assertRaises(AuthFailureError):
            await _collect(iter_snapshots(_stream(("auth_revoked", "credential is no longer valid"))))

    async def test_malformed_event_is_skipped(self):
        async def lines():
            for line in (b"event: put\n", b"data: not-json\n", b"\n", b"event: cancel\n", b"data: null\n", b"\n"):
                yield line

        snapshots = []
        with self.assertRaises(PermissionDeniedError):
            async for snapshot in iter_snapshots(lines()):
                snapshots.append(snapshot)
        self.assertEqual(snapshots, [])


class TestRealtimeDatabaseStore(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.store = RealtimeDatabaseStore(DATABASE_URL, _identity())

    async def test_push_puts_record_under_generated_id(self):
        record = make_record()
        record["id"] = ""
        with patch(MAKE_REQUEST, new=AsyncMock(return_value={})) as request:
            entry_id = await self.store.push("user-1", record)

        method, url = request.await_args.args[:2]
        self.assertEqual(method, "PUT")
        self.assertEqual(url, f"https://weatherapp-test.firebaseio.com/favorites/user-1/{entry_id}.json")
        self.assertEqual(request.await_args.kwargs["payload"]["id"], entry_id)
        self.assertEqual(request.await_args.kwargs["params"], {"auth": "id-token"})

    async def test_push_invalid_record_sends_nothing(self):
        with patch(MAKE_REQUEST, new=AsyncMock()) as request:
            with self.assertRaises(PermissionDeniedError):
                await self.store.push("user-1", make_record(cityName=""))
        request.assert_not_awaited()

    async def test_update_existing_record_patches_fields(self):
        with patch(MAKE_REQUEST, new=AsyncMock(side_effect=[make_record(), None])) as request:
            await self.store.update("user-1", "-Nabc", {"note": "home", "updatedAt": 5})

        self.assertEqual([call.args[0] for call in request.await_args_list], ["GET", "PATCH"])
        self.assertEqual(request.await_args.kwargs["payload"], {"note": "home", "updatedAt": 5})

    async def test_update_missing_record_is_noop(self):
        with patch(MAKE_REQUEST, new=AsyncMock(return_value=None)) as request:
            await self.store.update("user-1", "-missing", {"note": "x"})
        self.assertEqual(request.await_count, 1)

    async def test_remove(self):
        with patch(MAKE_REQUEST, new=AsyncMock(return_value=None)) as request:
            await self.store.remove("user-1", "-Nabc")
        self.assertEqual(request.await_args.args[0], "DELETE")

    async def test_query_equal_quotes_parameters(self):
        with patch(MAKE_REQUEST, new=AsyncMock(return_value={"-Nabc": make_record()})) as request:
            result = await self.store.query_equal("user-1", "cityName", "London")

        params = request.await_args.kwargs["params"]
        self.assertEqual(params["orderBy"], '"cityName"')
        self.assertEqual(params["equalTo"], '"London"')
        self.assertIn("-Nabc", result)

    async def test_query_with_no_matches(self):
        with patch(MAKE_REQUEST, new=AsyncMock(return_value=None)):
            self.assertEqual(await self.store.query_equal("user-1", "cityName", "Rome"), {})

    async def test_signed_out_identity_sends_no_auth(self):
        store = RealtimeDatabaseStore(DATABASE_URL, _identity(token=None))
        with patch(MAKE_REQUEST, new=AsyncMock(return_value=None)) as request:
            await store.remove("user-1", "-Nabc")
        self.assertEqual(request.await_args.kwargs["params"], {})

    async def test_error_translation(self):
        cases = [
            (HttpStatusError(401, "Permission denied"), PermissionDeniedError),
            (HttpStatusError(403), PermissionDeniedError),
            (HttpStatusError(500), FavoritesError),
            (TimeoutError(), FavoritesError),
        ]
        for raised, expected in cases:
            with self.subTest(raised=raised), patch(MAKE_REQUEST, new=AsyncMock(side_effect=raised)):
                with self.assertRaises(expected):
                    await self.store.remove("user-1", "-Nabc")

    async def test_watch_streams_snapshots_and_closes_response(self):
        response = MagicMock()
        response.status = 200
        response.content = _stream(("put", {"path": "/", "data": {"-a": make_record("-a")}}))
        session = MagicMock()
        session.get = AsyncMock(return_value=response)
        store = RealtimeDatabaseStore(DATABASE_URL, _identity(), session)

        async with store.watch("user-1") as changes:
            first = await changes.__anext__()
            self.assertIn("-a", first)

        self.assertEqual(session.get.await_args.kwargs["headers"], {"Accept": "text/event-stream"})
        response.close.assert_called_once()
        session.close.assert_not_called()

    async def test_watch_denied(self):
        response = MagicMock()
        response.status = 401
        response.text = AsyncMock(return_value='{"error": "Permission denied"}')
        session = MagicMock()
        session.get = AsyncMock(return_value=response)
        store = RealtimeDatabaseStore(DATABASE_URL, _identity(), session)

        with self.assertRaises(PermissionDeniedError):
            async with store.watch("user-1"):
                pass
        response.close.assert_called_once()
