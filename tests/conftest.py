"""Shared test doubles: an in-memory PostgREST table and a scripted realtime feed."""

import json
import re
from typing import Any

import httpx
import pytest

from supabase_replication.backend.postgrest_client import PostgrestClient
from supabase_replication.models.config import ReplicationConfig
from supabase_replication.models.rows import RealtimeEvent

BASE_URL = "http://localhost:54321"
API_KEY = "test-anon-key"

_FILTER_VALUE = r'("(?:[^"\\]|\\.)*"|[^,()]+)'
CHECKPOINT_FILTER = re.compile(
    rf"^\((\w+)\.gt\.{_FILTER_VALUE},and\((\w+)\.eq\.{_FILTER_VALUE},(\w+)\.gt\.{_FILTER_VALUE}\)\)$"
)
RESERVED_PARAMS = {"select", "order", "limit", "or"}


class FakePostgrestTable:
    """In-memory PostgREST table served through ``httpx.MockTransport``.

    The fake assigns a strictly increasing ``_modified`` value on every write,
    like the trigger the real table needs, and answers the subset of the
    PostgREST query language used by replication.
    """

    def __init__(
        self,
        table: str = "humans",
        primary_key: str = "id",
        modified_field: str = "_modified",
        deleted_field: str = "_deleted",
    ):
        self.table = table
        self.primary_key = primary_key
        self.modified_field = modified_field
        self.deleted_field = deleted_field
        self.rows: dict[Any, dict[str, Any]] = {}
        self.requests: list[httpx.Request] = []
        # Queued failures; None stands for a network error.
        self.failures: list[httpx.Response | None] = []
        self._clock = 0

    def next_modified(self) -> str:
        self._clock += 1
        return f"2024-01-01T00:00:00.{self._clock:06d}+00:00"

    def put(self, row: dict[str, Any], modified: Any = None) -> dict[str, Any]:
        """Write a row directly, as another client would."""
        stored = dict(row)
        stored.setdefault(self.deleted_field, False)
        stored[self.modified_field] = modified or self.next_modified()
        self.rows[stored[self.primary_key]] = stored
        return dict(stored)

    def fail_next(self, status_code: int = 503, code: str | None = None, message: str = "Service unavailable") -> None:
        self.failures.append(
            httpx.Response(status_code, json={"code": code, "message": message, "details": None, "hint": None})
        )

    def fail_next_with_network_error(self) -> None:
        self.failures.append(None)

    def requests_with_method(self, method: str) -> list[httpx.Request]:
        return [request for request in self.requests if request.method == method]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.failures:
            failure = self.failures.pop(0)
            if failure is None:
                raise httpx.ConnectError("connection refused", request=request)
            return failure

        if request.url.path != f"/rest/v1/{self.table}":
            return httpx.Response(404, json={"code": "42P01", "message": "relation does not exist"})

        params = request.url.params.multi_items()
        if request.method == "GET":
            return self._select(params)
        if request.method == "POST":
            return self._insert(json.loads(request.content))
        if request.method == "PATCH":
            return self._update(params, json.loads(request.content))
        return httpx.Response(405)

    def _select(self, params: list[tuple[str, str]]) -> httpx.Response:
        query = dict(params)
        rows = list(self.rows.values())

        if "or" in query:
            rows = [row for row in rows if self._after_checkpoint(row, query["or"])]
        rows = [row for row in rows if self._matches_all(row, params)]
        if "order" in query:
            rows.sort(key=lambda row: (row[self.modified_field], row[self.primary_key]))
        if "limit" in query:
            rows = rows[: int(query["limit"])]
        return httpx.Response(200, json=rows)

    def _insert(self, body: dict[str, Any]) -> httpx.Response:
        if body[self.primary_key] in self.rows:
            return httpx.Response(
                409,
                json={
                    "code": "23505",
                    "message": f'duplicate key value violates unique constraint "{self.table}_pkey"',
                    "details": f"Key ({self.primary_key})=({body[self.primary_key]}) already exists.",
                    "hint": None,
                },
            )
        self.put(body)
        return httpx.Response(201)

    def _update(self, params: list[tuple[str, str]], body: dict[str, Any]) -> httpx.Response:
        matched = [row for row in self.rows.values() if self._matches_all(row, params)]
        for row in matched:
            self.put({**row, **body})
        count = len(matched)
        content_range = f"0-{count - 1}/{count}" if count else "*/0"
        return httpx.Response(204, headers={"Content-Range": content_range})

    def _matches_all(self, row: dict[str, Any], params: list[tuple[str, str]]) -> bool:
        return all(
            self._matches(row, field, expression)
            for field, expression in params
            if field not in RESERVED_PARAMS
        )

    def _matches(self, row: dict[str, Any], field: str, expression: str) -> bool:
        operator, _, operand = expression.partition(".")
        value = row.get(field)
        if operator == "eq":
            return value is not None and not isinstance(value, bool) and str(value) == operand
        if operator == "is":
            return {"null": None, "true": True, "false": False}[operand] is value
        raise AssertionError(f"unsupported operator {operator}")

    def _after_checkpoint(self, row: dict[str, Any], expression: str) -> bool:
        match = CHECKPOINT_FILTER.match(expression)
        assert match is not None, f"unexpected checkpoint filter {expression}"
        modified = json.loads(match.group(2))
        key = json.loads(match.group(6))
        row_modified = row[self.modified_field]
        return row_modified > modified or (
            row_modified == modified and _key_greater(row[self.primary_key], key)
        )


def _key_greater(row_key: Any, key: Any) -> bool:
    if type(row_key) is type(key):
        return row_key > key
    return str(row_key) > str(key)


class FakeSubscription:
    def __init__(self, topic: str, table: str, schema: str, callback):
        self.topic = topic
        self.table = table
        self.schema = schema
        self.callback = callback
        self.closed = False

    async def unsubscribe(self) -> None:
        self.closed = True


class FakeRealtimeClient:
    """Realtime transport whose events are emitted by the test."""

    def __init__(self):
        self.subscriptions: list[FakeSubscription] = []

    @property
    def active(self) -> list[FakeSubscription]:
        return [subscription for subscription in self.subscriptions if not subscription.closed]

    async def subscribe(self, topic: str, table: str, schema: str, callback) -> FakeSubscription:
        subscription = FakeSubscription(topic, table, schema, callback)
        self.subscriptions.append(subscription)
        return subscription

    def emit(
        self,
        event_type: str,
        new: dict[str, Any] | None = None,
        old: dict[str, Any] | None = None,
        table: str | None = None,
    ) -> None:
        event = RealtimeEvent(event_type=event_type, new=new, old=old, table=table)
        for subscription in self.active:
            subscription.callback(event)


@pytest.fixture
def fake_table() -> FakePostgrestTable:
    return FakePostgrestTable()


@pytest.fixture
def make_client(fake_table: FakePostgrestTable):
    """Build PostgrestClients talking to the fake table."""

    def factory(table: FakePostgrestTable | None = None) -> PostgrestClient:
        transport = (table or fake_table).transport()
        return PostgrestClient(BASE_URL, API_KEY, http_client=httpx.AsyncClient(transport=transport))

    return factory


@pytest.fixture
def replication_config() -> ReplicationConfig:
    return ReplicationConfig(
        replication_identifier="humans-test",
        table="humans",
        batch_size=10,
        live=False,
        realtime=False,
        retry_delay=0.01,
    )


@pytest.fixture
def realtime_client() -> FakeRealtimeClient:
    return FakeRealtimeClient()
