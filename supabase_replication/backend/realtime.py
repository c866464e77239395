"""Realtime change feed interface and the supabase-py adapter."""

from typing import Any, Callable, Protocol

import structlog

from supabase_replication.models.rows import RealtimeEvent

log = structlog.stdlib.get_logger()

RealtimeCallback = Callable[[RealtimeEvent], None]


class RealtimeSubscription(Protocol):
    """Handle of an established change feed subscription."""

    async def unsubscribe(self) -> None:
        """Stop receiving events."""
        ...


class RealtimeClient(Protocol):
    """Structural contract for realtime transports delivering table changes."""

    async def subscribe(
        self, topic: str, table: str, schema: str, callback: RealtimeCallback
    ) -> RealtimeSubscription:
        """Subscribe to all changes of ``schema.table`` on channel ``topic``."""
        ...


def normalize_payload(payload: dict[str, Any]) -> RealtimeEvent:
    """
    Convert a raw postgres_changes payload into a RealtimeEvent.

    Accepts both the ``{eventType, new, old}`` shape and the nested
    ``{data: {type, record, old_record}}`` shape emitted by realtime-py.
    """
    if "eventType" in payload:
        return RealtimeEvent(
            event_type=payload["eventType"],
            new=payload.get("new") or None,
            old=payload.get("old") or None,
            table=payload.get("table"),
        )
    data = payload.get("data", payload)
    return RealtimeEvent(
        event_type=data.get("type") or data.get("event_type") or "",
        new=data.get("record") or None,
        old=data.get("old_record") or None,
        table=data.get("table"),
    )


class _ChannelSubscription:
    def __init__(self, channel: Any, topic: str):
        self._channel = channel
        self._topic = topic

    async def unsubscribe(self) -> None:
        await self._channel.unsubscribe()
        log.info("realtime_channel_unsubscribed", topic=self._topic)


class SupabaseRealtimeClient:
    """RealtimeClient backed by a supabase-py ``AsyncClient``.

    Requires the ``realtime`` extra (``pip install supabase-replication[realtime]``).
    """

    def __init__(self, supabase_client: Any):
        self._client = supabase_client

    @classmethod
    async def connect(cls, url: str, key: str) -> "SupabaseRealtimeClient":
        from supabase import acreate_client

        client = await acreate_client(url, key)
        log.info("supabase_realtime_client_connected", url=url)
        return cls(client)

    async def subscribe(
        self, topic: str, table: str, schema: str, callback: RealtimeCallback
    ) -> RealtimeSubscription:
        channel = self._client.channel(topic)
        channel.on_postgres_changes(
            "*",
            callback=lambda payload: callback(normalize_payload(payload)),
            table=table,
            schema=schema,
        )
        await channel.subscribe()
        log.info("realtime_channel_subscribed", topic=topic, table=table, schema=schema)
        return _ChannelSubscription(channel, topic)
