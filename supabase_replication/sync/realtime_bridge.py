"""Republishes realtime change events as single-document pull results."""

import asyncio
from typing import AsyncIterator

import structlog

from supabase_replication.backend.realtime import RealtimeClient, RealtimeSubscription
from supabase_replication.errors import ReplicationError
from supabase_replication.models.config import ReplicationConfig
from supabase_replication.models.rows import PullResult, RealtimeEvent
from supabase_replication.sync.documents import RowTranslator

log = structlog.stdlib.get_logger()

CONSUMED_EVENT_TYPES = frozenset({"INSERT", "UPDATE"})


class RealtimeBridge:
    """Subscribes to the change feed of one table.

    Deletions are replicated through the soft-delete column, so physical DELETE
    events carry nothing usable and are dropped. No ordering is guaranteed
    relative to in-flight pulls; consumers must apply documents idempotently.
    """

    def __init__(self, realtime_client: RealtimeClient, config: ReplicationConfig):
        self._realtime_client = realtime_client
        self._table = config.table
        self._schema = config.realtime_schema
        self._topic = f"supabase-replication-{config.replication_identifier}"
        self._translator = RowTranslator(config)
        self._queue: asyncio.Queue[PullResult | ReplicationError] = asyncio.Queue()
        self._subscription: RealtimeSubscription | None = None

    @property
    def topic(self) -> str:
        return self._topic

    @property
    def is_subscribed(self) -> bool:
        return self._subscription is not None

    @property
    def backlog(self) -> int:
        """Published items the stream has not handed out yet."""
        return self._queue.qsize()

    async def start(self) -> None:
        if self._subscription is not None:
            return
        self._subscription = await self._realtime_client.subscribe(
            self._topic, self._table, self._schema, self.handle_event
        )
        log.info("realtime_bridge_started", table=self._table, topic=self._topic)

    async def stop(self) -> None:
        subscription, self._subscription = self._subscription, None
        if subscription is None:
            return
        await subscription.unsubscribe()
        log.info("realtime_bridge_stopped", table=self._table, topic=self._topic)

    def handle_event(self, event: RealtimeEvent) -> PullResult | None:
        """
        Translate an event and publish it on the stream.

        Returns:
            The published PullResult, or None if the event was dropped
        """
        if event.table is not None and event.table != self._table:
            return None
        if event.event_type not in CONSUMED_EVENT_TYPES or not event.new:
            log.debug("realtime_event_ignored", table=self._table, event_type=event.event_type)
            return None

        try:
            checkpoint = self._translator.checkpoint(event.new)
        except ReplicationError as e:
            log.error("realtime_event_invalid", table=self._table, error=str(e))
            self._queue.put_nowait(e)
            return None

        item = PullResult(
            checkpoint=checkpoint,
            documents=[self._translator.to_document(event.new)],
            document_checkpoints=[checkpoint],
        )
        self._queue.put_nowait(item)
        log.debug("realtime_event_published", table=self._table, checkpoint=checkpoint.to_dict())
        return item

    async def stream(self) -> AsyncIterator[PullResult]:
        """Yield published items until cancelled; re-raises translation errors."""
        while True:
            item = await self._queue.get()
            if isinstance(item, ReplicationError):
                raise item
            yield item
