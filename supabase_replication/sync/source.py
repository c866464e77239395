"""Sync source protocol and its Supabase implementation."""

from typing import Any, AsyncIterator, Protocol

import structlog

from supabase_replication.backend.postgrest_client import PostgrestClient
from supabase_replication.backend.realtime import RealtimeClient
from supabase_replication.models.checkpoint import Checkpoint
from supabase_replication.models.config import ReplicationConfig
from supabase_replication.models.rows import PullResult, WriteIntention
from supabase_replication.sync.pull_engine import PullEngine
from supabase_replication.sync.push_engine import PushEngine, UpdateHandler
from supabase_replication.sync.realtime_bridge import RealtimeBridge

log = structlog.stdlib.get_logger()


class SyncSource(Protocol):
    """Structural contract between a backend and the replication orchestrator."""

    async def pull(self, checkpoint: Checkpoint | None, batch_size: int) -> PullResult:
        """Return the next batch after ``checkpoint``."""
        ...

    def pull_all(self, checkpoint: Checkpoint | None, batch_size: int) -> AsyncIterator[PullResult]:
        """Yield non-empty batches after ``checkpoint`` until a batch comes back short."""
        ...

    async def push(self, intention: WriteIntention) -> list[dict[str, Any]]:
        """Apply a write; return the remote document on conflict, else an empty list."""
        ...

    def change_stream(self) -> AsyncIterator[PullResult] | None:
        """Return the live change stream, or None if the source has none."""
        ...

    def stream_backlog(self) -> int:
        """Number of change stream items not yet consumed."""
        ...

    async def start_stream(self) -> None:
        """Open the live change stream."""
        ...

    async def stop_stream(self) -> None:
        """Close the live change stream."""
        ...


class SupabaseSyncSource:
    """SyncSource composed of the pull engine, push engine and realtime bridge."""

    def __init__(
        self,
        client: PostgrestClient,
        config: ReplicationConfig,
        realtime_client: RealtimeClient | None = None,
        update_handler: UpdateHandler | None = None,
    ):
        """
        Initialize Supabase sync source.

        Args:
            client: PostgREST client shared by all engines
            config: Replication configuration
            realtime_client: Optional realtime transport; no change stream without it
            update_handler: Optional custom update handler for the push engine
        """
        self.pull_engine = PullEngine(client, config)
        self.push_engine = PushEngine(client, config, update_handler=update_handler)
        self.realtime_bridge: RealtimeBridge | None = None
        if realtime_client is not None and config.realtime:
            self.realtime_bridge = RealtimeBridge(realtime_client, config)

        log.info(
            "supabase_sync_source_initialized",
            table=config.table,
            realtime=self.realtime_bridge is not None,
        )

    async def pull(self, checkpoint: Checkpoint | None, batch_size: int) -> PullResult:
        return await self.pull_engine.pull(checkpoint, batch_size)

    def pull_all(self, checkpoint: Checkpoint | None, batch_size: int) -> AsyncIterator[PullResult]:
        return self.pull_engine.pull_all(checkpoint, batch_size)

    async def push(self, intention: WriteIntention) -> list[dict[str, Any]]:
        return await self.push_engine.push(intention)

    def change_stream(self) -> AsyncIterator[PullResult] | None:
        if self.realtime_bridge is None:
            return None
        return self.realtime_bridge.stream()

    def stream_backlog(self) -> int:
        return self.realtime_bridge.backlog if self.realtime_bridge is not None else 0

    async def start_stream(self) -> None:
        if self.realtime_bridge is not None:
            await self.realtime_bridge.start()

    async def stop_stream(self) -> None:
        if self.realtime_bridge is not None:
            await self.realtime_bridge.stop()
