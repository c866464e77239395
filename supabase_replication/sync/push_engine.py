"""Optimistic-concurrency push of local writes to a Supabase table."""

from typing import Any, Awaitable, Callable

import structlog

from supabase_replication.backend.filters import build_preconditions
from supabase_replication.backend.postgrest_client import PostgrestClient
from supabase_replication.errors import BackendError, InvalidBatchSizeError, RowNotFoundError
from supabase_replication.models.config import ReplicationConfig
from supabase_replication.models.rows import WriteIntention
from supabase_replication.sync.documents import RowTranslator

log = structlog.stdlib.get_logger()

UpdateHandler = Callable[[WriteIntention], Awaitable[bool]]
"""Applies an update and returns True iff it was applied; False signals a conflict."""


class PushEngine:
    """Pushes write intentions one at a time, surfacing conflicts as remote documents.

    The engine never resolves a conflict itself. Whenever the writer's assumption
    about the remote row turns out stale, the current remote document is returned
    so that a conflict resolver can merge it and retry with it as assumed state.
    """

    def __init__(
        self,
        client: PostgrestClient,
        config: ReplicationConfig,
        update_handler: UpdateHandler | None = None,
    ):
        """
        Initialize push engine.

        Args:
            client: Shared PostgREST client
            config: Replication configuration
            update_handler: Optional replacement for the default precondition update
        """
        self._client = client
        self._table = config.table
        self._duplicate_key_code = config.duplicate_key_error_code
        self._translator = RowTranslator(config)
        self._update_handler: UpdateHandler = update_handler or self.default_update_handler

    async def push(self, intention: WriteIntention) -> list[dict[str, Any]]:
        """
        Push a single write intention.

        Args:
            intention: New document state and the assumed remote state

        Returns:
            Empty list on success, otherwise a list holding the current remote document

        Raises:
            TransientReplicationError: On backend or network failures
            FatalReplicationError: If no precondition can be built for the assumed state
        """
        if intention.is_insert:
            return await self._handle_insertion(intention.new_document_state)
        return await self._handle_update(intention)

    async def push_batch(self, intentions: list[WriteIntention]) -> list[dict[str, Any]]:
        """Push a batch; only batches of exactly one intention are supported."""
        if len(intentions) != 1:
            raise InvalidBatchSizeError(
                f"Push batch size must be exactly 1, got {len(intentions)}"
            )
        return await self.push(intentions[0])

    async def _handle_insertion(self, document: dict[str, Any]) -> list[dict[str, Any]]:
        key = self._translator.key_of(document)
        try:
            await self._client.insert(self._table, self._translator.to_row(document))
        except BackendError as e:
            if e.code != self._duplicate_key_code:
                raise
            # Someone else created the row first, hand the remote state to the resolver.
            log.info("insert_conflict_detected", table=self._table, primary_key=key)
            return [await self.fetch_current(key)]

        log.info("document_inserted", table=self._table, primary_key=key)
        return []

    async def _handle_update(self, intention: WriteIntention) -> list[dict[str, Any]]:
        key = self._translator.key_of(intention.new_document_state)
        if await self._update_handler(intention):
            log.info("document_updated", table=self._table, primary_key=key)
            return []

        log.info("update_conflict_detected", table=self._table, primary_key=key)
        return [await self.fetch_current(key)]

    async def default_update_handler(self, intention: WriteIntention) -> bool:
        """
        Update the row only if every field still equals the assumed master state.

        The modified column is left out of the preconditions, since a retained copy
        goes stale as soon as the server assigns a new value.

        Returns:
            True iff exactly one row was updated

        Raises:
            UnsupportedFieldTypeError: If the assumed state holds structured values
        """
        assumed_state = self._translator.to_row(intention.assumed_master_state or {})
        preconditions = build_preconditions(assumed_state)
        count = await self._client.update(
            self._table,
            self._translator.to_row(intention.new_document_state),
            preconditions,
        )
        return count == 1

    async def fetch_current(self, key: Any) -> dict[str, Any]:
        """
        Fetch the authoritative remote document by primary key.

        Raises:
            RowNotFoundError: If no row has the given primary key
        """
        row = await self._client.fetch_by_primary_key(
            self._table, self._translator.primary_key, key
        )
        if row is None:
            raise RowNotFoundError(f"No row in {self._table} with {self._translator.primary_key}={key}")
        return self._translator.to_document(row)
