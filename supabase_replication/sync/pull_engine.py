"""Checkpoint-based incremental pull from a Supabase table."""

from typing import AsyncIterator

import structlog

from supabase_replication.backend.filters import pull_query
from supabase_replication.backend.postgrest_client import PostgrestClient
from supabase_replication.errors import InvalidBatchSizeError
from supabase_replication.models.checkpoint import Checkpoint
from supabase_replication.models.config import ReplicationConfig
from supabase_replication.models.rows import PullResult
from supabase_replication.sync.documents import RowTranslator

log = structlog.stdlib.get_logger()


class PullEngine:
    """Fetches rows modified after a checkpoint, in checkpoint order."""

    def __init__(self, client: PostgrestClient, config: ReplicationConfig):
        """
        Initialize pull engine.

        Args:
            client: Shared PostgREST client
            config: Replication configuration (table and column names)
        """
        self._client = client
        self._table = config.table
        self._translator = RowTranslator(config)

    async def pull(self, last_checkpoint: Checkpoint | None, batch_size: int) -> PullResult:
        """
        Pull the next batch of rows after a checkpoint.

        The query selects ``modified > m OR (modified = m AND pk > k)`` ordered by
        ``(modified, pk)`` so that rows sharing a timestamp are neither skipped nor
        returned twice across batches.

        Args:
            last_checkpoint: Checkpoint returned by the previous pull, None to start
                from the beginning of the table
            batch_size: Maximum number of rows to fetch

        Returns:
            PullResult with the checkpoint of the last row, or the unchanged input
            checkpoint and no documents when nothing is left to pull

        Raises:
            InvalidBatchSizeError: If batch_size is below one
            TransientReplicationError: If the query fails
        """
        if batch_size < 1:
            raise InvalidBatchSizeError(f"Pull batch size must be at least 1, got {batch_size}")

        log.debug(
            "pulling_changes",
            table=self._table,
            checkpoint=last_checkpoint.to_dict() if last_checkpoint else None,
            batch_size=batch_size,
        )

        params = pull_query(
            last_checkpoint,
            batch_size,
            self._translator.modified_field,
            self._translator.primary_key,
        )
        rows = await self._client.select(self._table, params)

        if not rows:
            log.debug("pull_exhausted", table=self._table)
            return PullResult(checkpoint=last_checkpoint, documents=[])

        checkpoints = [self._translator.checkpoint(row) for row in rows]
        documents = [self._translator.to_document(row) for row in rows]

        log.info(
            "changes_pulled",
            table=self._table,
            document_count=len(documents),
            checkpoint=checkpoints[-1].to_dict(),
        )

        return PullResult(
            checkpoint=checkpoints[-1],
            documents=documents,
            document_checkpoints=checkpoints,
        )

    async def pull_all(
        self, checkpoint: Checkpoint | None, batch_size: int
    ) -> AsyncIterator[PullResult]:
        """
        Pull batches until the backlog is drained.

        Yields every non-empty batch. Stops after a batch shorter than
        ``batch_size``, which is the only signal that the table is caught up.
        """
        while True:
            result = await self.pull(checkpoint, batch_size)
            if result.documents:
                yield result
            if len(result.documents) < batch_size:
                return
            checkpoint = result.checkpoint
