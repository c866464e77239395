"""Checkpoint persistence for resuming replication across sessions."""

import structlog

from supabase_replication.models.checkpoint import Checkpoint
from supabase_replication.store.local_store import LocalStore

log = structlog.stdlib.get_logger()


class CheckpointTracker:
    """Stores the pull checkpoint in the local store's metadata."""

    # Special metadata key prefix for storing checkpoints
    CHECKPOINT_KEY_PREFIX: str = "__checkpoint__"

    def __init__(self, store: LocalStore, replication_identifier: str):
        """
        Initialize checkpoint tracker.

        Args:
            store: Local store providing metadata persistence
            replication_identifier: Distinguishes replications sharing one store
        """
        self._store = store
        self._replication_identifier = replication_identifier
        self._metadata_key = f"{self.CHECKPOINT_KEY_PREFIX}{replication_identifier}"

    async def load_checkpoint(self) -> Checkpoint | None:
        """
        Load the last persisted checkpoint.

        Returns:
            Checkpoint if one was saved, None to start from the beginning of the table
        """
        data = await self._store.get_metadata(self._metadata_key)
        checkpoint = Checkpoint.from_dict(data)
        log.info(
            "checkpoint_loaded",
            replication_identifier=self._replication_identifier,
            checkpoint=data,
        )
        return checkpoint

    async def save_checkpoint(self, checkpoint: Checkpoint | None) -> None:
        if checkpoint is None:
            return
        await self._store.set_metadata(self._metadata_key, checkpoint.to_dict())
        log.debug(
            "checkpoint_saved",
            replication_identifier=self._replication_identifier,
            checkpoint=checkpoint.to_dict(),
        )
