"""Local document storage and checkpoint persistence."""

from supabase_replication.store.checkpoint_tracker import CheckpointTracker
from supabase_replication.store.local_store import (
    InMemoryLocalStore,
    LocalDocument,
    LocalStore,
    MasterRecord,
)
from supabase_replication.store.snapshot import load_snapshot, save_snapshot

__all__ = [
    "CheckpointTracker",
    "InMemoryLocalStore",
    "LocalDocument",
    "LocalStore",
    "MasterRecord",
    "load_snapshot",
    "save_snapshot",
]
