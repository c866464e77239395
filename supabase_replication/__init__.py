"""Bidirectional replication between a local document store and a Supabase table."""

from supabase_replication.backend import PostgrestClient, SupabaseRealtimeClient
from supabase_replication.errors import (
    BackendError,
    BackendUnavailableError,
    ConfigurationError,
    FatalReplicationError,
    InvalidBatchSizeError,
    ReplicationError,
    RowNotFoundError,
    SchemaContractError,
    TransientReplicationError,
    UnsupportedFieldTypeError,
)
from supabase_replication.models import Checkpoint, ReplicationConfig, SupabaseConfig
from supabase_replication.store import CheckpointTracker, InMemoryLocalStore, LocalStore
from supabase_replication.sync import (
    ConflictInput,
    ConflictResolution,
    FunctionConflictResolver,
    RemoteWinsResolver,
    ReplicationOrchestrator,
    SupabaseSyncSource,
    SyncSource,
)

__version__ = "0.1.0"

__all__ = [
    "BackendError",
    "BackendUnavailableError",
    "Checkpoint",
    "CheckpointTracker",
    "ConfigurationError",
    "ConflictInput",
    "ConflictResolution",
    "FatalReplicationError",
    "FunctionConflictResolver",
    "InMemoryLocalStore",
    "InvalidBatchSizeError",
    "LocalStore",
    "PostgrestClient",
    "RemoteWinsResolver",
    "ReplicationConfig",
    "ReplicationError",
    "ReplicationOrchestrator",
    "RowNotFoundError",
    "SchemaContractError",
    "SupabaseConfig",
    "SupabaseRealtimeClient",
    "SupabaseSyncSource",
    "SyncSource",
    "TransientReplicationError",
    "UnsupportedFieldTypeError",
]
