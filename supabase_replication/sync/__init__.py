"""Replication components: pull, push, realtime and the orchestrator."""

from supabase_replication.sync.conflict import (
    ConflictInput,
    ConflictResolution,
    ConflictResolver,
    FunctionConflictResolver,
    RemoteWinsResolver,
)
from supabase_replication.sync.documents import RowTranslator
from supabase_replication.sync.models import ReplicationReport, ReplicationStatus
from supabase_replication.sync.orchestrator import ReplicationOrchestrator
from supabase_replication.sync.pull_engine import PullEngine
from supabase_replication.sync.push_engine import PushEngine
from supabase_replication.sync.realtime_bridge import RealtimeBridge
from supabase_replication.sync.source import SupabaseSyncSource, SyncSource

__all__ = [
    "ConflictInput",
    "ConflictResolution",
    "ConflictResolver",
    "FunctionConflictResolver",
    "PullEngine",
    "PushEngine",
    "RealtimeBridge",
    "RemoteWinsResolver",
    "ReplicationOrchestrator",
    "ReplicationReport",
    "ReplicationStatus",
    "RowTranslator",
    "SupabaseSyncSource",
    "SyncSource",
]
