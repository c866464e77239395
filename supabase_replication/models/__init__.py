"""Data models for Supabase replication."""

from supabase_replication.models.checkpoint import Checkpoint, encode_checkpoint, is_after
from supabase_replication.models.config import (
    AppConfig,
    LoggingConfig,
    ReplicationConfig,
    SupabaseConfig,
)
from supabase_replication.models.rows import PullResult, RealtimeEvent, WriteIntention

__all__ = [
    "Checkpoint",
    "encode_checkpoint",
    "is_after",
    "PullResult",
    "RealtimeEvent",
    "WriteIntention",
    "AppConfig",
    "LoggingConfig",
    "ReplicationConfig",
    "SupabaseConfig",
]
