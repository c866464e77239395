"""Backend access: PostgREST queries and the realtime change feed."""

from supabase_replication.backend.filters import (
    ValueKind,
    build_preconditions,
    checkpoint_filter,
    classify_value,
    encode_query,
    pull_query,
)
from supabase_replication.backend.postgrest_client import PostgrestClient
from supabase_replication.backend.realtime import (
    RealtimeClient,
    RealtimeSubscription,
    SupabaseRealtimeClient,
    normalize_payload,
)

__all__ = [
    "PostgrestClient",
    "RealtimeClient",
    "RealtimeSubscription",
    "SupabaseRealtimeClient",
    "ValueKind",
    "build_preconditions",
    "checkpoint_filter",
    "classify_value",
    "encode_query",
    "normalize_payload",
    "pull_query",
]
