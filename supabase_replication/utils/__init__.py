"""Shared utilities for configuration, logging, and retries"""

from supabase_replication.utils.config_loader import ConfigLoader
from supabase_replication.utils.logging_config import configure_logging, get_logger
from supabase_replication.utils.retry import retry_async

__all__ = ["ConfigLoader", "configure_logging", "get_logger", "retry_async"]
