"""Configuration models for Supabase replication."""

from pydantic import BaseModel, Field, HttpUrl
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_LAST_MODIFIED_FIELD = "_modified"
DEFAULT_DELETED_FIELD = "_deleted"
POSTGRES_DUPLICATE_KEY_ERROR_CODE = "23505"


class SupabaseConfig(BaseModel):
    """Configuration for the Supabase connection."""

    url: HttpUrl = Field(default=..., description="Supabase project URL")
    key: str = Field(default=..., description="Anon or service role API key")
    timeout: float = Field(default=10.0, gt=0, description="HTTP timeout in seconds")


class ReplicationConfig(BaseModel):
    """Configuration for replicating one table."""

    replication_identifier: str = Field(
        default=..., min_length=1, description="Identifies the replication for checkpoint storage"
    )
    table: str = Field(default=..., min_length=1, description="Supabase table to replicate")
    primary_key: str = Field(default="id", description="Primary key column of the table")
    last_modified_field: str = Field(
        default=DEFAULT_LAST_MODIFIED_FIELD,
        description="Column holding the last modified timestamp, maintained by a trigger",
    )
    deleted_field: str = Field(
        default=DEFAULT_DELETED_FIELD, description="Boolean column marking soft-deleted rows"
    )
    batch_size: int = Field(default=100, ge=1, description="Maximum rows per pull request")
    live: bool = Field(
        default=True, description="Keep replicating after the initial sync completed"
    )
    realtime: bool = Field(
        default=True, description="Subscribe to realtime changes (only used in live mode)"
    )
    realtime_schema: str = Field(default="public", description="Schema of the realtime feed")
    retry_delay: float = Field(
        default=5.0, ge=0.0, description="Delay in seconds before a failed operation is retried"
    )
    retain_modified_field: bool = Field(
        default=False, description="Keep the last modified column in pulled documents"
    )
    duplicate_key_error_code: str = Field(
        default=POSTGRES_DUPLICATE_KEY_ERROR_CODE,
        description="Backend error code signalling a primary key uniqueness violation",
    )
    pull_enabled: bool = Field(default=True, description="Pull remote changes")
    push_enabled: bool = Field(default=True, description="Push local changes")


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    json_logs: bool = Field(
        default=True,
        description="If True, output JSON logs. If False, use console format.",
    )
    log_file: str | None = Field(
        default=None,
        description="Optional path to log file. If None, logs only to stdout.",
    )


class AppConfig(BaseSettings):
    """Main application configuration.

    This class uses pydantic-settings to load configuration from environment
    variables with the APP_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    supabase: SupabaseConfig
    replication: ReplicationConfig
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
