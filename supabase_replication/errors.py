"""Exception hierarchy for replication failures.

Transient errors are retried by the orchestrator with the same checkpoint or
write intention. Fatal errors stop the replication session, since no retry can
fix a structural mismatch.
"""

from typing import Any


class ReplicationError(Exception):
    """Base class for all replication errors."""


class TransientReplicationError(ReplicationError):
    """A failure that may succeed when the same operation is replayed."""


class FatalReplicationError(ReplicationError):
    """A failure caused by configuration or schema, never retried."""


class BackendError(TransientReplicationError):
    """Error response returned by the PostgREST backend."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        status_code: int | None = None,
        details: Any = None,
        hint: Any = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details
        self.hint = hint

    def __str__(self) -> str:
        return f"{self.message} (code={self.code}, status={self.status_code})"


class BackendUnavailableError(TransientReplicationError):
    """The backend could not be reached (network failure, timeout)."""


class RowNotFoundError(TransientReplicationError):
    """A point lookup by primary key returned no row."""


class ConfigurationError(FatalReplicationError):
    """Raised when configuration is invalid or missing."""


class InvalidBatchSizeError(FatalReplicationError):
    """Raised for a pull batch size below one or a push batch other than one."""


class UnsupportedFieldTypeError(FatalReplicationError):
    """A field of the assumed master state cannot be used as an equality precondition."""

    def __init__(self, field: str, value: Any):
        super().__init__(
            f"Unsupported field type {type(value).__name__} for field '{field}' "
            f"in optimistic update precondition"
        )
        self.field = field
        self.value = value


class SchemaContractError(FatalReplicationError):
    """A backend row is missing a field the replication protocol depends on."""
