"""Data models describing replication sessions."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from supabase_replication.models.checkpoint import Checkpoint


class ReplicationStatus(str, Enum):
    """Lifecycle of a replication session."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class ReplicationReport(BaseModel):
    """Report of a replication session."""

    replication_identifier: str = Field(..., description="Replication that produced the report")
    status: ReplicationStatus = Field(..., description="Session status when the report was taken")
    documents_pulled: int = Field(default=0, ge=0, description="Remote documents applied locally")
    documents_pushed: int = Field(default=0, ge=0, description="Local writes applied remotely")
    conflicts: int = Field(default=0, ge=0, description="Conflicts handed to the resolver")
    checkpoint: Checkpoint | None = Field(default=None, description="Last persisted checkpoint")
    start_time: datetime | None = Field(default=None, description="Session start timestamp")
    end_time: datetime | None = Field(default=None, description="Session end timestamp")
    errors: list[str] = Field(
        default_factory=list, description="Errors reported during the session"
    )

    @property
    def duration_seconds(self) -> float:
        if self.start_time is None:
            return 0.0
        end_time = self.end_time or datetime.now()
        return (end_time - self.start_time).total_seconds()

    @property
    def success(self) -> bool:
        """Check if the session did not fail."""
        return self.status is not ReplicationStatus.FAILED
