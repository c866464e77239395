"""Pydantic models exchanged between the replication engines and the orchestrator."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from supabase_replication.models.checkpoint import Checkpoint


class WriteIntention(BaseModel):
    """A local change to be pushed, plus the writer's belief about the remote row."""

    new_document_state: dict[str, Any] = Field(
        default=..., description="Document state to write, including the soft-delete flag"
    )
    assumed_master_state: dict[str, Any] | None = Field(
        default=None,
        description="Remote row before the write; None means the row should not exist yet",
    )

    @property
    def is_insert(self) -> bool:
        return self.assumed_master_state is None

    model_config = {
        "json_schema_extra": {
            "example": {
                "new_document_state": {"id": "1", "name": "Bobby", "age": 42, "_deleted": False},
                "assumed_master_state": {"id": "1", "name": "Bob", "age": None, "_deleted": False},
            }
        }
    }


class PullResult(BaseModel):
    """One batch of documents and the checkpoint to continue from."""

    checkpoint: Checkpoint | None = Field(
        default=None, description="Checkpoint after the last document, or the input checkpoint"
    )
    documents: list[dict[str, Any]] = Field(
        default_factory=list, description="Documents in checkpoint order"
    )
    document_checkpoints: list[Checkpoint] = Field(
        default_factory=list, description="Checkpoint of each document, aligned with documents"
    )

    @property
    def is_empty(self) -> bool:
        return not self.documents


class RealtimeEvent(BaseModel):
    """A change notification delivered by the realtime feed."""

    model_config = ConfigDict(populate_by_name=True)

    event_type: str = Field(default=..., alias="eventType", description="INSERT, UPDATE or DELETE")
    new: dict[str, Any] | None = Field(default=None, description="Row after the change")
    old: dict[str, Any] | None = Field(default=None, description="Row before the change")
    table: str | None = Field(default=None, description="Table the change happened in")
