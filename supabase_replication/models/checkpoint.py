"""Checkpoint model and codec for incremental pulls."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from supabase_replication.errors import SchemaContractError


class Checkpoint(BaseModel):
    """Sync cursor marking how far the remote table has been replicated.

    Rows are totally ordered by ``(modified, primary_key_value)``. The primary
    key breaks ties between rows sharing a modification timestamp, so the cursor
    stays strict even when the backend assigns duplicate timestamps.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    modified: str = Field(default=..., description="Last-modified value of the row")
    primary_key_value: str | int = Field(
        default=..., alias="primaryKeyValue", description="Primary key of the row"
    )

    def sort_key(self) -> tuple[str, str | int]:
        return (self.modified, self.primary_key_value)

    def __lt__(self, other: "Checkpoint") -> bool:
        return self.sort_key() < other.sort_key()

    def __le__(self, other: "Checkpoint") -> bool:
        return self.sort_key() <= other.sort_key()

    def __gt__(self, other: "Checkpoint") -> bool:
        return self.sort_key() > other.sort_key()

    def __ge__(self, other: "Checkpoint") -> bool:
        return self.sort_key() >= other.sort_key()

    def to_dict(self) -> dict[str, Any]:
        """Serialize using the wire field names."""
        return self.model_dump(by_alias=True)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "Checkpoint | None":
        if not data:
            return None
        return cls.model_validate(data)


def encode_checkpoint(row: dict[str, Any], modified_field: str, primary_key: str) -> Checkpoint:
    """
    Extract the checkpoint of a backend row.

    Args:
        row: Row as returned by the backend
        modified_field: Name of the last-modified column
        primary_key: Name of the primary key column

    Returns:
        Checkpoint positioned at the row

    Raises:
        SchemaContractError: If the row lacks the modified or primary key field, or
            their values cannot form a checkpoint
    """
    for field in (modified_field, primary_key):
        if row.get(field) is None:
            raise SchemaContractError(
                f"Row is missing required field '{field}': the table must provide "
                f"'{modified_field}' and '{primary_key}' on every row"
            )
    try:
        return Checkpoint(modified=row[modified_field], primary_key_value=row[primary_key])
    except ValidationError as e:
        raise SchemaContractError(
            f"Row has an unusable checkpoint: '{modified_field}' must be a timestamp string "
            f"and '{primary_key}' a string or integer, got {row[modified_field]!r} and {row[primary_key]!r}"
        ) from e


def is_after(row_checkpoint: Checkpoint, checkpoint: Checkpoint | None) -> bool:
    """Check whether a row lies strictly after a checkpoint; ``None`` is the table start."""
    return checkpoint is None or row_checkpoint > checkpoint
