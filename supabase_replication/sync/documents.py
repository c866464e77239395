"""Translation between backend rows and local documents."""

from typing import Any

from supabase_replication.errors import SchemaContractError
from supabase_replication.models.checkpoint import Checkpoint, encode_checkpoint
from supabase_replication.models.config import ReplicationConfig


class RowTranslator:
    """Maps rows of one table to documents and back."""

    def __init__(self, config: ReplicationConfig):
        self._primary_key = config.primary_key
        self._modified_field = config.last_modified_field
        self._retain_modified = config.retain_modified_field

    @property
    def primary_key(self) -> str:
        return self._primary_key

    @property
    def modified_field(self) -> str:
        return self._modified_field

    def checkpoint(self, row: dict[str, Any]) -> Checkpoint:
        return encode_checkpoint(row, self._modified_field, self._primary_key)

    def to_document(self, row: dict[str, Any]) -> dict[str, Any]:
        """Copy a row into a document, dropping the modified column unless retained."""
        document = dict(row)
        if not self._retain_modified:
            document.pop(self._modified_field, None)
        return document

    def to_row(self, document: dict[str, Any]) -> dict[str, Any]:
        """Copy a document into a row body; the modified column is assigned by the server."""
        row = dict(document)
        row.pop(self._modified_field, None)
        return row

    def key_of(self, document: dict[str, Any]) -> Any:
        key = document.get(self._primary_key)
        if key is None:
            raise SchemaContractError(
                f"Document is missing primary key field '{self._primary_key}'"
            )
        return key
