"""Local document store interface and an in-memory implementation."""

import asyncio
import copy
from abc import ABC, abstractmethod
from typing import Any, Callable

import structlog
from pydantic import BaseModel, Field

from supabase_replication.models.checkpoint import Checkpoint

log = structlog.stdlib.get_logger()

ChangeListener = Callable[[Any], None]
"""Called with the primary key of a locally written document."""


class LocalDocument(BaseModel):
    """A document as held by the local store."""

    key: str | int = Field(default=..., description="Primary key value")
    data: dict[str, Any] = Field(default_factory=dict, description="Document fields")
    deleted: bool = Field(default=False, description="Whether the document was removed")
    revision: int = Field(default=0, ge=0, description="Incremented on every local write")


class MasterRecord(BaseModel):
    """Last known remote state of a document."""

    state: dict[str, Any] = Field(default=..., description="Remote document, including delete flag")
    checkpoint: Checkpoint | None = Field(
        default=None, description="Checkpoint of the remote row, None if unknown"
    )


class LocalStore(ABC):
    """Capability interface the orchestrator needs from a host document store.

    Local writes made by the application are tracked as pending until the
    orchestrator acknowledges the pushed revision. Remote writes applied by the
    orchestrator never become pending.
    """

    @abstractmethod
    async def get(self, key: Any) -> LocalDocument | None:
        """Return the document with the given key, including removed ones."""

    @abstractmethod
    async def apply_remote(self, key: Any, data: dict[str, Any], deleted: bool) -> None:
        """Write a remote state without marking it pending."""

    @abstractmethod
    async def save_resolved(self, key: Any, data: dict[str, Any], deleted: bool) -> int:
        """Write a conflict resolution result; returns the new pending revision."""

    @abstractmethod
    async def pending_keys(self) -> list[Any]:
        """Keys of documents with local writes not yet pushed."""

    @abstractmethod
    async def acknowledge(self, key: Any, revision: int) -> bool:
        """Clear the pending mark if the document is still at ``revision``."""

    @abstractmethod
    async def get_master(self, key: Any) -> MasterRecord | None:
        ...

    @abstractmethod
    async def set_master(self, key: Any, record: MasterRecord) -> None:
        ...

    @abstractmethod
    async def get_metadata(self, name: str) -> Any:
        ...

    @abstractmethod
    async def set_metadata(self, name: str, value: Any) -> None:
        ...

    @abstractmethod
    def add_change_listener(self, listener: ChangeListener) -> None:
        ...

    @abstractmethod
    def remove_change_listener(self, listener: ChangeListener) -> None:
        ...


class InMemoryLocalStore(LocalStore):
    """Dict-backed LocalStore, used for tests and short-lived replicas."""

    def __init__(self, primary_key: str = "id"):
        self._primary_key = primary_key
        self._documents: dict[Any, LocalDocument] = {}
        self._pending: dict[Any, int] = {}
        self._masters: dict[Any, MasterRecord] = {}
        self._metadata: dict[str, Any] = {}
        self._listeners: list[ChangeListener] = []
        self._lock = asyncio.Lock()

    @property
    def primary_key(self) -> str:
        return self._primary_key

    # Application-facing API

    async def insert(self, document: dict[str, Any]) -> LocalDocument:
        key = document[self._primary_key]
        existing = self._documents.get(key)
        if existing is not None and not existing.deleted:
            raise ValueError(f"Document with {self._primary_key}={key} already exists")
        return await self._write_local(key, dict(document), deleted=False)

    async def upsert(self, document: dict[str, Any]) -> LocalDocument:
        return await self._write_local(document[self._primary_key], dict(document), deleted=False)

    async def patch(self, key: Any, changes: dict[str, Any]) -> LocalDocument:
        existing = self._documents.get(key)
        if existing is None or existing.deleted:
            raise KeyError(key)
        return await self._write_local(key, {**existing.data, **changes}, deleted=False)

    async def remove(self, key: Any) -> LocalDocument:
        existing = self._documents.get(key)
        if existing is None or existing.deleted:
            raise KeyError(key)
        return await self._write_local(key, dict(existing.data), deleted=True)

    async def find(self) -> list[dict[str, Any]]:
        """Return all non-removed documents ordered by primary key."""
        documents = [doc for doc in self._documents.values() if not doc.deleted]
        documents.sort(key=lambda doc: doc.key)
        return [copy.deepcopy(doc.data) for doc in documents]

    # LocalStore

    async def get(self, key: Any) -> LocalDocument | None:
        document = self._documents.get(key)
        return document.model_copy(deep=True) if document is not None else None

    async def apply_remote(self, key: Any, data: dict[str, Any], deleted: bool) -> None:
        async with self._lock:
            existing = self._documents.get(key)
            revision = existing.revision if existing is not None else 0
            self._documents[key] = LocalDocument(
                key=key, data=copy.deepcopy(data), deleted=deleted, revision=revision
            )
        log.debug("remote_document_applied", key=key, deleted=deleted)

    async def save_resolved(self, key: Any, data: dict[str, Any], deleted: bool) -> int:
        async with self._lock:
            document = self._store(key, data, deleted)
            self._pending[key] = document.revision
        log.debug("resolved_document_saved", key=key, revision=document.revision)
        return document.revision

    async def pending_keys(self) -> list[Any]:
        return list(self._pending)

    async def acknowledge(self, key: Any, revision: int) -> bool:
        async with self._lock:
            if self._pending.get(key) != revision:
                return False
            del self._pending[key]
            return True

    async def get_master(self, key: Any) -> MasterRecord | None:
        record = self._masters.get(key)
        return record.model_copy(deep=True) if record is not None else None

    async def set_master(self, key: Any, record: MasterRecord) -> None:
        self._masters[key] = record.model_copy(deep=True)

    async def get_metadata(self, name: str) -> Any:
        return copy.deepcopy(self._metadata.get(name))

    async def set_metadata(self, name: str, value: Any) -> None:
        self._metadata[name] = copy.deepcopy(value)

    async def export_metadata(self) -> dict[str, Any]:
        return copy.deepcopy(self._metadata)

    async def export_documents(self) -> list[tuple[LocalDocument, bool]]:
        """Return every document, tombstones included, with its pending flag."""
        documents = sorted(self._documents.values(), key=lambda doc: doc.key)
        return [(doc.model_copy(deep=True), doc.key in self._pending) for doc in documents]

    def add_change_listener(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def remove_change_listener(self, listener: ChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def _write_local(self, key: Any, data: dict[str, Any], deleted: bool) -> LocalDocument:
        async with self._lock:
            document = self._store(key, data, deleted)
            self._pending[key] = document.revision
        log.debug("local_document_written", key=key, deleted=deleted, revision=document.revision)
        for listener in list(self._listeners):
            listener(key)
        return document.model_copy(deep=True)

    def _store(self, key: Any, data: dict[str, Any], deleted: bool) -> LocalDocument:
        existing = self._documents.get(key)
        revision = existing.revision + 1 if existing is not None else 1
        document = LocalDocument(key=key, data=copy.deepcopy(data), deleted=deleted, revision=revision)
        self._documents[key] = document
        return document
