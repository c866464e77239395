"""Conflict resolution contract used when a push finds a stale assumption."""

import inspect
from typing import Any, Callable, Protocol

from pydantic import BaseModel, Field


class ConflictInput(BaseModel):
    """Everything a resolver needs to merge a local write with the remote row."""

    new_document_state: dict[str, Any] = Field(
        default=..., description="Local document state that failed to push"
    )
    real_master_state: dict[str, Any] = Field(
        default=..., description="Current remote document"
    )
    assumed_master_state: dict[str, Any] | None = Field(
        default=None, description="Remote state the local write was based on"
    )


class ConflictResolution(BaseModel):
    """Outcome of a conflict resolution."""

    is_equal: bool = Field(
        default=False, description="True if local and remote are considered the same"
    )
    document_data: dict[str, Any] | None = Field(
        default=None, description="Merged document to write locally and push again"
    )


class ConflictResolver(Protocol):
    """Computes the document that wins a write conflict."""

    async def resolve(self, conflict: ConflictInput) -> ConflictResolution:
        ...


class RemoteWinsResolver:
    """Default resolver: the remote document always wins."""

    async def resolve(self, conflict: ConflictInput) -> ConflictResolution:
        if conflict.new_document_state == conflict.real_master_state:
            return ConflictResolution(is_equal=True)
        return ConflictResolution(is_equal=False, document_data=conflict.real_master_state)


ResolverFunction = Callable[[ConflictInput], Any]


class FunctionConflictResolver:
    """Adapts a plain (sync or async) function into a ConflictResolver.

    The function may return a ConflictResolution or just the merged document.
    """

    def __init__(self, function: ResolverFunction):
        self._function = function

    async def resolve(self, conflict: ConflictInput) -> ConflictResolution:
        result = self._function(conflict)
        if inspect.isawaitable(result):
            result = await result
        if isinstance(result, ConflictResolution):
            return result
        return ConflictResolution(is_equal=False, document_data=result)
