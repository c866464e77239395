"""JSON snapshots of an in-memory store, used to carry a replica between runs."""

import json
from datetime import datetime
from pathlib import Path
from typing import Any

import structlog

from supabase_replication.store.local_store import InMemoryLocalStore, MasterRecord

log = structlog.stdlib.get_logger()


async def save_snapshot(store: InMemoryLocalStore, snapshot_path: Path) -> int:
    """
    Write documents, tombstones, pending marks, master states and metadata.

    Args:
        store: Store to snapshot
        snapshot_path: Destination JSON file

    Returns:
        Number of documents written
    """
    documents: list[dict[str, Any]] = []
    for document, pending in await store.export_documents():
        master = await store.get_master(document.key)
        documents.append(
            {
                "key": document.key,
                "data": document.data,
                "deleted": document.deleted,
                "pending": pending,
                "master": master.model_dump(mode="json", by_alias=True) if master else None,
            }
        )

    snapshot = {
        "saved_at": datetime.now().isoformat(),
        "documents": documents,
        "metadata": await store.export_metadata(),
    }
    snapshot_path.write_text(json.dumps(snapshot, indent=2, default=str))
    log.info(
        "snapshot_saved",
        path=str(snapshot_path),
        documents=len(documents),
        pending=sum(1 for entry in documents if entry["pending"]),
    )
    return len(documents)


async def load_snapshot(store: InMemoryLocalStore, snapshot_path: Path) -> int:
    """
    Restore a snapshot written by :func:`save_snapshot`.

    Documents that were still pending are restored as pending so the next
    session pushes them. A missing file leaves the store empty.

    Returns:
        Number of documents restored
    """
    if not snapshot_path.exists():
        return 0

    snapshot = json.loads(snapshot_path.read_text())
    entries = snapshot.get("documents", [])
    for entry in entries:
        key = entry.get("key", entry["data"].get(store.primary_key))
        deleted = entry.get("deleted", False)
        if entry.get("pending", False):
            await store.save_resolved(key, entry["data"], deleted)
        else:
            await store.apply_remote(key, entry["data"], deleted)
        if entry.get("master") is not None:
            await store.set_master(key, MasterRecord.model_validate(entry["master"]))
    for name, value in snapshot.get("metadata", {}).items():
        await store.set_metadata(name, value)

    log.info("snapshot_loaded", path=str(snapshot_path), documents=len(entries))
    return len(entries)
