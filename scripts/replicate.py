#!/usr/bin/env python3
"""
Replication script for a Supabase table.

This script replicates one Supabase table into a local JSON snapshot:
- Pulls every row changed since the last run (checkpoint kept in the snapshot)
- Optionally pushes documents from a JSON file as local writes
- Keeps running with realtime updates when --live is given

Designed to be run on a schedule (e.g., via cron) or as a long-running process.

Usage:
    python scripts/replicate.py [--config CONFIG_PATH] [--output SNAPSHOT] [--push-from FILE] [--live]
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

import structlog

from supabase_replication.backend.postgrest_client import PostgrestClient
from supabase_replication.backend.realtime import SupabaseRealtimeClient
from supabase_replication.models.config import AppConfig
from supabase_replication.store.local_store import InMemoryLocalStore
from supabase_replication.store.snapshot import load_snapshot, save_snapshot
from supabase_replication.sync.orchestrator import ReplicationOrchestrator
from supabase_replication.sync.source import SupabaseSyncSource
from supabase_replication.utils.config_loader import ConfigLoader
from supabase_replication.utils.logging_config import configure_logging_from_config

log = structlog.stdlib.get_logger()


async def queue_local_writes(store: InMemoryLocalStore, push_path: Path) -> int:
    """Write the documents of a JSON array file into the store as local changes."""
    documents = json.loads(push_path.read_text())
    if not isinstance(documents, list):
        raise ValueError(f"{push_path} must contain a JSON array of documents")
    for document in documents:
        await store.upsert(document)
    return len(documents)


async def run_replication(
    config: AppConfig,
    snapshot_path: Path,
    push_path: Path | None = None,
    live: bool = False,
) -> dict:
    """
    Run one replication session and persist the result.

    Args:
        config: Application configuration
        snapshot_path: JSON snapshot holding documents and the checkpoint
        push_path: Optional JSON file with documents to push
        live: Keep replicating until interrupted

    Returns:
        Dictionary with replication statistics
    """
    replication_config = config.replication.model_copy(update={"live": live})
    store = InMemoryLocalStore(primary_key=replication_config.primary_key)
    await load_snapshot(store, snapshot_path)
    if push_path is not None:
        queued = await queue_local_writes(store, push_path)
        log.info("local_writes_queued", count=queued)

    realtime_client = None
    if live and replication_config.realtime:
        realtime_client = await SupabaseRealtimeClient.connect(
            str(config.supabase.url), config.supabase.key
        )

    async with PostgrestClient.from_config(config.supabase) as client:
        source = SupabaseSyncSource(client, replication_config, realtime_client=realtime_client)
        orchestrator = ReplicationOrchestrator(source, store, replication_config)

        await orchestrator.start()
        try:
            await orchestrator.await_initial_replication()
            if live:
                log.info("replication_live", table=replication_config.table)
                await asyncio.Event().wait()
            else:
                await orchestrator.await_in_sync()
        finally:
            await orchestrator.cancel()
            await save_snapshot(store, snapshot_path)

    report = orchestrator.report()
    return {
        "success": report.success,
        "table": replication_config.table,
        "documents_pulled": report.documents_pulled,
        "documents_pushed": report.documents_pushed,
        "conflicts": report.conflicts,
        "pending_writes": len(await store.pending_keys()),
        "checkpoint": report.checkpoint.to_dict() if report.checkpoint else None,
        "errors": report.errors,
        "duration_seconds": report.duration_seconds,
    }


def main():
    """Main entry point for the replication script."""
    parser = argparse.ArgumentParser(description="Replicate a Supabase table into a JSON snapshot")
    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration file",
        default=None,
    )
    parser.add_argument(
        "--output",
        type=Path,
        help="Snapshot file to read and update",
        default=Path("replication_snapshot.json"),
    )
    parser.add_argument(
        "--push-from",
        type=Path,
        help="JSON array of documents to write locally and push",
        default=None,
    )
    parser.add_argument(
        "--live",
        action="store_true",
        help="Keep replicating with realtime updates until interrupted",
    )

    args = parser.parse_args()

    config = ConfigLoader().load_config(args.config)
    configure_logging_from_config(config.logging)

    try:
        stats = asyncio.run(
            run_replication(config, args.output, push_path=args.push_from, live=args.live)
        )
    except KeyboardInterrupt:
        print("\nReplication interrupted, snapshot saved")
        sys.exit(0)
    except Exception as e:
        log.error("replication_script_failed", error=str(e))
        stats = {"success": False, "errors": [str(e)]}

    print("\n" + "=" * 60)
    print("REPLICATION SUMMARY")
    print("=" * 60)

    if stats.get("success"):
        print("Status: ✓ SUCCESS")
        print(f"Table: {stats.get('table', 'unknown')}")
        print(f"Documents Pulled: {stats.get('documents_pulled', 0)}")
        print(f"Documents Pushed: {stats.get('documents_pushed', 0)}")
        print(f"Conflicts: {stats.get('conflicts', 0)}")
        print(f"Pending local writes: {stats.get('pending_writes', 0)}")
        print(f"Checkpoint: {stats.get('checkpoint')}")
        print(f"Duration: {stats.get('duration_seconds', 0):.2f} seconds")
    else:
        print("Status: ✗ FAILED")
        for error in stats.get("errors", []):
            print(f"Error: {error}")

    print("=" * 60)

    sys.exit(0 if stats.get("success") else 1)


if __name__ == "__main__":
    main()
