"""Replication orchestrator driving a SyncSource against a LocalStore."""

import asyncio
from datetime import datetime
from typing import Any, AsyncIterator, Awaitable, Callable, TypeVar

import structlog

from supabase_replication.errors import FatalReplicationError, SchemaContractError
from supabase_replication.models.checkpoint import Checkpoint, is_after
from supabase_replication.models.config import ReplicationConfig
from supabase_replication.models.rows import PullResult, WriteIntention
from supabase_replication.store.checkpoint_tracker import CheckpointTracker
from supabase_replication.store.local_store import LocalStore, MasterRecord
from supabase_replication.sync.conflict import ConflictInput, ConflictResolver, RemoteWinsResolver
from supabase_replication.sync.models import ReplicationReport, ReplicationStatus
from supabase_replication.sync.source import SyncSource
from supabase_replication.utils.retry import retry_async

log = structlog.stdlib.get_logger()

T = TypeVar("T")

ErrorHandler = Callable[[Exception], None]

class ReplicationOrchestrator:
    """Runs the pull, push and realtime loops of one replication session.

    The orchestrator knows nothing about the backend. It drives any SyncSource:
    pulls until a batch comes back short, pushes pending local writes one at a
    time, merges the source's change stream into the local store and retries
    failed operations unchanged after ``retry_delay``. The checkpoint is only
    advanced after a pulled batch has been applied completely.
    """

    def __init__(
        self,
        source: SyncSource,
        store: LocalStore,
        config: ReplicationConfig,
        conflict_resolver: ConflictResolver | None = None,
        checkpoint_tracker: CheckpointTracker | None = None,
    ):
        """
        Initialize replication orchestrator.

        Args:
            source: Backend sync source
            store: Local document store
            config: Replication configuration
            conflict_resolver: Resolver for write conflicts (remote wins if None)
            checkpoint_tracker: Checkpoint persistence (stored in the local store if None)
        """
        self._source = source
        self._store = store
        self._config = config
        self._primary_key = config.primary_key
        self._deleted_field = config.deleted_field
        self._conflict_resolver: ConflictResolver = conflict_resolver or RemoteWinsResolver()
        self._checkpoint_tracker = checkpoint_tracker or CheckpointTracker(
            store, config.replication_identifier
        )

        self._status = ReplicationStatus.IDLE
        self._checkpoint: Checkpoint | None = None
        self._errors: list[Exception] = []
        self._error_handlers: list[ErrorHandler] = []
        self._fatal_error: Exception | None = None

        self._main_task: asyncio.Task | None = None
        self._tasks: list[asyncio.Task] = []
        self._push_requested = asyncio.Event()
        self._initial_replication_done = asyncio.Event()
        self._stopped = asyncio.Event()
        self._pull_lock = asyncio.Lock()
        self._push_lock = asyncio.Lock()
        self._busy = 0
        self._applying = 0
        # Set whenever in-flight work finishes or the session stops.
        self._activity = asyncio.Event()

        self._documents_pulled = 0
        self._documents_pushed = 0
        self._conflicts = 0
        self._start_time: datetime | None = None
        self._end_time: datetime | None = None

    @property
    def status(self) -> ReplicationStatus:
        return self._status

    @property
    def checkpoint(self) -> Checkpoint | None:
        return self._checkpoint

    @property
    def errors(self) -> list[Exception]:
        return list(self._errors)

    def on_error(self, handler: ErrorHandler) -> None:
        """Register a handler called with every error the session reports."""
        self._error_handlers.append(handler)

    async def __aenter__(self) -> "ReplicationOrchestrator":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.cancel()

    async def start(self) -> None:
        """Load the checkpoint and start replicating in the background."""
        if self._status is not ReplicationStatus.IDLE:
            return

        self._status = ReplicationStatus.RUNNING
        self._start_time = datetime.now()
        log.info(
            "replication_started",
            replication_identifier=self._config.replication_identifier,
            table=self._config.table,
            live=self._config.live,
        )

        self._checkpoint = await self._checkpoint_tracker.load_checkpoint()
        self._store.add_change_listener(self._on_local_change)
        self._main_task = asyncio.create_task(self._guarded(self._run()))

    async def cancel(self) -> None:
        """
        Stop replicating.

        Cancels further pull and push cycles and unsubscribes the change stream
        concurrently. An interrupted request never advances the checkpoint.
        """
        if self._status in (
            ReplicationStatus.CANCELLED,
            ReplicationStatus.FAILED,
            ReplicationStatus.COMPLETED,
        ):
            return

        self._status = ReplicationStatus.CANCELLED
        self._activity.set()
        await self._teardown()
        self._initial_replication_done.set()
        self._end_time = datetime.now()
        self._stopped.set()
        log.info(
            "replication_cancelled",
            replication_identifier=self._config.replication_identifier,
        )

    async def await_initial_replication(self) -> None:
        """Wait until the first pull cycle and push drain have completed."""
        await self._initial_replication_done.wait()
        if self._fatal_error is not None:
            raise self._fatal_error

    async def await_in_sync(self) -> None:
        """Wait until no pull, push or stream item is in flight and nothing is pending."""
        await self.await_initial_replication()
        while self._status is ReplicationStatus.RUNNING:
            self._activity.clear()
            if await self._is_idle():
                return
            await self._activity.wait()
        if self._fatal_error is not None:
            raise self._fatal_error

    async def await_stopped(self) -> None:
        """Wait until the session completed, was cancelled or failed."""
        await self._stopped.wait()

    async def resync(self) -> None:
        """Run a pull cycle now, e.g. after the change stream was interrupted."""
        await self._with_retry("pull", self._pull_cycle)

    def report(self) -> ReplicationReport:
        return ReplicationReport(
            replication_identifier=self._config.replication_identifier,
            status=self._status,
            documents_pulled=self._documents_pulled,
            documents_pushed=self._documents_pushed,
            conflicts=self._conflicts,
            checkpoint=self._checkpoint,
            start_time=self._start_time,
            end_time=self._end_time,
            errors=[str(e) for e in self._errors],
        )

    async def _run(self) -> None:
        # Runs in its own task context; spawned tasks inherit the binding.
        structlog.contextvars.bind_contextvars(
            replication_identifier=self._config.replication_identifier,
            table=self._config.table,
        )
        if self._config.live and self._config.realtime and self._config.pull_enabled:
            # Subscribe before the initial pull so no change falls in between.
            await self._with_retry("start_stream", self._source.start_stream)
            stream = self._source.change_stream()
            if stream is not None:
                self._spawn(self._consume_stream(stream))

        if self._config.pull_enabled:
            await self._with_retry("pull", self._pull_cycle)
        if self._config.push_enabled:
            await self._with_retry("push", self._push_all)

        if not self._config.live:
            self._status = ReplicationStatus.COMPLETED
            self._end_time = datetime.now()
            self._activity.set()

        self._initial_replication_done.set()
        log.info(
            "initial_replication_completed",
            replication_identifier=self._config.replication_identifier,
            documents_pulled=self._documents_pulled,
            documents_pushed=self._documents_pushed,
        )

        if not self._config.live:
            await self._teardown()
            self._stopped.set()
            return

        if self._config.push_enabled:
            self._spawn(self._push_worker())

    async def _pull_cycle(self) -> None:
        batch_size = self._config.batch_size
        async with self._pull_lock:
            async for result in self._source.pull_all(self._checkpoint, batch_size):
                await self._apply_documents(result)
                if result.checkpoint is not None:
                    self._checkpoint = result.checkpoint
                    await self._checkpoint_tracker.save_checkpoint(result.checkpoint)

    async def _consume_stream(self, stream: AsyncIterator[PullResult]) -> None:
        async for item in stream:
            self._applying += 1
            try:
                await self._apply_documents(item)
            except FatalReplicationError:
                raise
            except Exception as e:
                self._emit_error(e)
            finally:
                self._applying -= 1
                self._activity.set()

    async def _push_worker(self) -> None:
        while True:
            await self._push_requested.wait()
            self._push_requested.clear()
            await self._with_retry("push", self._push_all)

    async def _apply_documents(self, result: PullResult) -> None:
        """Apply remote documents, last write wins per row by checkpoint."""
        if not result.documents:
            return

        pending = set(await self._store.pending_keys())
        for index, document in enumerate(result.documents):
            checkpoint = (
                result.document_checkpoints[index]
                if index < len(result.document_checkpoints)
                else None
            )
            key = self._key_of(document)

            if key in pending:
                # The push of the local write will surface the conflict.
                log.debug("remote_document_deferred", key=key)
                continue

            record = await self._store.get_master(key)
            known_checkpoint = record.checkpoint if record is not None else None
            if (
                checkpoint is not None
                and known_checkpoint is not None
                and is_after(known_checkpoint, checkpoint)
            ):
                log.debug("stale_remote_document_skipped", key=key)
                continue

            master_state = self._normalize(document)
            data, deleted = self._split(master_state)
            await self._store.apply_remote(key, data, deleted)
            await self._store.set_master(
                key, MasterRecord(state=master_state, checkpoint=checkpoint or known_checkpoint)
            )
            self._documents_pulled += 1

    async def _push_all(self) -> None:
        missing: set[Any] = set()
        async with self._push_lock:
            while True:
                keys = [key for key in await self._store.pending_keys() if key not in missing]
                if not keys:
                    return
                for key in keys:
                    if not await self._push_document(key):
                        missing.add(key)

    async def _push_document(self, key: Any) -> bool:
        document = await self._store.get(key)
        if document is None:
            log.warning("pending_document_missing", key=key)
            return False

        revision = document.revision
        record = await self._store.get_master(key)
        known_checkpoint = record.checkpoint if record is not None else None
        intention = WriteIntention(
            new_document_state={**document.data, self._deleted_field: document.deleted},
            assumed_master_state=record.state if record is not None else None,
        )

        while True:
            conflicts = await self._source.push(intention)
            if not conflicts:
                await self._store.set_master(
                    key, MasterRecord(state=intention.new_document_state, checkpoint=known_checkpoint)
                )
                await self._store.acknowledge(key, revision)
                self._documents_pushed += 1
                return True

            self._conflicts += 1
            real_master_state = self._normalize(conflicts[0])
            await self._store.set_master(
                key, MasterRecord(state=real_master_state, checkpoint=known_checkpoint)
            )
            log.info("resolving_conflict", key=key)
            resolution = await self._conflict_resolver.resolve(
                ConflictInput(
                    new_document_state=intention.new_document_state,
                    real_master_state=real_master_state,
                    assumed_master_state=intention.assumed_master_state,
                )
            )

            current = await self._store.get(key)
            if current is None or current.revision != revision:
                # A newer local write supersedes this one and is pushed against the fetched state.
                return True

            resolved = (
                self._normalize(resolution.document_data)
                if resolution.document_data is not None
                else real_master_state
            )
            if resolution.is_equal or resolved == real_master_state:
                data, deleted = self._split(real_master_state)
                await self._store.apply_remote(key, data, deleted)
                await self._store.acknowledge(key, revision)
                return True

            data, deleted = self._split(resolved)
            revision = await self._store.save_resolved(key, data, deleted)
            intention = WriteIntention(
                new_document_state=resolved, assumed_master_state=real_master_state
            )

    async def _with_retry(self, name: str, operation: Callable[[], Awaitable[T]]) -> T:
        self._busy += 1
        try:
            return await retry_async(
                operation,
                base_delay=self._config.retry_delay,
                max_delay=self._config.retry_delay,
                on_error=self._emit_error,
                operation_name=name,
            )
        finally:
            self._busy -= 1
            self._activity.set()

    async def _is_idle(self) -> bool:
        if self._busy or self._applying or self._push_requested.is_set():
            return False
        if self._source.stream_backlog():
            return False
        if self._config.push_enabled and await self._store.pending_keys():
            return False
        return True

    def _spawn(self, coro: Awaitable[None]) -> None:
        self._tasks.append(asyncio.create_task(self._guarded(coro)))

    async def _guarded(self, coro: Awaitable[None]) -> None:
        try:
            await coro
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await self._fail(e)

    async def _fail(self, error: Exception) -> None:
        if self._status is not ReplicationStatus.RUNNING:
            return
        self._status = ReplicationStatus.FAILED
        self._fatal_error = error
        self._activity.set()
        self._end_time = datetime.now()
        self._emit_error(error)
        log.error(
            "replication_failed",
            replication_identifier=self._config.replication_identifier,
            error=str(error),
            error_type=type(error).__name__,
        )
        self._initial_replication_done.set()
        await self._teardown()
        self._stopped.set()

    async def _teardown(self) -> None:
        self._store.remove_change_listener(self._on_local_change)
        current = asyncio.current_task()
        tasks = [
            task
            for task in [self._main_task, *self._tasks]
            if task is not None and task is not current and not task.done()
        ]
        for task in tasks:
            task.cancel()

        results = await asyncio.gather(self._source.stop_stream(), *tasks, return_exceptions=True)
        if isinstance(results[0], Exception):
            log.warning("stop_stream_failed", error=str(results[0]))

    def _on_local_change(self, key: Any) -> None:
        if self._config.push_enabled and self._status is ReplicationStatus.RUNNING:
            self._push_requested.set()

    def _emit_error(self, error: Exception) -> None:
        self._errors.append(error)
        log.warning(
            "replication_error",
            replication_identifier=self._config.replication_identifier,
            error=str(error),
            error_type=type(error).__name__,
        )
        for handler in list(self._error_handlers):
            try:
                handler(error)
            except Exception as e:
                log.error("error_handler_failed", error=str(e))

    def _key_of(self, document: dict[str, Any]) -> Any:
        key = document.get(self._primary_key)
        if key is None:
            raise SchemaContractError(f"Document is missing primary key field '{self._primary_key}'")
        return key

    def _normalize(self, document: dict[str, Any]) -> dict[str, Any]:
        """Copy a remote document, making sure it carries the delete flag."""
        state = dict(document)
        state[self._deleted_field] = bool(state.get(self._deleted_field, False))
        return state

    def _split(self, state: dict[str, Any]) -> tuple[dict[str, Any], bool]:
        data = {field: value for field, value in state.items() if field != self._deleted_field}
        return data, bool(state.get(self._deleted_field, False))
