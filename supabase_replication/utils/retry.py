"""Retry utilities for replaying failed replication operations."""

import asyncio
from typing import Awaitable, Callable, Tuple, Type, TypeVar

import structlog

from supabase_replication.errors import FatalReplicationError

log = structlog.stdlib.get_logger()

T = TypeVar("T")


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    base_delay: float = 5.0,
    max_delay: float = 60.0,
    backoff_factor: float = 1.0,
    max_retries: int | None = None,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    on_error: Callable[[Exception], None] | None = None,
    operation_name: str | None = None,
) -> T:
    """
    Run an async operation, replaying it after a delay whenever it fails.

    Fatal replication errors are never retried. With the default
    ``backoff_factor`` of 1.0 the delay stays constant; larger factors give
    exponential backoff capped at ``max_delay``.

    Args:
        operation: Zero-argument coroutine function to run
        base_delay: Delay before the first retry in seconds
        max_delay: Maximum delay in seconds
        backoff_factor: Multiplier applied to the delay after every failure
        max_retries: Maximum number of retries, None to retry until cancelled
        exceptions: Tuple of exception types to catch and retry
        on_error: Called with every caught exception before waiting
        operation_name: Name used in log events

    Returns:
        Result of the first successful run

    Raises:
        FatalReplicationError: Immediately, without retrying
        Exception: The last error once max_retries is exhausted
    """
    name = operation_name or getattr(operation, "__name__", "operation")
    attempt = 0

    while True:
        try:
            return await operation()
        except FatalReplicationError:
            raise
        except exceptions as e:
            if on_error is not None:
                on_error(e)

            if max_retries is not None and attempt >= max_retries:
                log.error(
                    "max_retries_reached",
                    operation=name,
                    max_retries=max_retries,
                    error=str(e),
                )
                raise

            delay = min(base_delay * (backoff_factor**attempt), max_delay)
            attempt += 1

            log.warning(
                "retrying_after_error",
                operation=name,
                attempt=attempt,
                max_retries=max_retries,
                delay_seconds=delay,
                error=str(e),
                error_type=type(e).__name__,
            )

            await asyncio.sleep(delay)
