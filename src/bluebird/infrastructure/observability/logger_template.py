"""Shared logging helpers so every job logs its operations the same way.

USAGE:
    from bluebird.infrastructure.observability import log_operation, log_worker_health

    async with log_operation(logger, "play_sync.run", users=12):
        report = await service.sync_all_users()

    log_worker_health(logger, "play_sync", cycles_completed=10, errors_total=1, uptime_seconds=36000)
"""

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any


# Yo, the **context fields land in all three lines ({op}.started/.completed/.failed) and the
# duration is added to the last one. The exception is re-raised after logging; this helper
# never decides whether a failure is fatal.
@asynccontextmanager
async def log_operation(
    logger: logging.Logger,
    operation: str,
    **context: Any,
) -> AsyncIterator[None]:
    """Log start/end of an operation with its duration in ms.

    Args:
        logger: Logger to write to
        operation: Dotted operation name, e.g. "play_sync.run"
        **context: Extra fields for every line
    """
    start = time.monotonic()
    logger.info(f"{operation}.started", extra=context)

    try:
        yield
    except Exception as e:
        duration_ms = int((time.monotonic() - start) * 1000)
        logger.error(
            f"{operation}.failed",
            extra={
                **context,
                "duration_ms": duration_ms,
                "error": str(e),
                "error_type": type(e).__name__,
            },
            exc_info=True,
        )
        raise

    duration_ms = int((time.monotonic() - start) * 1000)
    logger.info(f"{operation}.completed", extra={**context, "duration_ms": duration_ms})


def log_worker_health(
    logger: logging.Logger,
    worker_name: str,
    cycles_completed: int,
    errors_total: int,
    uptime_seconds: float,
    extra_stats: dict[str, Any] | None = None,
) -> None:
    """Log a worker's health counters as one "worker.health" line.

    Args:
        logger: Logger instance
        worker_name: Worker identifier, e.g. "play_sync"
        cycles_completed: Cycles finished since start
        errors_total: Cycles that raised since start
        uptime_seconds: Seconds since the worker started
        extra_stats: Additional fields merged into the line
    """
    log_data: dict[str, Any] = {
        "worker": worker_name,
        "cycles_completed": cycles_completed,
        "errors_total": errors_total,
        "uptime_seconds": int(uptime_seconds),
    }
    if extra_stats:
        log_data.update(extra_stats)

    logger.info("worker.health", extra=log_data)
