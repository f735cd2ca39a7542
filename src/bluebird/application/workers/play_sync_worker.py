# Hey future me - this worker is the "hourly cron" of the service, kept in-process.
#
# Every interval_seconds it runs one full PlaySyncService.sync_all_users() pass. Per-user
# failures are already contained inside the service; what can reach the loop is a fatal run
# error (e.g. the profile list query failing). That gets logged, counted, and the loop
# sleeps until the next cycle - the worker never dies on a bad hour.
#
# stop() only wakes the wait between cycles. A run that is already in flight is drained:
# every started user finishes, so no bulk write is ever cut off.
"""Background worker running the play sync on a fixed interval."""

import asyncio
import logging
import time
from datetime import UTC, datetime
from typing import Any

from bluebird.application.services.play_sync_service import PlaySyncService
from bluebird.domain.entities import SyncRunReport
from bluebird.infrastructure.observability import log_operation, log_worker_health

logger = logging.getLogger(__name__)

WORKER_NAME = "play_sync"


class PlaySyncWorker:
    """Run sync_all_users every `interval_seconds` until stopped."""

    def __init__(
        self,
        sync_service: PlaySyncService,
        interval_seconds: float = 3600,
        health_every_cycles: int = 10,
    ) -> None:
        self.sync_service = sync_service
        self.interval_seconds = interval_seconds
        self.health_every_cycles = health_every_cycles

        self._running = False
        self._task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()
        self._start_time = time.time()
        self._cycles_completed = 0
        self._errors_total = 0
        self._last_run_at: datetime | None = None
        self._last_report: SyncRunReport | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the loop in a background task. Calling it twice is a no-op."""
        if self._running:
            logger.warning("play_sync.worker.already_running")
            return

        self._running = True
        self._stop_event.clear()
        self._start_time = time.time()
        self._task = asyncio.create_task(self._run_loop(), name="play_sync_worker")
        logger.info(
            "worker.started",
            extra={"worker": WORKER_NAME, "interval_seconds": self.interval_seconds},
        )

    async def stop(self) -> None:
        """Stop the loop, letting a run in progress finish first."""
        self._running = False
        self._stop_event.set()
        if self._task:
            await self._task
            self._task = None
        logger.info(
            "worker.stopped",
            extra={
                "worker": WORKER_NAME,
                "cycles_completed": self._cycles_completed,
                "errors_total": self._errors_total,
                "uptime_seconds": int(time.time() - self._start_time),
            },
        )

    async def run_once(self) -> SyncRunReport:
        """Run one sync pass right now, outside the schedule."""
        async with log_operation(logger, "play_sync.cycle", cycle=self._cycles_completed + 1):
            report = await self.sync_service.sync_all_users()
        self._last_run_at = datetime.now(UTC)
        self._last_report = report
        return report

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await self.run_once()
                self._cycles_completed += 1

                if self._cycles_completed % self.health_every_cycles == 0:
                    log_worker_health(
                        logger,
                        WORKER_NAME,
                        self._cycles_completed,
                        self._errors_total,
                        time.time() - self._start_time,
                        extra_stats=self._last_stats(),
                    )
            except Exception:
                # log_operation already logged the failure with its traceback
                self._errors_total += 1

            if await self._wait_for_stop(self.interval_seconds):
                break

    async def _wait_for_stop(self, timeout: float) -> bool:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=timeout)
        except TimeoutError:
            return False
        return True

    def _last_stats(self) -> dict[str, Any]:
        if self._last_report is None:
            return {}
        return {f"last_{k}": v for k, v in self._last_report.summary().items()}

    def get_status(self) -> dict[str, Any]:
        """Worker state for diagnostics."""
        return {
            "running": self._running,
            "interval_seconds": self.interval_seconds,
            "cycles_completed": self._cycles_completed,
            "errors_total": self._errors_total,
            "last_run_at": self._last_run_at.isoformat() if self._last_run_at else None,
            "last_summary": self._last_report.summary() if self._last_report else None,
        }
