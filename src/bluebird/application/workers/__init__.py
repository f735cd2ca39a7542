"""Background workers."""

from bluebird.application.workers.play_sync_worker import PlaySyncWorker

__all__ = ["PlaySyncWorker"]
