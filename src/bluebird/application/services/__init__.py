"""Application services."""

from bluebird.application.services.currently_playing_service import (
    CurrentlyPlayingReport,
    CurrentlyPlayingService,
)
from bluebird.application.services.play_counts_service import PlayCountsService
from bluebird.application.services.play_sync_service import PlaySyncService

__all__ = [
    "CurrentlyPlayingReport",
    "CurrentlyPlayingService",
    "PlayCountsService",
    "PlaySyncService",
]
