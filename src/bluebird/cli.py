"""Command line entry point.

Usage:
    bluebird                       # same as `bluebird sync`
    bluebird sync [--fail-on-user-errors]
    bluebird upc                   # recompute play-count aggregates
    bluebird ucp [--redis-host H] [--redis-port P] [--redis-password PW]
    bluebird schedule              # run `sync` every SYNC_INTERVAL_SECONDS until interrupted

Exit codes:
    0  run finished (individual users may still have failed, see the log)
    1  configuration error
    3  `sync --fail-on-user-errors` and at least one user failed
    4  the run itself failed (e.g. the profile list could not be read)
"""

import argparse
import asyncio
import logging
import signal
import sys
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass

from bluebird.application.services.currently_playing_service import (
    CurrentlyPlayingService,
)
from bluebird.application.services.play_counts_service import PlayCountsService
from bluebird.application.services.play_sync_service import PlaySyncService
from bluebird.application.workers.play_sync_worker import PlaySyncWorker
from bluebird.config import Settings, get_settings
from bluebird.domain.exceptions import ConfigurationError
from bluebird.infrastructure.cache import RedisNowPlayingCache
from bluebird.infrastructure.integrations.spotify_client import SpotifyClient
from bluebird.infrastructure.observability import configure_logging
from bluebird.infrastructure.persistence.database import Database
from bluebird.infrastructure.persistence.storage_gateway import StorageGateway

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1
EXIT_USER_FAILURES = 3
EXIT_RUN_FAILED = 4


@dataclass
class Runtime:
    """Adapters shared by one command invocation."""

    spotify: SpotifyClient
    storage: StorageGateway


@asynccontextmanager
async def open_runtime(settings: Settings) -> AsyncIterator[Runtime]:
    database = Database(settings.database)
    spotify = SpotifyClient(settings.spotify)
    try:
        yield Runtime(spotify=spotify, storage=StorageGateway(database.session_scope))
    finally:
        await spotify.close()
        await database.close()


def build_parser() -> argparse.ArgumentParser:
    # --apikey is accepted on every level for compatibility with existing cron lines; the
    # service authenticates with DATABASE_* settings, so the value itself is ignored.
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--apikey", default=argparse.SUPPRESS, help="Accepted for compatibility, unused"
    )

    parser = argparse.ArgumentParser(
        prog="bluebird",
        description="Sync Spotify listening history into the relational store.",
        parents=[common],
    )
    parser.set_defaults(command="sync", fail_on_user_errors=False)
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    sync = sub.add_parser("sync", parents=[common], help="Sync recently played (default)")
    sync.add_argument(
        "--fail-on-user-errors",
        action="store_true",
        help=f"Exit {EXIT_USER_FAILURES} if any user failed",
    )

    sub.add_parser("upc", parents=[common], help="Update user play counts")

    ucp = sub.add_parser("ucp", parents=[common], help="Update user currently playing")
    ucp.add_argument("--redis-host", help="Redis hostname (overrides REDIS_HOST)")
    ucp.add_argument("--redis-port", type=int, help="Redis port (overrides REDIS_PORT)")
    ucp.add_argument(
        "--redis-password", help="Redis password (overrides REDIS_PASSWORD)"
    )

    sub.add_parser(
        "schedule", parents=[common], help="Run sync on an interval until interrupted"
    )
    return parser


def _apply_redis_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    updates = {}
    if getattr(args, "redis_host", None):
        updates["host"] = args.redis_host
    if getattr(args, "redis_port", None) is not None:
        updates["port"] = args.redis_port
    if getattr(args, "redis_password", None) is not None:
        updates["password"] = args.redis_password
    if not updates:
        return settings
    return settings.model_copy(
        update={"redis": settings.redis.model_copy(update=updates)}
    )


def _make_sync_service(settings: Settings, runtime: Runtime) -> PlaySyncService:
    return PlaySyncService(
        runtime.spotify,
        runtime.storage,
        max_concurrency=settings.sync.max_concurrency,
        deadline_seconds=settings.sync.deadline_seconds,
    )


async def run_sync(settings: Settings, runtime: Runtime, fail_on_user_errors: bool) -> int:
    report = await _make_sync_service(settings, runtime).sync_all_users()
    for user_id in report.failed:
        result = report.results[user_id]
        failed_in = result.failed_in.value if result.failed_in else "unknown"
        print(f"user {user_id} failed in {failed_in}: {result.error}", file=sys.stderr)

    if fail_on_user_errors and report.has_failures:
        return EXIT_USER_FAILURES
    return EXIT_OK


async def run_upc(settings: Settings, runtime: Runtime) -> int:
    result = await PlayCountsService(runtime.storage).recompute()
    print(
        f"play counts updated: artists={result.artist_play_counts} "
        f"tracks={result.track_counts} weekly={result.weekly_plays}"
    )
    return EXIT_OK


async def run_ucp(settings: Settings, runtime: Runtime) -> int:
    if not settings.redis.host.strip():
        raise ConfigurationError("REDIS_HOST is not configured (or pass --redis-host)")

    cache = RedisNowPlayingCache.from_settings(settings.redis)
    try:
        service = CurrentlyPlayingService(runtime.spotify, runtime.storage, cache)
        await service.refresh_all_users()
    finally:
        await cache.close()
    return EXIT_OK


async def run_schedule(settings: Settings, runtime: Runtime) -> int:
    worker = PlaySyncWorker(
        _make_sync_service(settings, runtime),
        interval_seconds=settings.sync.interval_seconds,
    )
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # add_signal_handler is unavailable on some platforms (Windows); Ctrl+C still
        # cancels asyncio.run there.
        with suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop_event.set)

    await worker.start()
    try:
        await stop_event.wait()
    finally:
        await worker.stop()
    return EXIT_OK


async def run_command(args: argparse.Namespace, settings: Settings) -> int:
    async with open_runtime(settings) as runtime:
        if args.command == "upc":
            return await run_upc(settings, runtime)
        if args.command == "ucp":
            return await run_ucp(settings, runtime)
        if args.command == "schedule":
            return await run_schedule(settings, runtime)
        return await run_sync(settings, runtime, args.fail_on_user_errors)


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = _apply_redis_overrides(get_settings(), args)
        settings.validate_required()
    except ConfigurationError as e:
        print(f"configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    configure_logging(
        log_level=settings.logging.level,
        json_format=settings.logging.json_format,
        app_name=settings.app_name,
    )

    try:
        return asyncio.run(run_command(args, settings))
    except ConfigurationError as e:
        print(f"configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    except Exception as e:
        logger.error(
            "bluebird.command.failed",
            extra={"command": args.command, "error_type": type(e).__name__},
            exc_info=True,
        )
        return EXIT_RUN_FAILED
