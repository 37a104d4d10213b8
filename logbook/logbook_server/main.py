"""
Logbook backup server - Main entry point.

This module wires the backup core together:
- Entity store and snapshot backend (memory or Supabase)
- Snapshot store with retention
- Restore engine and backup service
- Daily automatic backup scheduler
- Optional HTTP API

Usage:
    logbook serve
    logbook backup
    logbook list
    logbook restore <snapshot_id> --yes
    logbook delete <snapshot_id>
    logbook reset --yes
    logbook alerts [--date YYYY-MM-DD] [--urgency] [--limit N]

Configuration is entirely via environment variables.
See config.py for all available settings.

Invariants:
    - Restore and reset never run without --yes
    - Graceful shutdown waits for in-flight automatic backups
    - The HTTP session is closed on every exit path

How to change safely:
    - Add new components with enable/disable flags
    - Keep CLI exit codes stable: 0 ok, 1 failure, 2 usage
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
from datetime import date, datetime
from typing import Any

import json_log_formatter
from aiohttp import web

from .api import create_http_app, start_http_server
from .config import ServerConfig, StoreBackend
from .errors import LogbookError
from .service import RESTORE_WARNING, ActionOutcome, BackupService
from .snapshot import BackupScheduler, FileMarkerStore, RestoreEngine, SnapshotStore
from .store import (
    EntityStore,
    InMemoryEntityStore,
    InMemorySnapshotBackend,
    PostgrestClient,
    SnapshotBackend,
    SupabaseEntityStore,
    SupabaseSnapshotBackend,
)

logger = logging.getLogger(__name__)


def setup_logging(config: ServerConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Server configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)


class Server:
    """Logbook backup server orchestrator.

    Manages the lifecycle of all components:
    - Store connection (PostgREST session for Supabase)
    - Backup service
    - Scheduler loop
    - HTTP API

    Attributes:
        config: Server configuration
        entity_store: Live records store
        snapshot_backend: Snapshot rows store
        service: User-action facade
        scheduler: Daily automatic backup scheduler

    Example:
        >>> server = Server()
        >>> await server.setup()
        >>> outcome = await server.service.backup_now()
        >>> await server.stop()
    """

    def __init__(self, config: ServerConfig | None = None) -> None:
        """Initialize the server.

        Args:
            config: Optional server configuration (loaded from env if not provided)
        """
        self.config = config or ServerConfig.from_env()
        self._running = False
        self._shutdown_event = asyncio.Event()

        # Components (initialized in setup())
        self.client: PostgrestClient | None = None
        self.entity_store: EntityStore | None = None
        self.snapshot_backend: SnapshotBackend | None = None
        self.snapshot_store: SnapshotStore | None = None
        self.restore_engine: RestoreEngine | None = None
        self.service: BackupService | None = None
        self.scheduler: BackupScheduler | None = None
        self.http_runner: web.AppRunner | None = None

        # Background tasks
        self._tasks: list[asyncio.Task] = []

    async def setup(self) -> None:
        """Open the stores and build the service. Idempotent."""
        if self.service is not None:
            return

        if self.config.store_backend == StoreBackend.SUPABASE:
            self.client = PostgrestClient(self.config.store)
            await self.client.connect()
            self.entity_store = SupabaseEntityStore(self.client, self.config.store)
            self.snapshot_backend = SupabaseSnapshotBackend(
                self.client, table=self.config.snapshot.table
            )
        else:
            self.entity_store = InMemoryEntityStore()
            self.snapshot_backend = InMemorySnapshotBackend(table=self.config.snapshot.table)

        self.snapshot_store = SnapshotStore(
            self.snapshot_backend, retention=self.config.snapshot.retention
        )
        self.restore_engine = RestoreEngine(self.entity_store)
        self.service = BackupService(self.snapshot_store, self.restore_engine)
        logger.info(
            "Backup service ready",
            extra={"store_backend": self.config.store_backend.value},
        )

    async def start(self) -> None:
        """Start the server and block until shutdown is requested."""
        if self._running:
            logger.warning("Server already running")
            return

        logger.info("Starting logbook backup server")
        self.config.log_config()

        try:
            await self.setup()
            assert self.snapshot_store is not None and self.restore_engine is not None
            self._running = True

            # Start scheduler if enabled
            if self.config.scheduler.enabled:
                self.scheduler = BackupScheduler(
                    snapshot_store=self.snapshot_store,
                    state_provider=self.restore_engine.capture_state,
                    marker_store=FileMarkerStore(self.config.scheduler.marker_path),
                    hour=self.config.scheduler.hour,
                    minute=self.config.scheduler.minute,
                    tick_seconds=self.config.scheduler.tick_seconds,
                )
                self._tasks.append(asyncio.create_task(self.scheduler.start()))

            # Start HTTP server if enabled
            if self.config.http.enabled:
                app = create_http_app(self.service, self.config.http, self.scheduler)
                self.http_runner = await start_http_server(
                    app, self.config.http.host, self.config.http.port
                )

            logger.info("Logbook backup server started successfully")

            # Wait for shutdown signal
            await self._shutdown_event.wait()

        except Exception as e:
            logger.error(f"Server startup failed: {e}", exc_info=True)
            await self.stop()
            raise

    async def stop(self) -> None:
        """Stop the server gracefully."""
        if self._running:
            logger.info("Stopping logbook backup server")

        if self.scheduler:
            await self.scheduler.stop()

        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

        if self.http_runner:
            await self.http_runner.cleanup()
            self.http_runner = None

        if self.client:
            await self.client.close()

        if self._running:
            self._running = False
            logger.info("Logbook backup server stopped")

    def request_shutdown(self) -> None:
        """Request graceful shutdown."""
        self._shutdown_event.set()


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="logbook",
        description="Logbook snapshot backup and restore tool",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("serve", help="Run the scheduler (and HTTP API if enabled)")
    subparsers.add_parser("backup", help="Create a manual snapshot now")
    subparsers.add_parser("list", help="List snapshots, newest first")

    restore_parser = subparsers.add_parser("restore", help="Replace live data with a snapshot")
    restore_parser.add_argument("snapshot_id", help="Snapshot id to restore")
    restore_parser.add_argument("--yes", action="store_true", help="Confirm the destructive restore")

    delete_parser = subparsers.add_parser("delete", help="Delete one snapshot")
    delete_parser.add_argument("snapshot_id", help="Snapshot id to delete")

    reset_parser = subparsers.add_parser("reset", help="Delete every live record")
    reset_parser.add_argument("--yes", action="store_true", help="Confirm the destructive reset")

    alerts_parser = subparsers.add_parser("alerts", help="Show critical items")
    alerts_parser.add_argument("--date", help="Reference date YYYY-MM-DD (default: today)")
    alerts_parser.add_argument("--urgency", action="store_true", help="Sort oldest first")
    alerts_parser.add_argument("--limit", type=int, help="Show at most N items")

    return parser


def _print_outcome(outcome: ActionOutcome) -> int:
    stream = sys.stdout if outcome.success else sys.stderr
    print(outcome.message, file=stream)
    if outcome.data:
        print(json.dumps(outcome.data, indent=2), file=stream)
    return 0 if outcome.success else 1


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


async def run_command(server: Server, args: argparse.Namespace) -> int:
    """Run a one-shot CLI command against ``server``.

    Returns:
        Process exit code
    """
    if args.command in ("restore", "reset") and not args.yes:
        print(RESTORE_WARNING, file=sys.stderr)
        print("Re-run with --yes to proceed.", file=sys.stderr)
        return 2

    await server.setup()
    service = server.service
    assert service is not None

    if args.command == "backup":
        return _print_outcome(await service.backup_now())

    elif args.command == "restore":
        return _print_outcome(await service.restore(args.snapshot_id))

    elif args.command == "delete":
        return _print_outcome(await service.delete(args.snapshot_id))

    elif args.command == "reset":
        return _print_outcome(await service.reset())

    try:
        if args.command == "list":
            snapshots = await service.list_snapshots()
            _print_json([s.summary() for s in snapshots])

        elif args.command == "alerts":
            if args.date:
                reference = datetime.strptime(args.date, "%Y-%m-%d").date()
            else:
                reference = date.today()
            if args.limit is not None and args.limit < 0:
                raise ValueError("--limit must be non-negative")
            _print_json(await service.alerts(reference, by_urgency=args.urgency, limit=args.limit))

    except LogbookError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Invalid argument: {e}", file=sys.stderr)
        return 2

    return 0


async def _run_once(config: ServerConfig, args: argparse.Namespace) -> int:
    server = Server(config)
    try:
        return await run_command(server, args)
    finally:
        await server.stop()


def serve(config: ServerConfig) -> None:
    """Run the long-lived server until SIGTERM/SIGINT."""
    server = Server(config)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def handle_signal(sig: int) -> None:
        logger.info(f"Received signal {sig}, initiating shutdown")
        server.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_signal, sig)

    try:
        loop.run_until_complete(server.start())
    except KeyboardInterrupt:
        pass
    finally:
        loop.run_until_complete(server.stop())
        loop.close()


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    # Load configuration
    try:
        config = ServerConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    # Setup logging
    setup_logging(config)

    if args.command == "serve":
        serve(config)
        return

    sys.exit(asyncio.run(_run_once(config, args)))


if __name__ == "__main__":
    main()
