"""
Daily automatic backup scheduler.

The scheduler ticks on a fixed cadence (default 60 seconds) and triggers
at most one automatic snapshot per calendar day, at a fixed local time
(default 17:45).

On each tick:
    - local time must equal the target hour and minute exactly
    - the persisted marker must not already hold today's date
    - the live collections must not all be empty
    - then an automatic snapshot is created in a background task; the
      tick itself never waits for it

Success writes today's date to the marker and also records it in memory,
so a marker write failure cannot cause a second snapshot the same day.
A failed snapshot is logged only and leaves the marker alone, so another
tick inside the same target minute may retry.

Invariants:
    - Clock and marker persistence are injected, never global
    - No catch-up: a process that is not running (or is suspended) during
      the target minute skips that day's automatic backup
    - The automatic path never raises to its caller

How to change safely:
    - Keep marker values as ISO dates (YYYY-MM-DD)
    - Test with a fake clock rather than sleeping
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

from ..errors import LogbookError
from ..records import LogbookState
from .store import SnapshotKind, SnapshotStore

logger = logging.getLogger(__name__)

MARKER_KEY = "last_auto_backup_date"


class MarkerStore(Protocol):
    """Persistence for the last automatic backup date."""

    def read(self) -> str | None: ...

    def write(self, value: str) -> None: ...


class InMemoryMarkerStore:
    """Marker kept in process memory."""

    def __init__(self, value: str | None = None) -> None:
        self.value = value

    def read(self) -> str | None:
        return self.value

    def write(self, value: str) -> None:
        self.value = value


class FileMarkerStore:
    """Marker kept in a small JSON file.

    File format:
        {"last_auto_backup_date": "YYYY-MM-DD"}

    A missing or unreadable file reads as "no backup yet".
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def read(self) -> str | None:
        try:
            content = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Unreadable backup marker {self.path}: {e}")
            return None
        if not isinstance(content, dict):
            return None
        value = content.get(MARKER_KEY)
        return value if isinstance(value, str) else None

    def write(self, value: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps({MARKER_KEY: value}), encoding="utf-8")
        tmp_path.replace(self.path)


class BackupScheduler:
    """Triggers one automatic snapshot per day at a fixed local time.

    Attributes:
        snapshot_store: Where automatic snapshots go
        state_provider: Coroutine returning the current live state
        marker_store: Last automatic backup date persistence
        hour: Target local hour
        minute: Target local minute
        tick_seconds: Interval between ticks

    Example:
        >>> scheduler = BackupScheduler(store, engine.capture_state, FileMarkerStore(path))
        >>> asyncio.create_task(scheduler.start())
        >>> ...
        >>> await scheduler.stop()
    """

    def __init__(
        self,
        snapshot_store: SnapshotStore,
        state_provider: Callable[[], Awaitable[LogbookState]],
        marker_store: MarkerStore,
        clock: Callable[[], datetime] | None = None,
        hour: int = 17,
        minute: int = 45,
        tick_seconds: float = 60,
    ) -> None:
        self.snapshot_store = snapshot_store
        self.state_provider = state_provider
        self.marker_store = marker_store
        self.hour = hour
        self.minute = minute
        self.tick_seconds = tick_seconds
        self._clock = clock or datetime.now

        self._running = False
        self._stop_event = asyncio.Event()
        self._tasks: set[asyncio.Task] = set()
        self._tick_count = 0
        self._triggered_count = 0
        self._failure_count = 0
        self._last_backup_date: str | None = None

    async def start(self) -> None:
        """Run the tick loop until stop() is called."""
        if self._running:
            logger.warning("Backup scheduler already running")
            return

        self._running = True
        self._stop_event.clear()
        logger.info(
            "Starting backup scheduler",
            extra={
                "backup_time": f"{self.hour:02d}:{self.minute:02d}",
                "tick_seconds": self.tick_seconds,
            },
        )

        try:
            while self._running:
                await self.tick()
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self.tick_seconds)
                except asyncio.TimeoutError:
                    pass
        except asyncio.CancelledError:
            logger.info("Backup scheduler cancelled")
        finally:
            self._running = False

    async def stop(self) -> None:
        """Stop the loop and wait for in-flight automatic backups."""
        self._running = False
        self._stop_event.set()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        logger.info("Stopping backup scheduler")

    async def tick(self) -> asyncio.Task | None:
        """Evaluate one tick.

        Returns:
            The background backup task if one was started, else None
        """
        self._tick_count += 1
        now = self._clock()
        if now.hour != self.hour or now.minute != self.minute:
            return None

        today = now.date().isoformat()
        if today == self._last_backup_date or self.marker_store.read() == today:
            return None
        if self._tasks:
            # an automatic backup for this minute is still in flight
            return None

        try:
            state = await self.state_provider()
        except LogbookError as e:
            self._failure_count += 1
            logger.error(f"Automatic backup skipped, could not read live state: {e}")
            return None

        if state.is_empty():
            logger.info("Automatic backup skipped, live collections are empty")
            return None

        logger.info("Starting automatic backup", extra={"date": today})
        task = asyncio.create_task(self._run_backup(state, today))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run_backup(self, state: LogbookState, today: str) -> None:
        try:
            snapshot = await self.snapshot_store.create_snapshot(state, SnapshotKind.AUTOMATIC)
        except LogbookError as e:
            self._failure_count += 1
            logger.error(f"Automatic backup failed: {e}", exc_info=True)
            return

        self._triggered_count += 1
        self._last_backup_date = today
        logger.info(
            "Automatic backup completed",
            extra={"snapshot_id": snapshot.id, "date": today},
        )

        try:
            self.marker_store.write(today)
        except OSError as e:
            logger.error(
                f"Automatic backup created but marker write failed: {e}",
                extra={"snapshot_id": snapshot.id, "date": today},
            )

    @property
    def stats(self) -> dict[str, Any]:
        """Get scheduler statistics."""
        return {
            "running": self._running,
            "ticks": self._tick_count,
            "triggered": self._triggered_count,
            "failures": self._failure_count,
            "last_auto_backup_date": self.marker_store.read() or self._last_backup_date,
        }
