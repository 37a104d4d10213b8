"""
Snapshot module for the logbook.

This module handles point-in-time copies of the tracked collections:
- SnapshotStore: create/list/delete with a retention cap
- RestoreEngine: destructive restore, state capture, reset
- BackupScheduler: one automatic snapshot per day at a fixed time

Invariants:
    - At most ``retention`` snapshots survive a trim (7 by default)
    - Snapshot payloads are deep copies of the live state
    - Restore is not atomic; failures report whether data was modified
"""

from .restore import RestoreEngine, RestoreResult
from .scheduler import BackupScheduler, FileMarkerStore, InMemoryMarkerStore, MarkerStore
from .store import Snapshot, SnapshotKind, SnapshotStore

__all__ = [
    "BackupScheduler",
    "FileMarkerStore",
    "InMemoryMarkerStore",
    "MarkerStore",
    "RestoreEngine",
    "RestoreResult",
    "Snapshot",
    "SnapshotKind",
    "SnapshotStore",
]
