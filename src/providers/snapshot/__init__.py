"""Snapshot store providers.

MemorySnapshotStore keeps everything in process (tests, dry runs);
SQLiteSnapshotStore persists snapshots, rows and the active index via
aiosqlite.
"""

from src.providers.snapshot.memory_snapshot_store import MemorySnapshotStore
from src.providers.snapshot.sqlite_snapshot_store import SQLiteSnapshotStore

__all__ = ["MemorySnapshotStore", "SQLiteSnapshotStore"]
