"""In-memory snapshot store.

Dict-backed implementation of :class:`ISnapshotStore` used by tests and by
one-shot CLI runs that do not need persistence.  Rows are stored as the
immutable models themselves, so handing out the internal list is safe as
long as a copy of the list is returned.
"""

from __future__ import annotations

import structlog

from src.interfaces.snapshot_store import ISnapshotStore
from src.models.corpus import KeywordRow, Snapshot, SnapshotKey

logger = structlog.get_logger(logger_name=__name__)


class MemorySnapshotStore(ISnapshotStore):
    """Process-local snapshot store."""

    def __init__(self) -> None:
        self._snapshots: dict[tuple[SnapshotKey, str], Snapshot] = {}
        self._rows: dict[tuple[SnapshotKey, str], list[KeywordRow]] = {}
        self._active: dict[SnapshotKey, str] = {}
        self.row_writes = 0

    async def get_snapshot_by_id(self, key: SnapshotKey, snapshot_id: str) -> Snapshot | None:
        return self._snapshots.get((key, snapshot_id))

    async def write_snapshot(self, snapshot: Snapshot) -> None:
        self._snapshots[(snapshot.key, snapshot.id)] = snapshot

    async def read_all_keyword_rows(self, key: SnapshotKey, snapshot_id: str) -> list[KeywordRow]:
        return list(self._rows.get((key, snapshot_id), []))

    async def write_keyword_rows(
        self,
        key: SnapshotKey,
        snapshot_id: str,
        rows: list[KeywordRow],
    ) -> None:
        self._rows[(key, snapshot_id)] = list(rows)
        self.row_writes += 1
        logger.debug("memory_rows_written", key=str(key), snapshot_id=snapshot_id, rows=len(rows))

    async def get_active_snapshot_id(self, key: SnapshotKey) -> str | None:
        return self._active.get(key)

    async def set_active_snapshot_id(self, key: SnapshotKey, snapshot_id: str) -> None:
        self._active[key] = snapshot_id

    async def list_snapshots(self, key: SnapshotKey) -> list[Snapshot]:
        found = [snap for (k, _), snap in self._snapshots.items() if k == key]
        return sorted(found, key=lambda s: s.created_at, reverse=True)

    def get_provider_name(self) -> str:
        return "memory"
