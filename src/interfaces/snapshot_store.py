"""Abstract base class for corpus snapshot storage.

The snapshot store is the durable home of each category's keyword rows
and summary statistics, addressed by ``(category, country, language)``
plus a snapshot id.  It also holds the index pointer naming the one
*active* snapshot per ``(category, country, language)``.

Write semantics are last-writer-wins at row-collection granularity:
:meth:`ISnapshotStore.write_keyword_rows` replaces the full row set.  There
is no partial-row patch API -- callers read, modify and write the whole set
each pass.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.corpus import KeywordRow, Snapshot, SnapshotKey


class ISnapshotStore(ABC):
    """Contract for snapshot persistence backends."""

    @abstractmethod
    async def get_snapshot_by_id(self, key: SnapshotKey, snapshot_id: str) -> Snapshot | None:
        """Return the snapshot, or ``None`` if the id is unknown for ``key``."""

    @abstractmethod
    async def write_snapshot(self, snapshot: Snapshot) -> None:
        """Insert or replace the snapshot document (rows are not touched)."""

    @abstractmethod
    async def read_all_keyword_rows(self, key: SnapshotKey, snapshot_id: str) -> list[KeywordRow]:
        """Return every row of the snapshot (empty list when none)."""

    @abstractmethod
    async def write_keyword_rows(
        self,
        key: SnapshotKey,
        snapshot_id: str,
        rows: list[KeywordRow],
    ) -> None:
        """Replace the snapshot's full row set with ``rows``."""

    @abstractmethod
    async def get_active_snapshot_id(self, key: SnapshotKey) -> str | None:
        """Return the id the index points at for ``key``, if any."""

    @abstractmethod
    async def set_active_snapshot_id(self, key: SnapshotKey, snapshot_id: str) -> None:
        """Point the index for ``key`` at ``snapshot_id``."""

    @abstractmethod
    async def list_snapshots(self, key: SnapshotKey) -> list[Snapshot]:
        """Return every snapshot for ``key``, newest first."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier, e.g. ``"sqlite"``."""
