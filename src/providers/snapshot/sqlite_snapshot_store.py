"""SQLite-backed snapshot store.

Persists snapshot documents, keyword rows and the active-snapshot index to
a local SQLite database (default ``data/corpus.db``).  Uses ``aiosqlite``
for async I/O.  Snapshot documents and rows are stored as JSON produced by
``model_dump_json`` and re-validated on read, so the row invariants are
checked every time data comes back from disk.

``write_keyword_rows`` replaces the snapshot's row set inside a single
transaction (DELETE + INSERT), matching the interface's last-writer-wins
contract.
"""

from __future__ import annotations

from pathlib import Path

import aiosqlite
import structlog

from src.interfaces.snapshot_store import ISnapshotStore
from src.models.corpus import KeywordRow, Snapshot, SnapshotKey

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/corpus.db")

_CREATE_TABLES_SQL = [
    """\
CREATE TABLE IF NOT EXISTS snapshots (
    snapshot_id  TEXT NOT NULL,
    category_id  TEXT NOT NULL,
    country      TEXT NOT NULL,
    language     TEXT NOT NULL,
    lifecycle    TEXT NOT NULL,
    document     TEXT NOT NULL,
    created_at   TEXT NOT NULL,
    updated_at   TEXT NOT NULL,
    PRIMARY KEY (category_id, country, language, snapshot_id)
);
""",
    """\
CREATE TABLE IF NOT EXISTS keyword_rows (
    category_id  TEXT NOT NULL,
    country      TEXT NOT NULL,
    language     TEXT NOT NULL,
    snapshot_id  TEXT NOT NULL,
    row_id       TEXT NOT NULL,
    status       TEXT NOT NULL,
    payload      TEXT NOT NULL,
    PRIMARY KEY (category_id, country, language, snapshot_id, row_id)
);
""",
    """\
CREATE TABLE IF NOT EXISTS corpus_index (
    category_id         TEXT NOT NULL,
    country             TEXT NOT NULL,
    language            TEXT NOT NULL,
    active_snapshot_id  TEXT NOT NULL,
    updated_at          TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
    PRIMARY KEY (category_id, country, language)
);
""",
]

_UPSERT_SNAPSHOT_SQL = """\
INSERT INTO snapshots
    (snapshot_id, category_id, country, language, lifecycle, document, created_at, updated_at)
VALUES (?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(category_id, country, language, snapshot_id)
DO UPDATE SET lifecycle  = excluded.lifecycle,
              document   = excluded.document,
              updated_at = excluded.updated_at;
"""

_DELETE_ROWS_SQL = """\
DELETE FROM keyword_rows
WHERE category_id = ? AND country = ? AND language = ? AND snapshot_id = ?;
"""

_INSERT_ROW_SQL = """\
INSERT INTO keyword_rows
    (category_id, country, language, snapshot_id, row_id, status, payload)
VALUES (?, ?, ?, ?, ?, ?, ?);
"""

_UPSERT_INDEX_SQL = """\
INSERT INTO corpus_index (category_id, country, language, active_snapshot_id)
VALUES (?, ?, ?, ?)
ON CONFLICT(category_id, country, language)
DO UPDATE SET active_snapshot_id = excluded.active_snapshot_id,
              updated_at         = strftime('%Y-%m-%dT%H:%M:%fZ', 'now');
"""


def _key_params(key: SnapshotKey) -> tuple[str, str, str]:
    return (key.category_id, key.country, key.language)


class SQLiteSnapshotStore(ISnapshotStore):
    """SQLite-backed :class:`ISnapshotStore`."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create tables if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            for sql in _CREATE_TABLES_SQL:
                await db.execute(sql)
            await db.commit()
        logger.info("snapshot_db_initialized", path=str(self._db_path))

    async def get_snapshot_by_id(self, key: SnapshotKey, snapshot_id: str) -> Snapshot | None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT document FROM snapshots "
                "WHERE category_id = ? AND country = ? AND language = ? AND snapshot_id = ?",
                (*_key_params(key), snapshot_id),
            )
            row = await cursor.fetchone()
        if row is None:
            return None
        return Snapshot.model_validate_json(row["document"])

    async def write_snapshot(self, snapshot: Snapshot) -> None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(
                _UPSERT_SNAPSHOT_SQL,
                (
                    snapshot.id,
                    snapshot.category_id,
                    snapshot.country,
                    snapshot.language,
                    snapshot.lifecycle.value,
                    snapshot.model_dump_json(),
                    snapshot.created_at.isoformat(),
                    snapshot.updated_at.isoformat(),
                ),
            )
            await db.commit()
        logger.debug(
            "snapshot_written",
            snapshot_id=snapshot.id,
            lifecycle=snapshot.lifecycle.value,
        )

    async def read_all_keyword_rows(self, key: SnapshotKey, snapshot_id: str) -> list[KeywordRow]:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT payload FROM keyword_rows "
                "WHERE category_id = ? AND country = ? AND language = ? AND snapshot_id = ? "
                "ORDER BY rowid",
                (*_key_params(key), snapshot_id),
            )
            records = await cursor.fetchall()
        return [KeywordRow.model_validate_json(r["payload"]) for r in records]

    async def write_keyword_rows(
        self,
        key: SnapshotKey,
        snapshot_id: str,
        rows: list[KeywordRow],
    ) -> None:
        params = _key_params(key)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute("BEGIN")
            await db.execute(_DELETE_ROWS_SQL, (*params, snapshot_id))
            await db.executemany(
                _INSERT_ROW_SQL,
                [
                    (*params, snapshot_id, r.id, r.status.value, r.model_dump_json())
                    for r in rows
                ],
            )
            await db.commit()
        logger.debug("rows_written", key=str(key), snapshot_id=snapshot_id, rows=len(rows))

    async def get_active_snapshot_id(self, key: SnapshotKey) -> str | None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT active_snapshot_id FROM corpus_index "
                "WHERE category_id = ? AND country = ? AND language = ?",
                _key_params(key),
            )
            row = await cursor.fetchone()
        return row["active_snapshot_id"] if row else None

    async def set_active_snapshot_id(self, key: SnapshotKey, snapshot_id: str) -> None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_UPSERT_INDEX_SQL, (*_key_params(key), snapshot_id))
            await db.commit()
        logger.info("active_snapshot_set", key=str(key), snapshot_id=snapshot_id)

    async def list_snapshots(self, key: SnapshotKey) -> list[Snapshot]:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT document FROM snapshots "
                "WHERE category_id = ? AND country = ? AND language = ? "
                "ORDER BY created_at DESC",
                _key_params(key),
            )
            records = await cursor.fetchall()
        return [Snapshot.model_validate_json(r["document"]) for r in records]

    def get_provider_name(self) -> str:
        return "sqlite"
