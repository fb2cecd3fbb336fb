"""SQLite-backed job store.

Stores job records in a local SQLite database (default ``data/corpus.db``,
shared with the snapshot store) using ``aiosqlite``.  The full record is
kept as JSON; ``category_id``, ``status`` and ``created_at`` are broken out
into columns for the per-category listing.
"""

from __future__ import annotations

from pathlib import Path

import aiosqlite
import structlog

from src.interfaces.job_store import IJobStore
from src.models.job import Job

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/corpus.db")

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS jobs (
    job_id       TEXT PRIMARY KEY,
    category_id  TEXT NOT NULL,
    kind         TEXT NOT NULL,
    status       TEXT NOT NULL,
    document     TEXT NOT NULL,
    created_at   TEXT NOT NULL,
    updated_at   TEXT NOT NULL
);
"""

_CREATE_INDEX_SQL = """\
CREATE INDEX IF NOT EXISTS idx_jobs_category ON jobs (category_id, created_at);
"""

_UPSERT_SQL = """\
INSERT INTO jobs (job_id, category_id, kind, status, document, created_at, updated_at)
VALUES (?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(job_id)
DO UPDATE SET status     = excluded.status,
              document   = excluded.document,
              updated_at = excluded.updated_at;
"""


class SQLiteJobStore(IJobStore):
    """SQLite-backed :class:`IJobStore`."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create the jobs table if it doesn't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_CREATE_TABLE_SQL)
            await db.execute(_CREATE_INDEX_SQL)
            await db.commit()
        logger.info("job_db_initialized", path=str(self._db_path))

    async def get(self, job_id: str) -> Job | None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute("SELECT document FROM jobs WHERE job_id = ?", (job_id,))
            row = await cursor.fetchone()
        if row is None:
            return None
        return Job.model_validate_json(row["document"])

    async def save(self, job: Job) -> None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(
                _UPSERT_SQL,
                (
                    job.id,
                    job.category_id,
                    job.kind.value,
                    job.status.value,
                    job.model_dump_json(),
                    job.created_at.isoformat(),
                    job.updated_at.isoformat(),
                ),
            )
            await db.commit()

    async def list_for_category(self, category_id: str) -> list[Job]:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT document FROM jobs WHERE category_id = ? ORDER BY created_at DESC",
                (category_id,),
            )
            rows = await cursor.fetchall()
        return [Job.model_validate_json(r["document"]) for r in rows]
