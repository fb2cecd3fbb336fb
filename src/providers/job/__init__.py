"""Job store providers (in-memory and aiosqlite)."""

from src.providers.job.memory_job_store import MemoryJobStore
from src.providers.job.sqlite_job_store import SQLiteJobStore

__all__ = ["MemoryJobStore", "SQLiteJobStore"]
