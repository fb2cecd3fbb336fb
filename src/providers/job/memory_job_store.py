"""In-memory job store for tests and single-shot CLI runs."""

from __future__ import annotations

from src.interfaces.job_store import IJobStore
from src.models.job import Job


class MemoryJobStore(IJobStore):
    """Dict-backed :class:`IJobStore`."""

    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}

    async def get(self, job_id: str) -> Job | None:
        return self._jobs.get(job_id)

    async def save(self, job: Job) -> None:
        self._jobs[job.id] = job

    async def list_for_category(self, category_id: str) -> list[Job]:
        jobs = [j for j in self._jobs.values() if j.category_id == category_id]
        return sorted(jobs, key=lambda j: j.created_at, reverse=True)
