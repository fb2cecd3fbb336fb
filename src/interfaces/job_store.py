"""Abstract base class for job record persistence.

The job store is deliberately dumb: it saves and loads :class:`Job`
records.  All lifecycle rules (single active job per category, finalize
exactly once, zombie reaping) live in
:class:`~src.pipeline.job_control.JobControlRegister` so every backend
behaves identically.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.job import Job


class IJobStore(ABC):
    """Contract for job persistence backends."""

    @abstractmethod
    async def get(self, job_id: str) -> Job | None:
        """Return the job record, or ``None`` if unknown."""

    @abstractmethod
    async def save(self, job: Job) -> None:
        """Insert or replace the job record."""

    @abstractmethod
    async def list_for_category(self, category_id: str) -> list[Job]:
        """Return every job for the category, newest ``created_at`` first."""
