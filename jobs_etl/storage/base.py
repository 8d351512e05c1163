"""Abstract base class for job storage backends."""

from abc import ABC, abstractmethod
from typing import Any

from jobs_etl.core.schemas import JobRecord, ProcessedJob


class JobStorage(ABC):
    """Persists processed jobs.

    Writes are transactional: a failed ``store_job`` leaves nothing behind for
    that job, and a failed ``store_batch`` leaves nothing behind for the whole
    batch.
    """

    retries_internally: bool = False

    @abstractmethod
    async def store_job(self, job: ProcessedJob) -> None:
        """Store one job. Raises StorageError after rolling back."""

    @abstractmethod
    async def store_batch(self, jobs: list[ProcessedJob]) -> None:
        """Store a batch atomically. Raises StorageError after rolling back."""

    @abstractmethod
    async def migrate_batch_to_live(self, jobs: list[ProcessedJob]) -> None:
        """Copy already-staged jobs to the live database."""

    @abstractmethod
    async def get_job_by_id(self, external_id: str, *, live: bool = False) -> JobRecord | None:
        """Look up one stored job."""

    @abstractmethod
    async def get_jobs_by_filter(
        self,
        filters: dict[str, Any],
        *,
        limit: int | None = None,
        offset: int = 0,
        order_by: str | None = None,
        descending: bool = False,
        live: bool = False,
    ) -> list[JobRecord]:
        """Return stored jobs whose columns equal the given values."""
