"""SQLite-backed storage with separate staging and live databases."""

import logging
import sqlite3
from types import TracebackType
from typing import Any

from jobs_etl.core.config import StorageConfig
from jobs_etl.core.errors import StorageError
from jobs_etl.core.schemas import JobRecord, ProcessedJob
from jobs_etl.storage.base import JobStorage
from jobs_etl.storage.db import fetch_job, fetch_jobs, init_db, write_job

logger = logging.getLogger(__name__)


class StorageService(JobStorage):
    """Writes processed jobs to staging, and optionally on to live.

    Usage::

        with StorageService(StorageConfig()) as storage:
            await storage.store_batch(jobs)
            await storage.migrate_batch_to_live(jobs)
    """

    def __init__(self, config: StorageConfig) -> None:
        self._config = config
        self._staging = init_db(config.staging_path)
        self._live = init_db(config.live_path)
        logger.info("Storage ready (staging=%s, live=%s)", config.staging_path, config.live_path)

    def __enter__(self) -> "StorageService":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        self._staging.close()
        self._live.close()

    async def store_job(self, job: ProcessedJob) -> None:
        self._write(self._staging, [job], "staging")
        logger.debug("Stored job %s", job.job_id)

    async def store_batch(self, jobs: list[ProcessedJob]) -> None:
        if not jobs:
            return
        self._write(self._staging, jobs, "staging")
        logger.info("Stored batch of %d jobs in staging", len(jobs))

    async def migrate_batch_to_live(self, jobs: list[ProcessedJob]) -> None:
        if not jobs:
            return
        self._write(self._live, jobs, "live")
        logger.info("Migrated %d jobs to live", len(jobs))

    async def get_job_by_id(self, external_id: str, *, live: bool = False) -> JobRecord | None:
        return fetch_job(self._conn(live), external_id)

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
        return fetch_jobs(
            self._conn(live), filters,
            limit=limit, offset=offset, order_by=order_by, descending=descending,
        )

    def _conn(self, live: bool) -> sqlite3.Connection:
        return self._live if live else self._staging

    def _write(self, conn: sqlite3.Connection, jobs: list[ProcessedJob], target: str) -> None:
        """Write all jobs in one transaction; roll back everything on error."""
        try:
            with conn:
                for job in jobs:
                    write_job(conn, job)
        except sqlite3.Error as e:
            ids = ", ".join(job.job_id for job in jobs)
            logger.error("Rolled back %s write of %d job(s) [%s]: %s", target, len(jobs), ids, e)
            msg = f"Failed to store {len(jobs)} job(s) in {target}: {e}"
            raise StorageError(msg) from e
