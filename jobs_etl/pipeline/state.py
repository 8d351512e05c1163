"""Pipeline lifecycle status, metrics snapshots and run results."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from jobs_etl.core.schemas import JobDetails, JobListing, ProcessedJob


class PipelineStatus(str, Enum):
    """Lifecycle of a pipeline run.

    idle -> running -> {paused, completed, stopped, failed}; paused -> running
    or stopped. completed, stopped and failed are terminal.
    """

    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL


_TERMINAL = {PipelineStatus.COMPLETED, PipelineStatus.STOPPED, PipelineStatus.FAILED}


class PipelineStage(str, Enum):
    LISTING = "listing"
    SCRAPING = "scraping"
    PROCESSING = "processing"
    STORAGE = "storage"
    MIGRATION = "migration"


class PipelineError(BaseModel):
    """One entry in the run's error log."""

    model_config = ConfigDict(frozen=True)

    stage: PipelineStage
    message: str
    job_id: str | None = None
    timestamp: datetime = Field(default_factory=datetime.now)


class PipelineMetrics(BaseModel):
    """Immutable metrics snapshot.

    Updates go through ``bump``/``with_error``, which return a new snapshot,
    so a reader always sees a consistent set of counters.
    """

    model_config = ConfigDict(frozen=True)

    jobs_scraped: int = 0
    jobs_processed: int = 0
    jobs_stored: int = 0
    jobs_migrated: int = 0
    failed_scrapes: int = 0
    failed_processes: int = 0
    failed_storage: int = 0
    current_batch: int = 0
    total_batches: int = 0
    current_stage: PipelineStage | None = None
    start_time: datetime = Field(default_factory=datetime.now)
    end_time: datetime | None = None
    errors: tuple[PipelineError, ...] = ()

    @property
    def total_duration(self) -> float:
        """Seconds elapsed, up to end_time or now for a run still in flight."""
        end = self.end_time or datetime.now()
        return (end - self.start_time).total_seconds()

    def bump(self, **deltas: int) -> "PipelineMetrics":
        update = {name: getattr(self, name) + delta for name, delta in deltas.items()}
        return self.model_copy(update=update)

    def with_error(self, error: PipelineError) -> "PipelineMetrics":
        return self.model_copy(update={"errors": (*self.errors, error)})

    def with_errors(self, errors: list[PipelineError]) -> "PipelineMetrics":
        """Replace the error log, e.g. to put it back into listing order."""
        return self.model_copy(update={"errors": tuple(errors)})

    def progress(self, stage: PipelineStage, batch: int | None = None) -> "PipelineMetrics":
        update: dict[str, object] = {"current_stage": stage}
        if batch is not None:
            update["current_batch"] = batch
        return self.model_copy(update=update)

    def finished(self, end_time: datetime | None = None) -> "PipelineMetrics":
        return self.model_copy(update={"end_time": end_time or datetime.now()})


class FailedJobs(BaseModel):
    scraping: list[JobListing] = Field(default_factory=list)
    processing: list[JobDetails] = Field(default_factory=list)
    storage: list[ProcessedJob] = Field(default_factory=list)


class PipelineJobs(BaseModel):
    scraped: list[JobDetails] = Field(default_factory=list)
    processed: list[ProcessedJob] = Field(default_factory=list)
    stored: list[ProcessedJob] = Field(default_factory=list)
    failed: FailedJobs = Field(default_factory=FailedJobs)


class PipelineRun(BaseModel):
    """Result of one ``run_pipeline`` invocation."""

    status: PipelineStatus
    metrics: PipelineMetrics
    jobs: PipelineJobs = Field(default_factory=PipelineJobs)

    def summary(self) -> str:
        m = self.metrics
        return (
            f"{self.status.value}: {m.jobs_scraped} scraped, {m.jobs_processed} processed, "
            f"{m.jobs_stored} stored, {m.failed_scrapes + m.failed_processes + m.failed_storage} failed "
            f"(scrape {m.failed_scrapes}, process {m.failed_processes}, storage {m.failed_storage}) "
            f"in {m.total_duration:.1f}s"
        )
