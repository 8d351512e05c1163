"""Abstract base class for job processors."""

from abc import ABC, abstractmethod

from jobs_etl.core.schemas import JobDetails, ProcessedJob, ProcessOutcome


class JobProcessor(ABC):
    """Turns scraped job details into fully processed jobs."""

    retries_internally: bool = False

    @abstractmethod
    async def process_job(self, job: JobDetails) -> ProcessedJob:
        """Analyze and embed one job. Raises ProcessingError on failure."""

    @abstractmethod
    async def process_batch(self, jobs: list[JobDetails]) -> list[ProcessOutcome]:
        """Process several jobs, returning one tagged outcome per input job."""
