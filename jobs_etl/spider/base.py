"""Abstract base class for job spiders."""

from abc import ABC, abstractmethod

from jobs_etl.core.schemas import JobDetails, JobListing


class JobSpider(ABC):
    """Base class that every spider must implement.

    Set ``retries_internally = True`` on spiders that already retry their own
    page loads, so the orchestrator does not stack a second retry layer.
    """

    retries_internally: bool = False

    @abstractmethod
    async def get_job_listings(self) -> list[JobListing]:
        """Return every listing currently published. Raises on total unavailability."""

    @abstractmethod
    async def get_job_details(self, listing: JobListing) -> JobDetails:
        """Fetch the full job page for one listing. Raises on failure."""
