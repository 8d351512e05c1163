"""Spider that replays recorded listings and job details from a JSON file.

Fixture format::

    {
      "listings": [{"id": "...", "title": "...", "url": "...", ...}],
      "details": {"<listing id>": {"description": "...", ...}}
    }

Detail entries hold only the fields that differ from the listing.
"""

import json
import logging
from pathlib import Path
from typing import Any

from jobs_etl.core.errors import ScrapeError
from jobs_etl.core.schemas import JobDetails, JobListing
from jobs_etl.spider.base import JobSpider

logger = logging.getLogger(__name__)


class FixtureSpider(JobSpider):
    """Serves listings and details from a fixture file instead of the live site."""

    def __init__(self, path: str | Path) -> None:
        path = Path(path)
        if not path.exists():
            msg = f"Fixture file not found: {path}"
            raise FileNotFoundError(msg)
        raw: dict[str, Any] = json.loads(path.read_text())
        self._path = path
        self._listings = [JobListing.model_validate(item) for item in raw.get("listings", [])]
        self._details: dict[str, dict[str, Any]] = raw.get("details", {})

    async def get_job_listings(self) -> list[JobListing]:
        logger.info("Loaded %d job listings from %s", len(self._listings), self._path)
        return list(self._listings)

    async def get_job_details(self, listing: JobListing) -> JobDetails:
        fields = self._details.get(listing.id)
        if fields is None:
            msg = f"No recorded details for job {listing.id}"
            raise ScrapeError(msg)
        return JobDetails.from_listing(listing, **fields)
