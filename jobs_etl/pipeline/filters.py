"""Listing filter chain applied before any detail fetch.

Filter order:
  1. AgencyFilter: exact, case-sensitive match on listing.agency
  2. LocationFilter: exact match on listing.location
  3. PostedDateFilter: inclusive date range on listing.posted_date
  4. MaxRecordsCap: hard cap on the surviving set (0 = unlimited)
"""

import logging
from collections.abc import Callable
from datetime import date, datetime

from jobs_etl.core.config import PipelineOptions
from jobs_etl.core.schemas import JobListing

logger = logging.getLogger(__name__)

# A filter is a callable that takes listings and returns an ordered subset.
Filter = Callable[[list[JobListing]], list[JobListing]]

_DATE_FORMATS = ("%Y-%m-%d", "%d-%b-%Y", "%d %b %Y", "%d %B %Y", "%d/%m/%Y")


def parse_posted_date(value: str) -> date | None:
    """Parse the date formats seen on the jobs board; None if unrecognised."""
    text = value.strip()
    if not text:
        return None
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        return None


class AgencyFilter:
    """Keep listings whose agency is one of the given names.

    Empty agency list is a no-op.
    """

    def __init__(self, agencies: list[str]) -> None:
        self._agencies = set(agencies)

    def __call__(self, listings: list[JobListing]) -> list[JobListing]:
        if not self._agencies:
            return listings
        result = [job for job in listings if job.agency in self._agencies]
        _log_removed("AgencyFilter", listings, result)
        return result


class LocationFilter:
    def __init__(self, locations: list[str]) -> None:
        self._locations = set(locations)

    def __call__(self, listings: list[JobListing]) -> list[JobListing]:
        if not self._locations:
            return listings
        result = [job for job in listings if job.location in self._locations]
        _log_removed("LocationFilter", listings, result)
        return result


class PostedDateFilter:
    """Keep listings posted within [start, end].

    Listings without a parseable posted date are dropped once any bound is set.
    """

    def __init__(self, start: date | None, end: date | None) -> None:
        self._start = start
        self._end = end

    def __call__(self, listings: list[JobListing]) -> list[JobListing]:
        if self._start is None and self._end is None:
            return listings
        result = [job for job in listings if self._in_range(parse_posted_date(job.posted_date))]
        _log_removed("PostedDateFilter", listings, result)
        return result

    def _in_range(self, posted: date | None) -> bool:
        if posted is None:
            return False
        if self._start is not None and posted < self._start:
            return False
        if self._end is not None and posted > self._end:
            return False
        return True


class MaxRecordsCap:
    """Truncate to the first ``max_records`` listings (0 = unlimited)."""

    def __init__(self, max_records: int) -> None:
        self._max = max_records

    def __call__(self, listings: list[JobListing]) -> list[JobListing]:
        if self._max <= 0 or len(listings) <= self._max:
            return listings
        logger.info("Capping %d listings to max_records=%d", len(listings), self._max)
        return listings[: self._max]


def build_listing_filters(options: PipelineOptions) -> list[Filter]:
    """Build the filter chain for the given run options."""
    return [
        AgencyFilter(options.agencies),
        LocationFilter(options.locations),
        PostedDateFilter(options.start_date, options.end_date),
        MaxRecordsCap(options.max_records),
    ]


def run_filter_chain(listings: list[JobListing], filters: list[Filter]) -> list[JobListing]:
    """Apply filters in order, returning the surviving listings."""
    result = listings
    for f in filters:
        result = f(result)
    return result


def _log_removed(name: str, before: list[JobListing], after: list[JobListing]) -> None:
    removed = len(before) - len(after)
    if removed:
        logger.debug("%s: removed %d listings", name, removed)
