"""Spider for the NSW Government jobs site (iworkfor.nsw.gov.au)."""

import asyncio
import logging

from patchright.async_api import Page
from patchright.async_api import TimeoutError as PlaywrightTimeoutError

from jobs_etl.browser.actions import rate_limit_pause
from jobs_etl.browser.session import BrowserSession
from jobs_etl.core.config import SpiderConfig
from jobs_etl.core.errors import ScrapeError
from jobs_etl.core.schemas import JobDetails, JobListing
from jobs_etl.pipeline.retry import RetryPolicy, retry_async, unwrap
from jobs_etl.spider.base import JobSpider
from jobs_etl.spider.parser import NswJobsParser
from jobs_etl.spider.selectors import CARD_SELECTORS, PAGE_SIZE_SELECT

logger = logging.getLogger(__name__)

_CARDS = ", ".join(CARD_SELECTORS)


class NswJobsSpider(JobSpider):
    """Scrapes listings and job pages through a shared BrowserSession.

    Page loads are retried here, so the orchestrator does not retry this
    spider a second time.
    """

    retries_internally = True

    def __init__(self, config: SpiderConfig, session: BrowserSession) -> None:
        self._config = config
        self._session = session
        self._parser = NswJobsParser(config.base_url)
        self._semaphore = asyncio.Semaphore(config.max_concurrency)
        self._policy = RetryPolicy(attempts=config.retry_attempts, delay_ms=config.retry_delay)

    async def get_job_listings(self) -> list[JobListing]:
        try:
            listings = await retry_async(self._scrape_listings, self._policy, label="Job listings scrape")
        except Exception as e:
            msg = f"Could not scrape job listings from {self._config.base_url}: {unwrap(e)}"
            raise ScrapeError(msg) from e
        logger.info("Found %d job listings", len(listings))
        return listings

    async def get_job_details(self, listing: JobListing) -> JobDetails:
        if not listing.url:
            msg = f"Listing {listing.id} has no URL"
            raise ScrapeError(msg)

        async with self._semaphore:
            try:
                details = await retry_async(
                    lambda: self._scrape_details(listing), self._policy, label=f"Job details {listing.id}",
                )
            except Exception as e:
                msg = f"Could not scrape job {listing.id} ({listing.url}): {unwrap(e)}"
                raise ScrapeError(msg) from e

        logger.info(
            "Scraped job %s: %d responsibilities, %d requirements, %d notes",
            listing.id, len(details.responsibilities), len(details.requirements), len(details.notes),
        )
        return details

    async def _scrape_listings(self) -> list[JobListing]:
        page = await self._session.new_page()
        try:
            logger.info("Loading %s", self._config.base_url)
            try:
                await page.goto(self._config.base_url, wait_until="networkidle")
            except PlaywrightTimeoutError:
                logger.warning("Initial page load timed out, trying to proceed anyway")

            await self._set_page_size(page)

            try:
                await page.wait_for_selector(_CARDS, state="visible", timeout=10000)
            except PlaywrightTimeoutError:
                logger.warning("Timeout waiting for job cards, checking if any are present")

            cards = await page.query_selector_all(_CARDS)
            if not cards:
                msg = "No job cards found on page"
                raise ScrapeError(msg)

            await rate_limit_pause()
            return await self._parser.parse_cards(cards)
        finally:
            await page.close()

    async def _set_page_size(self, page: Page) -> None:
        try:
            await page.wait_for_selector(PAGE_SIZE_SELECT, timeout=5000)
            await page.select_option(PAGE_SIZE_SELECT, str(self._config.page_size))
            await page.wait_for_load_state("networkidle")
            logger.info("Set page size to %d", self._config.page_size)
        except PlaywrightTimeoutError:
            logger.warning("Page size selector not found, continuing with default page size")

    async def _scrape_details(self, listing: JobListing) -> JobDetails:
        page = await self._session.new_page()
        try:
            await page.goto(listing.url, wait_until="networkidle")
            details = await self._parser.parse_detail(page, listing)
            await rate_limit_pause()
            return details
        finally:
            await page.close()
