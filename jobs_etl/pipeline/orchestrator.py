"""Orchestrator: sequences spider, processor and storage into one pipeline run.

Data flow per run:
  1. Spider listing fetch (fatal on failure)
  2. Listing filter chain → agencies, locations, dates, max_records cap
  3. Split into batches of ``batch_size`` listings
  4. Per batch, up to ``max_concurrency`` batches in flight:
       detail fetch → processor.process_batch → storage.store_batch
       (→ storage.migrate_batch_to_live when requested; storage is skipped
       entirely with skip_storage)
  5. Reassemble results and the error log in listing order, finalize metrics

Pause/stop requests are only honoured at batch boundaries; in-flight batches
always run to completion.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from pydantic import BaseModel, Field

from jobs_etl.core.config import OrchestratorConfig, PipelineOptions
from jobs_etl.core.schemas import JobDetails, JobListing, ProcessedJob, ProcessFailure, ProcessSuccess
from jobs_etl.pipeline.control import ControlChannel, ControlCommand
from jobs_etl.pipeline.filters import build_listing_filters, run_filter_chain
from jobs_etl.pipeline.retry import RetryPolicy, retries_internally, retry_async, unwrap
from jobs_etl.pipeline.state import (
    FailedJobs,
    PipelineError,
    PipelineJobs,
    PipelineMetrics,
    PipelineRun,
    PipelineStage,
    PipelineStatus,
)
from jobs_etl.processor.base import JobProcessor
from jobs_etl.spider.base import JobSpider
from jobs_etl.storage.base import JobStorage

T = TypeVar("T")


class BatchResult(BaseModel):
    """Everything one batch produced, kept in listing order."""

    scraped: list[JobDetails] = Field(default_factory=list)
    processed: list[ProcessedJob] = Field(default_factory=list)
    stored: list[ProcessedJob] = Field(default_factory=list)
    failed_scraping: list[JobListing] = Field(default_factory=list)
    failed_processing: list[JobDetails] = Field(default_factory=list)
    failed_storage: list[ProcessedJob] = Field(default_factory=list)
    errors: list[PipelineError] = Field(default_factory=list)


class PipelineOrchestrator:
    """Drives one pipeline run at a time and exposes pause/resume/stop.

    Control methods must be called from the event loop running the pipeline
    (directly or via ``loop.call_soon_threadsafe``). ``get_status`` and
    ``get_metrics`` are safe from any thread.

    Usage::

        orchestrator = PipelineOrchestrator(config, spider, processor, storage)
        run = await orchestrator.run_pipeline(PipelineOptions(max_records=50))
        print(run.summary())
    """

    def __init__(
        self,
        config: OrchestratorConfig,
        spider: JobSpider,
        processor: JobProcessor,
        storage: JobStorage,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._spider = spider
        self._processor = processor
        self._storage = storage
        self._log = logger or logging.getLogger(__name__)
        self._policy = RetryPolicy(attempts=config.retry_attempts, delay_ms=config.retry_delay)
        self._status = PipelineStatus.IDLE
        self._metrics = PipelineMetrics()
        self._control = ControlChannel(config.poll_interval / 1000)
        self._active = False
        self._fatal: BaseException | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get_status(self) -> PipelineStatus:
        return self._status

    def get_metrics(self) -> PipelineMetrics:
        """Return a snapshot of the current metrics (never a live reference)."""
        return self._metrics.model_copy()

    def pause_pipeline(self) -> None:
        """Request a pause at the next batch boundary. No-op unless running."""
        if self._status is not PipelineStatus.RUNNING:
            self._log.debug("Pause ignored - pipeline is %s", self._status.value)
            return
        self._status = PipelineStatus.PAUSED
        self._control.send(ControlCommand.PAUSE)
        self._log.info("Pause requested - takes effect at the next batch boundary")

    def resume_pipeline(self) -> None:
        """Resume a paused pipeline. No-op unless paused."""
        if self._status is not PipelineStatus.PAUSED:
            self._log.debug("Resume ignored - pipeline is %s", self._status.value)
            return
        self._status = PipelineStatus.RUNNING
        self._control.send(ControlCommand.RESUME)
        self._log.info("Resume requested")

    def stop_pipeline(self) -> None:
        """Request termination at the next batch boundary. Idempotent."""
        if self._status not in (PipelineStatus.RUNNING, PipelineStatus.PAUSED):
            self._log.debug("Stop ignored - pipeline is %s", self._status.value)
            return
        self._status = PipelineStatus.STOPPED
        self._control.send(ControlCommand.STOP)
        self._log.info("Stop requested - in-flight batches will finish, no new batches start")

    async def run_pipeline(self, options: PipelineOptions | None = None) -> PipelineRun:
        """Run the pipeline end to end and return the accumulated results.

        Raises:
            RuntimeError: if a run is already active on this instance.
            Exception: the listing fetch error, or the first collaborator
                failure when ``continue_on_error`` is False.
        """
        if self._active:
            msg = "A pipeline run is already active on this orchestrator"
            raise RuntimeError(msg)

        options = options or PipelineOptions()
        self._active = True
        self._fatal = None
        self._control = ControlChannel(self._config.poll_interval / 1000)
        self._metrics = PipelineMetrics()
        self._status = PipelineStatus.RUNNING
        self._log.info(
            "Pipeline started (batch_size=%d, max_concurrency=%d, max_records=%d, scrape_only=%s, skip_storage=%s)",
            self._config.batch_size, self._config.max_concurrency,
            options.max_records, options.scrape_only, options.skip_storage,
        )

        try:
            self._metrics = self._metrics.progress(PipelineStage.LISTING)
            try:
                listings = await self._spider.get_job_listings()
            except Exception as e:
                self._record_error(PipelineStage.LISTING, e)
                self._log.error("Failed to fetch job listings: %s", e, exc_info=True)
                self._finish(PipelineStatus.FAILED)
                raise

            selected = run_filter_chain(listings, build_listing_filters(options))
            self._log.info("Listings: %d found, %d selected after filters", len(listings), len(selected))

            size = self._config.batch_size
            batches = [selected[i:i + size] for i in range(0, len(selected), size)]
            self._metrics = self._metrics.model_copy(update={"total_batches": len(batches)})
            results = await self._run_batches(batches, options)
            # Batches finish in any order; report errors in listing order.
            self._metrics = self._metrics.with_errors([e for r in results for e in r.errors])

            if self._fatal is not None:
                self._log.error("Pipeline failed: %s", self._fatal)
                self._finish(PipelineStatus.FAILED)
                raise self._fatal

            self._control.drain()
            status = PipelineStatus.STOPPED if self._control.stop_requested else PipelineStatus.COMPLETED
            self._finish(status)
            run = PipelineRun(status=status, metrics=self._metrics, jobs=_assemble(results))
            self._log.info("Pipeline %s", run.summary())
            return run
        finally:
            self._active = False

    # ------------------------------------------------------------------
    # Batch scheduling
    # ------------------------------------------------------------------

    async def _run_batches(
        self,
        batches: list[list[JobListing]],
        options: PipelineOptions,
    ) -> list[BatchResult]:
        """Dispatch batches with bounded concurrency, checking control at each boundary."""
        slots = asyncio.Semaphore(self._config.max_concurrency)
        tasks: list[asyncio.Task[BatchResult]] = []
        total = len(batches)

        for index, batch in enumerate(batches, start=1):
            await slots.acquire()
            if self._fatal is not None:
                slots.release()
                break
            if not await self._control.checkpoint():
                slots.release()
                self._log.info("Stop requested - skipping remaining %d batch(es)", total - index + 1)
                break
            # A batch may have failed fatally while we were paused.
            if self._fatal is not None:
                slots.release()
                break
            self._log.info("Starting batch %d/%d (%d listings)", index, total, len(batch))
            self._metrics = self._metrics.progress(PipelineStage.SCRAPING, batch=index)
            tasks.append(asyncio.create_task(self._guarded_batch(index, total, batch, options, slots)))

        return list(await asyncio.gather(*tasks))

    async def _guarded_batch(
        self,
        index: int,
        total: int,
        listings: list[JobListing],
        options: PipelineOptions,
        slots: asyncio.Semaphore,
    ) -> BatchResult:
        result = BatchResult()
        try:
            await self._run_batch(listings, options, result)
            self._log.info(
                "Batch %d/%d done: %d scraped, %d processed, %d stored",
                index, total, len(result.scraped), len(result.processed), len(result.stored),
            )
        except Exception as e:
            if self._fatal is None:
                self._fatal = e
            self._log.error("Batch %d/%d aborted the run: %s", index, total, e)
        finally:
            slots.release()
        return result

    async def _run_batch(
        self,
        listings: list[JobListing],
        options: PipelineOptions,
        result: BatchResult,
    ) -> None:
        """Scrape → process → store one batch, filling ``result`` as it goes.

        Raises only when ``continue_on_error`` is False.
        """
        await self._scrape_batch(listings, options, result)
        if options.scrape_only or not result.scraped:
            return
        self._metrics = self._metrics.progress(PipelineStage.PROCESSING)
        await self._process_batch(options, result)
        if options.skip_storage or not result.processed:
            return
        self._metrics = self._metrics.progress(PipelineStage.STORAGE)
        await self._store_batch(options, result)

    async def _scrape_batch(
        self,
        listings: list[JobListing],
        options: PipelineOptions,
        result: BatchResult,
    ) -> None:
        outcomes = await asyncio.gather(
            *(self._call(self._spider, self._spider.get_job_details, listing,
                         label=f"Detail fetch for job {listing.id}")
              for listing in listings),
            return_exceptions=True,
        )

        first_error: BaseException | None = None
        for listing, outcome in zip(listings, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                error = unwrap(outcome)
                result.failed_scraping.append(listing)
                self._record_error(PipelineStage.SCRAPING, error, listing.id, result)
                self._log.warning("Failed to scrape job %s (%s): %s", listing.id, listing.title, error)
                first_error = first_error or error
            else:
                result.scraped.append(outcome)

        self._metrics = self._metrics.bump(
            jobs_scraped=len(result.scraped),
            failed_scrapes=len(result.failed_scraping),
        )
        if first_error is not None and not options.continue_on_error:
            raise first_error

    async def _process_batch(self, options: PipelineOptions, result: BatchResult) -> None:
        jobs = result.scraped
        try:
            outcomes = await self._call(
                self._processor, self._processor.process_batch, jobs,
                label=f"Processing batch of {len(jobs)} jobs",
            )
        except Exception as e:
            error = unwrap(e)
            self._log.warning("Processing failed for a batch of %d jobs: %s", len(jobs), error)
            for job in jobs:
                result.failed_processing.append(job)
                self._record_error(PipelineStage.PROCESSING, error, job.id, result)
            self._metrics = self._metrics.bump(failed_processes=len(jobs))
            if not options.continue_on_error:
                raise error
            return

        by_id = {outcome.job_id: outcome for outcome in outcomes if outcome is not None}
        for job in jobs:
            outcome = by_id.get(job.id)
            if isinstance(outcome, ProcessSuccess):
                result.processed.append(outcome.job)
                continue
            reason = outcome.reason if isinstance(outcome, ProcessFailure) else "No result returned by processor"
            result.failed_processing.append(job)
            self._record_error(PipelineStage.PROCESSING, reason, job.id, result)
            self._log.warning("Failed to process job %s: %s", job.id, reason)

        self._metrics = self._metrics.bump(
            jobs_processed=len(result.processed),
            failed_processes=len(result.failed_processing),
        )

    async def _store_batch(self, options: PipelineOptions, result: BatchResult) -> None:
        jobs = result.processed
        try:
            await self._call(
                self._storage, self._storage.store_batch, jobs,
                label=f"Storing batch of {len(jobs)} jobs",
            )
        except Exception as e:
            error = unwrap(e)
            self._log.warning("Storage failed for a batch of %d jobs: %s", len(jobs), error)
            result.failed_storage.extend(jobs)
            for job in jobs:
                self._record_error(PipelineStage.STORAGE, error, job.job_id, result)
            self._metrics = self._metrics.bump(failed_storage=len(jobs))
            if not options.continue_on_error:
                raise error
            return

        result.stored.extend(jobs)
        self._metrics = self._metrics.bump(jobs_stored=len(jobs))

        if options.migrate_to_live:
            self._metrics = self._metrics.progress(PipelineStage.MIGRATION)
            try:
                await self._call(
                    self._storage, self._storage.migrate_batch_to_live, jobs,
                    label=f"Migrating batch of {len(jobs)} jobs to live",
                )
            except Exception as e:
                # Staging write succeeded, so the jobs stay stored.
                error = unwrap(e)
                self._record_error(PipelineStage.MIGRATION, error, result=result)
                self._log.error("Error migrating batch to live database: %s", error)
            else:
                self._metrics = self._metrics.bump(jobs_migrated=len(jobs))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _call(
        self,
        collaborator: Any,
        fn: Callable[..., Awaitable[T]],
        *args: Any,
        label: str,
    ) -> T:
        """Call a collaborator, adding retries unless it already retries itself."""
        if retries_internally(collaborator):
            return await fn(*args)
        return await retry_async(lambda: fn(*args), self._policy, label=label, log=self._log)

    def _record_error(
        self,
        stage: PipelineStage,
        error: BaseException | str,
        job_id: str | None = None,
        result: BatchResult | None = None,
    ) -> None:
        """Log to live metrics now; the batch copy is used to reorder at the end."""
        message = error if isinstance(error, str) else str(error) or type(error).__name__
        entry = PipelineError(stage=stage, message=message, job_id=job_id)
        self._metrics = self._metrics.with_error(entry)
        if result is not None:
            result.errors.append(entry)

    def _finish(self, status: PipelineStatus) -> None:
        self._status = status
        self._metrics = self._metrics.finished()


def _assemble(results: list[BatchResult]) -> PipelineJobs:
    """Concatenate batch results in dispatch order (= listing order)."""
    jobs = PipelineJobs(failed=FailedJobs())
    for r in results:
        jobs.scraped.extend(r.scraped)
        jobs.processed.extend(r.processed)
        jobs.stored.extend(r.stored)
        jobs.failed.scraping.extend(r.failed_scraping)
        jobs.failed.processing.extend(r.failed_processing)
        jobs.failed.storage.extend(r.failed_storage)
    return jobs
