"""Tests for PipelineOrchestrator: batching, failures, control and metrics."""

import asyncio
from unittest.mock import MagicMock

import pytest

from jobs_etl.core.config import OrchestratorConfig, PipelineOptions
from jobs_etl.core.errors import ProcessingError, ScrapeError, StorageError
from jobs_etl.core.schemas import (
    CapabilityAnalysis,
    Embedding,
    EmbeddingMetadata,
    JobDetails,
    JobEmbeddings,
    JobListing,
    ProcessedJob,
    ProcessFailure,
    ProcessOutcome,
    ProcessSuccess,
    TaxonomyAnalysis,
)
from jobs_etl.pipeline.orchestrator import PipelineOrchestrator
from jobs_etl.pipeline.state import PipelineStage, PipelineStatus
from jobs_etl.processor.base import JobProcessor
from jobs_etl.spider.base import JobSpider
from jobs_etl.storage.base import JobStorage

# ---------------------------------------------------------------------------
# Builders and fakes
# ---------------------------------------------------------------------------


def _listing(i: int, agency: str = "Department of Education", posted: str = "2024-02-01") -> JobListing:
    return JobListing(
        id=f"job-{i}",
        title=f"Job {i}",
        agency=agency,
        location="Sydney",
        url=f"https://iworkfor.nsw.gov.au/job/{i}",
        posted_date=posted,
    )


def _details(listing: JobListing) -> JobDetails:
    return JobDetails.from_listing(listing, description=f"Description for {listing.title}")


def _processed(details: JobDetails) -> ProcessedJob:
    return ProcessedJob(
        job_details=details,
        capabilities=CapabilityAnalysis(),
        taxonomy=TaxonomyAnalysis(job_family="Policy"),
        embeddings=JobEmbeddings(
            job=Embedding(vector=[0.1, 0.2], metadata=EmbeddingMetadata(source=details.id, type="job")),
        ),
    )


class FakeSpider(JobSpider):
    def __init__(
        self,
        listings: list[JobListing],
        *,
        fail_ids: set[str] | None = None,
        flaky: dict[str, int] | None = None,
        delays: dict[str, float] | None = None,
        gate: asyncio.Event | None = None,
        listing_error: Exception | None = None,
    ) -> None:
        self._listings = listings
        self._fail_ids = fail_ids or set()
        self._flaky = dict(flaky or {})
        self._delays = delays or {}
        self._gate = gate
        self._listing_error = listing_error
        self.detail_calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def get_job_listings(self) -> list[JobListing]:
        if self._gate is not None:
            await self._gate.wait()
        if self._listing_error is not None:
            raise self._listing_error
        return list(self._listings)

    async def get_job_details(self, listing: JobListing) -> JobDetails:
        self.detail_calls.append(listing.id)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self._delays.get(listing.id, 0))
            if listing.id in self._fail_ids:
                msg = f"Page not found for {listing.id}"
                raise ScrapeError(msg)
            if self._flaky.get(listing.id, 0) > 0:
                self._flaky[listing.id] -= 1
                msg = f"Timeout loading {listing.id}"
                raise ScrapeError(msg)
            return _details(listing)
        finally:
            self.in_flight -= 1


class FakeProcessor(JobProcessor):
    def __init__(
        self,
        *,
        fail_ids: set[str] | None = None,
        batch_error: Exception | None = None,
        return_none: bool = False,
    ) -> None:
        self._fail_ids = fail_ids or set()
        self._batch_error = batch_error
        self._return_none = return_none
        self.batches: list[list[str]] = []

    async def process_job(self, job: JobDetails) -> ProcessedJob:
        return _processed(job)

    async def process_batch(self, jobs: list[JobDetails]) -> list[ProcessOutcome]:
        self.batches.append([j.id for j in jobs])
        if self._batch_error is not None:
            raise self._batch_error
        if self._return_none:
            return [None]  # type: ignore[list-item]
        outcomes: list[ProcessOutcome] = []
        for job in jobs:
            if job.id in self._fail_ids:
                outcomes.append(ProcessFailure(job_id=job.id, reason="LLM returned invalid JSON"))
            else:
                outcomes.append(ProcessSuccess(job_id=job.id, job=_processed(job)))
        return outcomes


class FakeStorage(JobStorage):
    def __init__(
        self,
        *,
        store_error: Exception | None = None,
        migrate_error: Exception | None = None,
        fail_ids: set[str] | None = None,
    ) -> None:
        self._store_error = store_error
        self._fail_ids = fail_ids or set()
        self._migrate_error = migrate_error
        self.stored: list[str] = []
        self.migrated: list[str] = []
        self.store_calls = 0

    async def store_job(self, job: ProcessedJob) -> None:
        self.stored.append(job.job_id)

    async def store_batch(self, jobs: list[ProcessedJob]) -> None:
        self.store_calls += 1
        if self._store_error is not None:
            raise self._store_error
        if any(j.job_id in self._fail_ids for j in jobs):
            msg = "UNIQUE constraint failed: jobs.external_id"
            raise StorageError(msg)
        self.stored.extend(j.job_id for j in jobs)

    async def migrate_batch_to_live(self, jobs: list[ProcessedJob]) -> None:
        if self._migrate_error is not None:
            raise self._migrate_error
        self.migrated.extend(j.job_id for j in jobs)

    async def get_job_by_id(self, external_id, *, live=False):  # type: ignore[no-untyped-def]
        return None

    async def get_jobs_by_filter(self, filters, **kwargs):  # type: ignore[no-untyped-def]
        return []


def _config(**overrides: int) -> OrchestratorConfig:
    defaults = {"batch_size": 2, "max_concurrency": 2, "retry_attempts": 3, "retry_delay": 0}
    defaults.update(overrides)
    return OrchestratorConfig(**defaults)


def _orchestrator(
    spider: JobSpider,
    processor: JobProcessor | None = None,
    storage: JobStorage | None = None,
    logger: MagicMock | None = None,
    **config: int,
) -> PipelineOrchestrator:
    return PipelineOrchestrator(
        _config(**config),
        spider,
        processor or FakeProcessor(),
        storage or FakeStorage(),
        logger=logger,
    )


def _ids(jobs: list) -> list[str]:  # type: ignore[type-arg]
    return [j.id if hasattr(j, "id") else j.job_id for j in jobs]


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------


class TestSuccessfulRun:
    async def test_all_jobs_flow_through(self) -> None:
        listings = [_listing(i) for i in range(3)]
        storage = FakeStorage()
        orch = _orchestrator(FakeSpider(listings), storage=storage)

        run = await orch.run_pipeline(PipelineOptions())

        assert run.status is PipelineStatus.COMPLETED
        assert orch.get_status() is PipelineStatus.COMPLETED
        assert run.metrics.jobs_scraped == 3
        assert run.metrics.jobs_processed == 3
        assert run.metrics.jobs_stored == 3
        assert run.metrics.errors == ()
        assert _ids(run.jobs.stored) == ["job-0", "job-1", "job-2"]
        assert storage.stored == ["job-0", "job-1", "job-2"]

    async def test_metrics_have_end_time_and_duration(self) -> None:
        orch = _orchestrator(FakeSpider([_listing(1)]))
        run = await orch.run_pipeline()

        assert run.metrics.end_time is not None
        assert run.metrics.end_time >= run.metrics.start_time
        assert run.metrics.total_duration >= 0

    async def test_batches_follow_batch_size(self) -> None:
        processor = FakeProcessor()
        orch = _orchestrator(FakeSpider([_listing(i) for i in range(5)]), processor, batch_size=2)
        await orch.run_pipeline()

        assert sorted(len(b) for b in processor.batches) == [1, 2, 2]

    async def test_no_listings_completes_empty(self) -> None:
        processor = FakeProcessor()
        orch = _orchestrator(FakeSpider([]), processor)
        run = await orch.run_pipeline()

        assert run.status is PipelineStatus.COMPLETED
        assert run.metrics.jobs_scraped == 0
        assert processor.batches == []

    async def test_results_keep_listing_order_under_concurrency(self) -> None:
        listings = [_listing(i) for i in range(4)]
        # Later listings finish first.
        delays = {"job-0": 0.04, "job-1": 0.03, "job-2": 0.02, "job-3": 0.0}
        orch = _orchestrator(FakeSpider(listings, delays=delays), batch_size=1, max_concurrency=4)

        run = await orch.run_pipeline()

        assert _ids(run.jobs.scraped) == ["job-0", "job-1", "job-2", "job-3"]
        assert _ids(run.jobs.stored) == ["job-0", "job-1", "job-2", "job-3"]

    async def test_concurrency_is_bounded(self) -> None:
        listings = [_listing(i) for i in range(6)]
        spider = FakeSpider(listings, delays={listing.id: 0.01 for listing in listings})
        orch = _orchestrator(spider, batch_size=1, max_concurrency=2)

        await orch.run_pipeline()

        assert spider.max_in_flight <= 2
        assert len(spider.detail_calls) == 6


# ---------------------------------------------------------------------------
# Listing fetch failure
# ---------------------------------------------------------------------------


class TestListingFailure:
    async def test_listing_error_is_reraised_and_logged(self) -> None:
        logger = MagicMock()
        spider = FakeSpider([], listing_error=ScrapeError("Site unavailable"))
        orch = _orchestrator(spider, logger=logger)

        with pytest.raises(ScrapeError, match="Site unavailable"):
            await orch.run_pipeline()

        assert logger.error.called
        assert orch.get_status() is PipelineStatus.FAILED

    async def test_listing_error_recorded_in_metrics(self) -> None:
        spider = FakeSpider([], listing_error=ScrapeError("Site unavailable"))
        orch = _orchestrator(spider)

        with pytest.raises(ScrapeError):
            await orch.run_pipeline()

        metrics = orch.get_metrics()
        assert metrics.end_time is not None
        assert metrics.errors[0].stage is PipelineStage.LISTING
        assert "Site unavailable" in metrics.errors[0].message

    async def test_can_run_again_after_failure(self) -> None:
        spider = FakeSpider([_listing(1)], listing_error=ScrapeError("down"))
        orch = _orchestrator(spider)
        with pytest.raises(ScrapeError):
            await orch.run_pipeline()

        spider._listing_error = None
        run = await orch.run_pipeline()
        assert run.status is PipelineStatus.COMPLETED
        assert run.metrics.errors == ()


# ---------------------------------------------------------------------------
# Per-job and per-batch failures
# ---------------------------------------------------------------------------


class TestScrapeFailures:
    async def test_failed_detail_is_isolated(self) -> None:
        listings = [_listing(i) for i in range(3)]
        orch = _orchestrator(FakeSpider(listings, fail_ids={"job-1"}), batch_size=1)

        run = await orch.run_pipeline()

        assert run.status is PipelineStatus.COMPLETED
        assert _ids(run.jobs.stored) == ["job-0", "job-2"]
        assert _ids(run.jobs.failed.scraping) == ["job-1"]
        assert run.metrics.failed_scrapes == 1
        assert run.metrics.errors[0].stage is PipelineStage.SCRAPING
        assert run.metrics.errors[0].job_id == "job-1"

    async def test_failed_detail_shrinks_its_batch(self) -> None:
        processor = FakeProcessor()
        listings = [_listing(i) for i in range(2)]
        orch = _orchestrator(FakeSpider(listings, fail_ids={"job-0"}), processor, batch_size=2)

        await orch.run_pipeline()

        assert processor.batches == [["job-1"]]

    async def test_whole_batch_failing_skips_processing(self) -> None:
        processor = FakeProcessor()
        orch = _orchestrator(FakeSpider([_listing(0)], fail_ids={"job-0"}), processor)

        run = await orch.run_pipeline()

        assert processor.batches == []
        assert run.metrics.jobs_scraped == 0

    async def test_detail_fetch_is_retried(self) -> None:
        spider = FakeSpider([_listing(0)], flaky={"job-0": 2})
        orch = _orchestrator(spider, retry_attempts=3)

        run = await orch.run_pipeline()

        assert spider.detail_calls == ["job-0", "job-0", "job-0"]
        assert run.metrics.jobs_scraped == 1
        assert run.metrics.errors == ()

    async def test_retries_exhausted_records_original_error(self) -> None:
        spider = FakeSpider([_listing(0)], fail_ids={"job-0"})
        orch = _orchestrator(spider, retry_attempts=2)

        run = await orch.run_pipeline()

        assert len(spider.detail_calls) == 2
        assert run.metrics.errors[0].message == "Page not found for job-0"

    async def test_zero_retry_attempts_means_single_try(self) -> None:
        spider = FakeSpider([_listing(0)], fail_ids={"job-0"})
        orch = _orchestrator(spider, retry_attempts=0)

        await orch.run_pipeline()

        assert spider.detail_calls == ["job-0"]

    async def test_self_retrying_spider_is_not_wrapped(self) -> None:
        spider = FakeSpider([_listing(0)], fail_ids={"job-0"})
        spider.retries_internally = True
        orch = _orchestrator(spider, retry_attempts=3)

        await orch.run_pipeline()

        assert spider.detail_calls == ["job-0"]


class TestProcessingFailures:
    async def test_missing_outcome_counts_as_failure(self) -> None:
        storage = FakeStorage()
        orch = _orchestrator(FakeSpider([_listing(0)]), FakeProcessor(return_none=True), storage)

        run = await orch.run_pipeline()

        assert run.status is PipelineStatus.COMPLETED
        assert run.metrics.failed_processes == 1
        assert run.metrics.jobs_processed == 0
        assert run.metrics.errors[0].message == "No result returned by processor"
        assert storage.store_calls == 0

    async def test_failure_outcome_keeps_reason(self) -> None:
        listings = [_listing(0), _listing(1)]
        orch = _orchestrator(FakeSpider(listings), FakeProcessor(fail_ids={"job-1"}))

        run = await orch.run_pipeline()

        assert _ids(run.jobs.processed) == ["job-0"]
        assert _ids(run.jobs.failed.processing) == ["job-1"]
        assert run.metrics.errors[0].stage is PipelineStage.PROCESSING
        assert run.metrics.errors[0].message == "LLM returned invalid JSON"

    async def test_raised_batch_error_fails_every_job_in_batch(self) -> None:
        listings = [_listing(0), _listing(1)]
        processor = FakeProcessor(batch_error=ProcessingError("quota exceeded"))
        orch = _orchestrator(FakeSpider(listings), processor, retry_attempts=1)

        run = await orch.run_pipeline()

        assert run.status is PipelineStatus.COMPLETED
        assert run.metrics.failed_processes == 2
        assert [e.job_id for e in run.metrics.errors] == ["job-0", "job-1"]


class TestStorageFailures:
    async def test_storage_error_keeps_run_completed(self) -> None:
        listings = [_listing(0), _listing(1)]
        storage = FakeStorage(store_error=StorageError("disk I/O error"))
        orch = _orchestrator(FakeSpider(listings), storage=storage, retry_attempts=1)

        run = await orch.run_pipeline()

        assert run.status is PipelineStatus.COMPLETED
        assert run.metrics.jobs_processed == 2
        assert run.metrics.jobs_stored == 0
        assert run.metrics.failed_storage == 2
        assert _ids(run.jobs.failed.storage) == ["job-0", "job-1"]
        assert all(e.stage is PipelineStage.STORAGE for e in run.metrics.errors)

    async def test_storage_is_retried(self) -> None:
        storage = FakeStorage(store_error=StorageError("locked"))
        orch = _orchestrator(FakeSpider([_listing(0)]), storage=storage, retry_attempts=3)

        await orch.run_pipeline()

        assert storage.store_calls == 3


class TestStopOnError:
    async def test_scrape_failure_is_fatal(self) -> None:
        spider = FakeSpider([_listing(0), _listing(1)], fail_ids={"job-0"})
        orch = _orchestrator(spider, retry_attempts=1)

        with pytest.raises(ScrapeError):
            await orch.run_pipeline(PipelineOptions(continue_on_error=False))

        assert orch.get_status() is PipelineStatus.FAILED
        assert orch.get_metrics().failed_scrapes == 1

    async def test_storage_failure_is_fatal(self) -> None:
        storage = FakeStorage(store_error=StorageError("disk full"))
        orch = _orchestrator(FakeSpider([_listing(0)]), storage=storage, retry_attempts=1)

        with pytest.raises(StorageError, match="disk full"):
            await orch.run_pipeline(PipelineOptions(continue_on_error=False))

        assert orch.get_status() is PipelineStatus.FAILED

    async def test_no_new_batches_after_fatal_error(self) -> None:
        listings = [_listing(i) for i in range(4)]
        spider = FakeSpider(listings, fail_ids={"job-0"})
        orch = _orchestrator(spider, batch_size=1, max_concurrency=1, retry_attempts=1)

        with pytest.raises(ScrapeError):
            await orch.run_pipeline(PipelineOptions(continue_on_error=False))

        assert spider.detail_calls == ["job-0"]


# ---------------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------------


class TestOptions:
    async def test_agency_filter_limits_detail_fetches(self) -> None:
        listings = [_listing(0, agency="Dept A"), _listing(1, agency="Dept B"), _listing(2, agency="Dept A")]
        spider = FakeSpider(listings)
        orch = _orchestrator(spider)

        run = await orch.run_pipeline(PipelineOptions(agencies=["Dept A"]))

        assert sorted(spider.detail_calls) == ["job-0", "job-2"]
        assert run.metrics.jobs_scraped == 2

    async def test_max_records_caps_detail_fetches(self) -> None:
        spider = FakeSpider([_listing(i) for i in range(10)])
        orch = _orchestrator(spider)

        run = await orch.run_pipeline(PipelineOptions(max_records=3))

        assert len(spider.detail_calls) <= 3
        assert run.metrics.jobs_scraped == 3

    async def test_date_range_filter(self) -> None:
        listings = [_listing(0, posted="2024-01-10"), _listing(1, posted="2024-02-10")]
        spider = FakeSpider(listings)
        orch = _orchestrator(spider)

        await orch.run_pipeline(PipelineOptions(start_date="2024-02-01", end_date="2024-02-28"))

        assert spider.detail_calls == ["job-1"]

    async def test_scrape_only_skips_processing_and_storage(self) -> None:
        processor = FakeProcessor()
        storage = FakeStorage()
        orch = _orchestrator(FakeSpider([_listing(0), _listing(1)]), processor, storage)

        run = await orch.run_pipeline(PipelineOptions(scrape_only=True))

        assert run.status is PipelineStatus.COMPLETED
        assert run.metrics.jobs_scraped == 2
        assert processor.batches == []
        assert storage.store_calls == 0

    async def test_migrate_to_live(self) -> None:
        storage = FakeStorage()
        orch = _orchestrator(FakeSpider([_listing(0), _listing(1)]), storage=storage)

        run = await orch.run_pipeline(PipelineOptions(migrate_to_live=True))

        assert storage.migrated == ["job-0", "job-1"]
        assert run.metrics.jobs_migrated == 2

    async def test_migration_failure_is_not_fatal(self) -> None:
        storage = FakeStorage(migrate_error=StorageError("live db locked"))
        orch = _orchestrator(FakeSpider([_listing(0)]), storage=storage, retry_attempts=1)

        run = await orch.run_pipeline(PipelineOptions(migrate_to_live=True, continue_on_error=False))

        assert run.status is PipelineStatus.COMPLETED
        assert run.metrics.jobs_stored == 1
        assert run.metrics.jobs_migrated == 0
        assert run.metrics.errors[0].stage is PipelineStage.MIGRATION


# ---------------------------------------------------------------------------
# Control: pause / resume / stop
# ---------------------------------------------------------------------------


class TestControl:
    async def test_stop_before_first_batch(self) -> None:
        gate = asyncio.Event()
        spider = FakeSpider([_listing(0), _listing(1)], gate=gate)
        orch = _orchestrator(spider)

        task = asyncio.create_task(orch.run_pipeline())
        await asyncio.sleep(0)
        orch.stop_pipeline()
        assert orch.get_status() is PipelineStatus.STOPPED
        orch.stop_pipeline()
        gate.set()
        run = await task

        assert run.status is PipelineStatus.STOPPED
        assert run.jobs.scraped == []
        assert spider.detail_calls == []

    async def test_stop_is_idempotent_after_run(self) -> None:
        orch = _orchestrator(FakeSpider([_listing(0)]))
        await orch.run_pipeline()

        orch.stop_pipeline()

        assert orch.get_status() is PipelineStatus.COMPLETED

    async def test_pause_then_resume_completes(self) -> None:
        gate = asyncio.Event()
        spider = FakeSpider([_listing(0), _listing(1)], gate=gate)
        orch = _orchestrator(spider)

        task = asyncio.create_task(orch.run_pipeline())
        await asyncio.sleep(0)
        orch.pause_pipeline()
        assert orch.get_status() is PipelineStatus.PAUSED
        gate.set()
        for _ in range(5):
            await asyncio.sleep(0)
        assert not task.done()
        assert spider.detail_calls == []

        orch.resume_pipeline()
        assert orch.get_status() is PipelineStatus.RUNNING
        run = await task

        assert run.status is PipelineStatus.COMPLETED
        assert run.metrics.jobs_scraped == 2

    async def test_stop_while_paused(self) -> None:
        gate = asyncio.Event()
        spider = FakeSpider([_listing(0)], gate=gate)
        orch = _orchestrator(spider)

        task = asyncio.create_task(orch.run_pipeline())
        await asyncio.sleep(0)
        orch.pause_pipeline()
        gate.set()
        await asyncio.sleep(0)
        orch.stop_pipeline()
        run = await task

        assert run.status is PipelineStatus.STOPPED
        assert spider.detail_calls == []

    async def test_control_ignored_when_idle(self) -> None:
        orch = _orchestrator(FakeSpider([]))

        orch.pause_pipeline()
        orch.resume_pipeline()
        orch.stop_pipeline()

        assert orch.get_status() is PipelineStatus.IDLE

    async def test_second_concurrent_run_rejected(self) -> None:
        gate = asyncio.Event()
        orch = _orchestrator(FakeSpider([_listing(0)], gate=gate))

        task = asyncio.create_task(orch.run_pipeline())
        await asyncio.sleep(0)
        with pytest.raises(RuntimeError, match="already active"):
            await orch.run_pipeline()
        gate.set()
        run = await task

        assert run.status is PipelineStatus.COMPLETED

    async def test_metrics_snapshot_is_detached(self) -> None:
        orch = _orchestrator(FakeSpider([_listing(0)]))
        before = orch.get_metrics()

        await orch.run_pipeline()

        assert before.jobs_scraped == 0
        assert orch.get_metrics().jobs_scraped == 1


# ---------------------------------------------------------------------------
# Mixed outcomes across batches
# ---------------------------------------------------------------------------


class TestMixedBatches:
    async def test_failed_batch_does_not_block_others(self) -> None:
        listings = [_listing(i) for i in range(3)]
        storage = FakeStorage()
        orch = _orchestrator(FakeSpider(listings, fail_ids={"job-1"}), storage=storage, batch_size=1)

        run = await orch.run_pipeline()

        assert run.status is PipelineStatus.COMPLETED
        assert _ids(run.jobs.stored) == ["job-0", "job-2"]
        assert storage.stored == ["job-0", "job-2"]

    async def test_storage_failure_in_one_batch_only(self) -> None:
        listings = [_listing(i) for i in range(4)]
        storage = FakeStorage(fail_ids={"job-2"})
        orch = _orchestrator(FakeSpider(listings), storage=storage, batch_size=2, retry_attempts=1)

        run = await orch.run_pipeline()

        assert run.status is PipelineStatus.COMPLETED
        assert _ids(run.jobs.stored) == ["job-0", "job-1"]
        assert _ids(run.jobs.failed.storage) == ["job-2", "job-3"]
        assert run.metrics.jobs_stored == 2
        assert run.metrics.failed_storage == 2
        assert [e.job_id for e in run.metrics.errors] == ["job-2", "job-3"]

    async def test_every_job_accounted_for(self) -> None:
        listings = [_listing(i) for i in range(6)]
        spider = FakeSpider(listings, fail_ids={"job-0"})
        processor = FakeProcessor(fail_ids={"job-2"})
        storage = FakeStorage(fail_ids={"job-4"})
        orch = _orchestrator(spider, processor, storage, batch_size=2, retry_attempts=1)

        run = await orch.run_pipeline()
        jobs, m = run.jobs, run.metrics

        assert len(listings) == len(jobs.scraped) + len(jobs.failed.scraping)
        assert len(jobs.scraped) == len(jobs.processed) + len(jobs.failed.processing)
        assert len(jobs.processed) == len(jobs.stored) + len(jobs.failed.storage)
        assert _ids(jobs.stored) == ["job-1", "job-3"]
        assert (m.jobs_scraped, m.jobs_processed, m.jobs_stored) == (5, 4, 2)
        assert (m.failed_scrapes, m.failed_processes, m.failed_storage) == (1, 1, 2)

    async def test_error_log_follows_listing_order(self) -> None:
        listings = [_listing(0), _listing(1)]
        spider = FakeSpider(listings, fail_ids={"job-0", "job-1"}, delays={"job-0": 0.05})
        orch = _orchestrator(spider, batch_size=1, max_concurrency=2, retry_attempts=1)

        run = await orch.run_pipeline()

        assert _ids(run.jobs.failed.scraping) == ["job-0", "job-1"]
        assert [e.job_id for e in run.metrics.errors] == ["job-0", "job-1"]
        assert [e.job_id for e in orch.get_metrics().errors] == ["job-0", "job-1"]


# ---------------------------------------------------------------------------
# Progress and storage skipping
# ---------------------------------------------------------------------------


class SnapshotProcessor(FakeProcessor):
    """Records the orchestrator's metrics each time a batch reaches processing."""

    def __init__(self) -> None:
        super().__init__()
        self.orchestrator: PipelineOrchestrator | None = None
        self.snapshots: list = []  # type: ignore[type-arg]

    async def process_batch(self, jobs: list[JobDetails]) -> list[ProcessOutcome]:
        assert self.orchestrator is not None
        self.snapshots.append(self.orchestrator.get_metrics())
        return await super().process_batch(jobs)


class TestProgress:
    async def test_batch_progress_visible_mid_run(self) -> None:
        processor = SnapshotProcessor()
        orch = _orchestrator(FakeSpider([_listing(0), _listing(1)]), processor, batch_size=1, max_concurrency=1)
        processor.orchestrator = orch

        await orch.run_pipeline()

        assert [(s.current_batch, s.total_batches) for s in processor.snapshots] == [(1, 2), (2, 2)]
        assert all(s.current_stage is PipelineStage.PROCESSING for s in processor.snapshots)

    async def test_final_progress(self) -> None:
        orch = _orchestrator(FakeSpider([_listing(i) for i in range(5)]), batch_size=2, max_concurrency=1)

        run = await orch.run_pipeline(PipelineOptions(migrate_to_live=True))

        assert run.metrics.total_batches == 3
        assert run.metrics.current_batch == 3
        assert run.metrics.current_stage is PipelineStage.MIGRATION

    async def test_listing_stage_before_batches(self) -> None:
        gate = asyncio.Event()
        orch = _orchestrator(FakeSpider([_listing(0)], gate=gate))

        task = asyncio.create_task(orch.run_pipeline())
        await asyncio.sleep(0)
        assert orch.get_metrics().current_stage is PipelineStage.LISTING
        assert orch.get_metrics().total_batches == 0
        gate.set()
        await task


class TestSkipStorage:
    async def test_processes_without_storing(self) -> None:
        storage = FakeStorage()
        orch = _orchestrator(FakeSpider([_listing(0), _listing(1)]), storage=storage)

        run = await orch.run_pipeline(PipelineOptions(skip_storage=True, migrate_to_live=True))

        assert run.status is PipelineStatus.COMPLETED
        assert run.metrics.jobs_processed == 2
        assert run.metrics.jobs_stored == 0
        assert storage.store_calls == 0
        assert storage.migrated == []
        assert run.jobs.failed.storage == []


# ---------------------------------------------------------------------------
# Pause after work has started
# ---------------------------------------------------------------------------


class TestPauseMidRun:
    async def test_pause_after_first_batch_matches_uninterrupted_run(self) -> None:
        listings = [_listing(i) for i in range(3)]
        baseline = await _orchestrator(FakeSpider(listings), batch_size=1, max_concurrency=1).run_pipeline()

        spider = FakeSpider(listings, delays={"job-0": 0.02})
        orch = _orchestrator(spider, batch_size=1, max_concurrency=1)
        task = asyncio.create_task(orch.run_pipeline())
        while not spider.detail_calls:
            await asyncio.sleep(0)

        orch.pause_pipeline()
        await asyncio.sleep(0.05)
        assert spider.detail_calls == ["job-0"]
        assert not task.done()
        assert orch.get_metrics().jobs_stored == 1

        orch.resume_pipeline()
        run = await task

        assert run.status is PipelineStatus.COMPLETED
        assert _ids(run.jobs.stored) == _ids(baseline.jobs.stored) == ["job-0", "job-1", "job-2"]
