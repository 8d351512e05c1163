"""Job processor: LLM analysis plus embeddings, with per-job retry."""

import asyncio
import logging

from pydantic import BaseModel

from jobs_etl.core.config import ProcessorConfig
from jobs_etl.core.errors import ProcessingError
from jobs_etl.core.schemas import (
    JobDetails,
    ProcessedJob,
    ProcessFailure,
    ProcessingMetadata,
    ProcessOutcome,
    ProcessSuccess,
)
from jobs_etl.llm import get_provider
from jobs_etl.pipeline.retry import RetryPolicy, retry_async, unwrap
from jobs_etl.processor.analyzer import JobAnalyzer
from jobs_etl.processor.base import JobProcessor
from jobs_etl.processor.embeddings import EmbeddingService

logger = logging.getLogger(__name__)


class ProcessorStats(BaseModel):
    """Running totals across every batch handled by one ProcessorService."""

    processed: int = 0
    failed: int = 0
    batches: int = 0


class ProcessorService(JobProcessor):
    """Analyzes and embeds jobs.

    Each job is retried on its own, so the orchestrator does not wrap calls
    to this processor in a second retry layer.
    """

    retries_internally = True

    def __init__(
        self,
        config: ProcessorConfig,
        analyzer: JobAnalyzer | None = None,
        embeddings: EmbeddingService | None = None,
    ) -> None:
        self._config = config
        self._analyzer = analyzer or JobAnalyzer(get_provider(config.llm_provider), config.llm_model)
        self._embeddings = embeddings or EmbeddingService(config.embedding_model, config.max_embedding_chars)
        self._policy = RetryPolicy(attempts=config.max_retries, delay_ms=config.retry_delay)
        self.stats = ProcessorStats()

    async def process_job(self, job: JobDetails) -> ProcessedJob:
        try:
            return await retry_async(lambda: self._process_once(job), self._policy, label=f"Processing job {job.id}")
        except Exception as e:
            cause = unwrap(e)
            stage = cause.stage if isinstance(cause, ProcessingError) else "analysis"
            msg = f"Processing failed for job {job.id}: {cause}"
            raise ProcessingError(msg, job_id=job.id, stage=stage) from e

    async def process_batch(self, jobs: list[JobDetails]) -> list[ProcessOutcome]:
        """Process ``jobs`` in chunks of ``batch_size``, concurrently within a chunk."""
        size = self._config.batch_size
        results: list[ProcessedJob | BaseException] = []
        for start in range(0, len(jobs), size):
            chunk = jobs[start:start + size]
            results.extend(await asyncio.gather(*(self.process_job(job) for job in chunk), return_exceptions=True))

        outcomes: list[ProcessOutcome] = []
        for job, result in zip(jobs, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                logger.warning("Job %s failed processing: %s", job.id, result)
                outcomes.append(ProcessFailure(job_id=job.id, reason=str(result)))
            else:
                outcomes.append(ProcessSuccess(job_id=job.id, job=result))

        succeeded = sum(1 for o in outcomes if isinstance(o, ProcessSuccess))
        self.stats = self.stats.model_copy(
            update={
                "processed": self.stats.processed + succeeded,
                "failed": self.stats.failed + len(outcomes) - succeeded,
                "batches": self.stats.batches + 1,
            }
        )
        logger.info("Processed batch: %d/%d succeeded", succeeded, len(jobs))
        return outcomes

    async def _process_once(self, job: JobDetails) -> ProcessedJob:
        capabilities = await asyncio.to_thread(self._analyzer.analyze_capabilities, job)
        taxonomy = await asyncio.to_thread(self._analyzer.analyze_taxonomy, job)
        embeddings = await asyncio.to_thread(self._embeddings.generate, job, capabilities, taxonomy)
        return ProcessedJob(
            job_details=job,
            capabilities=capabilities,
            taxonomy=taxonomy,
            embeddings=embeddings,
            metadata=ProcessingMetadata(version=self._config.version),
        )
