"""LLM-based capability and taxonomy analysis of job details."""

import logging

from pydantic import ValidationError

from jobs_etl.core.errors import ProcessingError
from jobs_etl.core.schemas import CapabilityAnalysis, JobDetails, TaxonomyAnalysis
from jobs_etl.llm import LLMProvider, parse_json_response

logger = logging.getLogger(__name__)

CAPABILITY_PROMPT = (
    "You analyze NSW Government job advertisements against the NSW Public Sector "
    "Capability Framework.\n\n"
    "Return ONLY a JSON object (no markdown, no explanation) with these fields:\n"
    "- capabilities (list): each with name (string), level (one of "
    '"foundational", "intermediate", "adept", "advanced", "highly advanced"), '
    "description (string) and relevance (number 0-1)\n"
    "- occupational_groups (list[str]): occupation groups the role belongs to\n"
    "- focus_areas (list[str]): 2-5 key focus areas of the role"
)

TAXONOMY_PROMPT = (
    "You classify NSW Government job advertisements.\n\n"
    "Return ONLY a JSON object (no markdown, no explanation) with these fields:\n"
    "- job_family (string)\n"
    "- job_function (string)\n"
    "- keywords (list[str]): 5-15 search keywords\n"
    "- technical_skills (list[str])\n"
    "- soft_skills (list[str])"
)


def build_job_prompt(job: JobDetails) -> str:
    """Render the job fields the analysis prompts need as plain text."""
    parts = [
        f"Title: {job.title}",
        f"Agency: {job.agency}",
        f"Location: {job.location}",
    ]
    if job.job_type:
        parts.append(f"Job type: {job.job_type}")
    parts.append(f"\nDescription:\n{job.description}")
    if job.responsibilities:
        parts.append("\nResponsibilities:\n" + "\n".join(f"- {r}" for r in job.responsibilities))
    if job.requirements:
        parts.append("\nRequirements:\n" + "\n".join(f"- {r}" for r in job.requirements))
    return "\n".join(parts)


class JobAnalyzer:
    """Runs the capability and taxonomy prompts through one LLM provider.

    Calls are blocking (the provider SDKs are synchronous); callers on the
    event loop should run them in a worker thread.
    """

    def __init__(self, provider: LLMProvider, model: str | None = None) -> None:
        self._provider = provider
        self._model = model

    def analyze_capabilities(self, job: JobDetails) -> CapabilityAnalysis:
        raw = self._ask(job, CAPABILITY_PROMPT, "capabilities")
        try:
            return CapabilityAnalysis.model_validate(raw)
        except ValidationError as e:
            msg = f"Invalid capability analysis for job {job.id}: {e}"
            raise ProcessingError(msg, job_id=job.id, stage="capabilities") from e

    def analyze_taxonomy(self, job: JobDetails) -> TaxonomyAnalysis:
        raw = self._ask(job, TAXONOMY_PROMPT, "taxonomy")
        try:
            return TaxonomyAnalysis.model_validate(raw)
        except ValidationError as e:
            msg = f"Invalid taxonomy analysis for job {job.id}: {e}"
            raise ProcessingError(msg, job_id=job.id, stage="taxonomy") from e

    def _ask(self, job: JobDetails, system: str, stage: str) -> dict:
        logger.debug("Requesting %s analysis for job %s", stage, job.id)
        try:
            text = self._provider.complete(build_job_prompt(job), self._model, system=system)
            return parse_json_response(text)
        except ValueError as e:
            msg = f"{stage} analysis failed for job {job.id}: {e}"
            raise ProcessingError(msg, job_id=job.id, stage=stage) from e
