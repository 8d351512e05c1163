"""Vector embeddings for jobs, capabilities and skills (OpenAI embeddings API)."""

import logging
import os
import re
from datetime import datetime
from typing import Any, Literal

from jobs_etl.core.errors import ProcessingError
from jobs_etl.core.schemas import (
    CapabilityAnalysis,
    Embedding,
    EmbeddingMetadata,
    JobDetails,
    JobEmbeddings,
    TaxonomyAnalysis,
)

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


def normalize_text(text: str, max_chars: int) -> str:
    """Collapse whitespace and truncate to ``max_chars``."""
    return _WHITESPACE.sub(" ", text).strip()[:max_chars]


class EmbeddingService:
    """Generates embeddings through an OpenAI-compatible client.

    The client is created on first use from OPENAI_API_KEY unless one is
    passed in.
    """

    def __init__(self, model: str = "text-embedding-3-small", max_chars: int = 8000, client: Any = None) -> None:
        self._model = model
        self._max_chars = max_chars
        self._client = client

    @property
    def model(self) -> str:
        return self._model

    def _get_client(self) -> Any:
        if self._client is None:
            api_key = os.environ.get("OPENAI_API_KEY")
            if not api_key:
                msg = "OPENAI_API_KEY environment variable is required"
                raise ValueError(msg)

            import openai

            self._client = openai.OpenAI(api_key=api_key)
        return self._client

    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Embed several texts in one request, preserving order."""
        if not texts:
            return []
        cleaned = [normalize_text(t, self._max_chars) for t in texts]
        response = self._get_client().embeddings.create(model=self._model, input=cleaned)
        data = sorted(response.data, key=lambda item: item.index)
        return [list(item.embedding) for item in data]

    def generate(
        self,
        job: JobDetails,
        capabilities: CapabilityAnalysis,
        taxonomy: TaxonomyAnalysis,
    ) -> JobEmbeddings:
        """Embed the job description, each capability and each skill.

        Raises:
            ProcessingError: if the embeddings request fails.
        """
        job_text = normalize_text(f"{job.title}\n{job.description}", self._max_chars)
        cap_texts = [f"{c.name}: {c.description}" if c.description else c.name for c in capabilities.capabilities]
        skill_texts = taxonomy.all_skills

        try:
            vectors = self.embed_texts([job_text, *cap_texts, *skill_texts])
        except Exception as e:
            msg = f"Embedding request failed for job {job.id}: {e}"
            raise ProcessingError(msg, job_id=job.id, stage="embeddings") from e

        if len(vectors) != 1 + len(cap_texts) + len(skill_texts):
            msg = f"Embedding count mismatch for job {job.id}"
            raise ProcessingError(msg, job_id=job.id, stage="embeddings")

        now = datetime.now()
        cap_end = 1 + len(cap_texts)
        logger.debug("Generated %d embeddings for job %s", len(vectors), job.id)
        return JobEmbeddings(
            job=self._embedding(vectors[0], job_text, job.id, "job", now),
            capabilities=[
                self._embedding(v, t, job.id, "capability", now)
                for v, t in zip(vectors[1:cap_end], cap_texts)
            ],
            skills=[
                self._embedding(v, t, job.id, "skill", now)
                for v, t in zip(vectors[cap_end:], skill_texts)
            ],
        )

    def _embedding(
        self,
        vector: list[float],
        text: str,
        source: str,
        kind: Literal["job", "capability", "skill"],
        timestamp: datetime,
    ) -> Embedding:
        return Embedding(
            vector=vector,
            text=text,
            metadata=EmbeddingMetadata(source=source, type=kind, model=self._model, timestamp=timestamp),
        )
