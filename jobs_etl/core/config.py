"""Configuration models, YAML loader and environment overlay."""

from collections.abc import Mapping
from datetime import date
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator


class OrchestratorConfig(BaseModel):
    """Batching, concurrency and retry settings for a pipeline run.

    Delays are in milliseconds. ``poll_interval`` is how often a paused run
    wakes to log that it is still waiting.
    """

    batch_size: int = Field(default=10, gt=0)
    max_concurrency: int = Field(default=5, gt=0)
    retry_attempts: int = Field(default=3, ge=0)
    retry_delay: int = Field(default=1000, ge=0)
    poll_interval: int = Field(default=1000, gt=0)


class SpiderConfig(BaseModel):
    """Settings for the NSW Government jobs spider."""

    base_url: str = "https://iworkfor.nsw.gov.au/jobs/all-keywords/all-agencies/all-organisations-entities/all-categories/all-locations/all-worktypes"
    user_agent: str = "Mozilla/5.0"
    max_concurrency: int = Field(default=5, gt=0)
    retry_attempts: int = Field(default=3, ge=0)
    retry_delay: int = Field(default=1000, ge=0)
    timeout_ms: int = Field(default=60000, ge=1000)
    page_size: int = Field(default=100, ge=1)
    headless: bool = True


class ProcessorConfig(BaseModel):
    """Settings for LLM analysis and embedding generation."""

    batch_size: int = Field(default=10, gt=0)
    max_retries: int = Field(default=3, ge=0)
    retry_delay: int = Field(default=1000, ge=0)
    version: str = "1.0.0"
    llm_provider: str = "openai"
    llm_model: str | None = None
    embedding_model: str = "text-embedding-3-small"
    max_embedding_chars: int = Field(default=8000, ge=100)


class StorageConfig(BaseModel):
    """Staging and live database locations."""

    staging_path: str = "data/staging.db"
    live_path: str = "data/live.db"


class PipelineOptions(BaseModel):
    """Per-run options passed to ``PipelineOrchestrator.run_pipeline``."""

    max_records: int = Field(default=0, ge=0)
    continue_on_error: bool = True
    agencies: list[str] = Field(default_factory=list)
    locations: list[str] = Field(default_factory=list)
    start_date: date | None = None
    end_date: date | None = None
    scrape_only: bool = False
    skip_storage: bool = False
    migrate_to_live: bool = False

    @model_validator(mode="after")
    def date_range_ordered(self) -> "PipelineOptions":
        if self.start_date and self.end_date and self.start_date > self.end_date:
            msg = "start_date must not be after end_date"
            raise ValueError(msg)
        return self


class Settings(BaseModel):
    """Top-level settings loaded from YAML."""

    orchestrator: OrchestratorConfig = Field(default_factory=OrchestratorConfig)
    spider: SpiderConfig = Field(default_factory=SpiderConfig)
    processor: ProcessorConfig = Field(default_factory=ProcessorConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)

    @field_validator("processor")
    @classmethod
    def provider_known(cls, v: ProcessorConfig) -> ProcessorConfig:
        from jobs_etl.llm import available_providers

        if v.llm_provider not in available_providers():
            msg = f"Unknown LLM provider '{v.llm_provider}'"
            raise ValueError(msg)
        return v

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        path = Path(path)
        if not path.exists():
            msg = f"Config file not found: {path}"
            raise FileNotFoundError(msg)
        raw: dict[str, Any] = yaml.safe_load(path.read_text()) or {}
        return cls.model_validate(raw)

    def apply_env(self, environ: Mapping[str, str]) -> "Settings":
        """Return a copy with values overridden by environment variables.

        Shared knobs (batch size, retries) apply to every component that has
        them.
        """
        data = self.model_dump()
        for var, targets, convert in _ENV_OVERRIDES:
            raw = environ.get(var)
            if raw is None or raw == "":
                continue
            try:
                value = convert(raw)
            except ValueError as e:
                msg = f"Invalid value for {var}: {raw!r}"
                raise ValueError(msg) from e
            for section, key in targets:
                data[section][key] = value
        return type(self).model_validate(data)


_ENV_OVERRIDES: list[tuple[str, list[tuple[str, str]], Any]] = [
    ("BATCH_SIZE", [("orchestrator", "batch_size"), ("processor", "batch_size")], int),
    ("MAX_CONCURRENCY", [("orchestrator", "max_concurrency"), ("spider", "max_concurrency")], int),
    (
        "RETRY_ATTEMPTS",
        [("orchestrator", "retry_attempts"), ("spider", "retry_attempts"), ("processor", "max_retries")],
        int,
    ),
    (
        "RETRY_DELAY",
        [("orchestrator", "retry_delay"), ("spider", "retry_delay"), ("processor", "retry_delay")],
        int,
    ),
    ("NSW_JOBS_URL", [("spider", "base_url")], str),
    ("USER_AGENT", [("spider", "user_agent")], str),
    ("LLM_PROVIDER", [("processor", "llm_provider")], str),
    ("OPENAI_MODEL", [("processor", "llm_model")], str),
    ("OPENAI_EMBEDDING_MODEL", [("processor", "embedding_model")], str),
    ("STAGING_DB_PATH", [("storage", "staging_path")], str),
    ("LIVE_DB_PATH", [("storage", "live_path")], str),
]
