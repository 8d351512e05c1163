"""Core data models for the NSW jobs ETL pipeline.

All job models are frozen: a re-run produces a new ProcessedJob for the same
external id instead of mutating an existing one.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class JobListing(BaseModel):
    """Lightweight reference to a job posting, produced by a spider."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    agency: str = ""
    location: str = ""
    url: str
    salary: str = ""
    job_reference: str = ""
    posted_date: str = ""
    closing_date: str = ""


class ContactDetails(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = ""
    phone: str = ""
    email: str = ""


class JobDetails(JobListing):
    """A listing plus the full text fields from the job page."""

    job_type: str = ""
    description: str = ""
    responsibilities: list[str] = Field(default_factory=list)
    requirements: list[str] = Field(default_factory=list)
    notes: list[str] = Field(default_factory=list)
    about_us: str = ""
    contact_details: ContactDetails = Field(default_factory=ContactDetails)

    @classmethod
    def from_listing(cls, listing: JobListing, **fields: object) -> "JobDetails":
        """Build details on top of an existing listing."""
        return cls.model_validate({**listing.model_dump(), **fields})


CapabilityLevel = Literal["foundational", "intermediate", "adept", "advanced", "highly advanced"]


class Capability(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    level: CapabilityLevel = "intermediate"
    description: str = ""
    relevance: float = Field(default=0.0, ge=0.0, le=1.0)


class CapabilityAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    capabilities: list[Capability] = Field(default_factory=list)
    occupational_groups: list[str] = Field(default_factory=list)
    focus_areas: list[str] = Field(default_factory=list)


class TaxonomyAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    job_family: str = ""
    job_function: str = ""
    keywords: list[str] = Field(default_factory=list)
    technical_skills: list[str] = Field(default_factory=list)
    soft_skills: list[str] = Field(default_factory=list)

    @property
    def all_skills(self) -> list[str]:
        return [*self.technical_skills, *self.soft_skills]


class EmbeddingMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    source: str
    type: Literal["job", "capability", "skill"]
    model: str = ""
    timestamp: datetime = Field(default_factory=datetime.now)


class Embedding(BaseModel):
    model_config = ConfigDict(frozen=True)

    vector: list[float]
    text: str = ""
    metadata: EmbeddingMetadata


class JobEmbeddings(BaseModel):
    model_config = ConfigDict(frozen=True)

    job: Embedding
    capabilities: list[Embedding] = Field(default_factory=list)
    skills: list[Embedding] = Field(default_factory=list)


class ProcessingMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    processed_at: datetime = Field(default_factory=datetime.now)
    version: str = "1.0.0"
    status: Literal["completed", "failed"] = "completed"


class ProcessedJob(BaseModel):
    """JobDetails enriched with analysis results and embeddings."""

    model_config = ConfigDict(frozen=True)

    job_details: JobDetails
    capabilities: CapabilityAnalysis
    taxonomy: TaxonomyAnalysis
    embeddings: JobEmbeddings
    metadata: ProcessingMetadata = Field(default_factory=ProcessingMetadata)

    @property
    def job_id(self) -> str:
        return self.job_details.id


class ProcessSuccess(BaseModel):
    """Tagged outcome: the job was processed."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["success"] = "success"
    job_id: str
    job: ProcessedJob


class ProcessFailure(BaseModel):
    """Tagged outcome: the job could not be processed."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["failure"] = "failure"
    job_id: str
    reason: str


ProcessOutcome = ProcessSuccess | ProcessFailure


class JobRecord(BaseModel):
    """A row read back from the jobs table."""

    model_config = ConfigDict(frozen=True)

    external_id: str
    title: str
    agency: str
    location: str
    url: str
    posted_date: str
    closing_date: str
    job_family: str
    job_function: str
    version: str
    status: str
    processed_at: str
    stored_at: str
