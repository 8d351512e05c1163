"""Exception hierarchy for the ETL pipeline."""


class EtlError(Exception):
    """Base class for pipeline errors."""


class ScrapeError(EtlError):
    """A listing or job detail could not be scraped."""


class ProcessingError(EtlError):
    """Analysis or embedding generation failed for a job."""

    def __init__(self, message: str, *, job_id: str | None = None, stage: str = "analysis") -> None:
        super().__init__(message)
        self.job_id = job_id
        self.stage = stage


class StorageError(EtlError):
    """A write to the staging or live database failed and was rolled back."""


class RetryExhaustedError(EtlError):
    """An operation kept failing after every allowed attempt."""

    def __init__(self, label: str, attempts: int, last_error: BaseException) -> None:
        super().__init__(f"{label} failed after {attempts} attempt(s): {last_error}")
        self.label = label
        self.attempts = attempts
        self.last_error = last_error
