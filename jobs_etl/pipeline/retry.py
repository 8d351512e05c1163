"""Shared retry-with-exponential-backoff helper built on tenacity.

Used at exactly one layer per external call: the orchestrator wraps a
collaborator only when the collaborator does not retry on its own, and the
spider/processor use it for their internal retries.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from pydantic import BaseModel, Field
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from jobs_etl.core.errors import RetryExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy(BaseModel):
    """attempts is the total number of tries; 0 is treated as a single try.

    The wait after failed try ``n`` is ``delay_ms * 2**(n-1)`` milliseconds.
    """

    attempts: int = Field(default=3, ge=0)
    delay_ms: int = Field(default=1000, ge=0)

    @property
    def max_tries(self) -> int:
        return max(1, self.attempts)

    def wait(self) -> wait_exponential:
        return wait_exponential(multiplier=self.delay_ms / 1000)


async def _sleep(seconds: float) -> None:
    await asyncio.sleep(seconds)


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    label: str = "operation",
    log: logging.Logger | None = None,
) -> T:
    """Await ``operation()`` until it succeeds or the policy is exhausted.

    Cancellation is never retried.

    Raises:
        RetryExhaustedError: wrapping the last exception raised.
    """
    log = log or logger

    def before_sleep(state: RetryCallState) -> None:
        log.warning(
            "%s failed (attempt %d/%d): %s - retrying in %.2fs",
            label, state.attempt_number, policy.max_tries,
            state.outcome.exception() if state.outcome else None,
            state.next_action.sleep if state.next_action else 0.0,
        )

    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.max_tries),
        wait=policy.wait(),
        retry=retry_if_exception_type(Exception),
        before_sleep=before_sleep,
        sleep=_sleep,
    )
    try:
        async for attempt in retrying:
            with attempt:
                result = await operation()
    except RetryError as e:
        last_error = e.last_attempt.exception()
        if last_error is None:
            raise
        raise RetryExhaustedError(label, policy.max_tries, last_error) from last_error
    return result


def unwrap(error: BaseException) -> BaseException:
    """Return the underlying error of a RetryExhaustedError, else the error itself."""
    if isinstance(error, RetryExhaustedError):
        return error.last_error
    return error


def retries_internally(collaborator: Any) -> bool:
    """True if the collaborator advertises its own retry handling."""
    return getattr(collaborator, "retries_internally", False) is True
