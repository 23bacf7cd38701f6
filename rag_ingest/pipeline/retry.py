"""
Retry policy for provider stage calls.

A single policy object decides, from the classified error, whether to retry
and how long to wait; ``run_with_retry`` applies it through tenacity.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, List, Optional, TypeVar
import asyncio
import logging

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt

from rag_ingest.errors import ApiError, ConfigurationError, FileAccessError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_AUTH_MARKERS = ("unauthorized", "authentication", "invalid api key", "401")
_RATE_LIMIT_MARKERS = ("rate limit", "rate_limit", "429", "too many requests")


class ErrorKind(str, Enum):
    AUTH = "auth"
    RATE_LIMIT = "rate_limit"
    TRANSIENT = "transient"
    FATAL = "fatal"
    INTEGRITY = "integrity"


def classify_error(error: BaseException) -> ErrorKind:
    """Map an exception to the kind that drives retry behaviour."""
    if isinstance(error, FileAccessError):
        return ErrorKind.INTEGRITY

    message = str(error).lower()
    if any(marker in message for marker in _AUTH_MARKERS):
        return ErrorKind.AUTH
    if any(marker in message for marker in _RATE_LIMIT_MARKERS):
        return ErrorKind.RATE_LIMIT
    if isinstance(error, ApiError) and not error.retryable:
        return ErrorKind.FATAL
    return ErrorKind.TRANSIENT


@dataclass
class RetryAttempt:
    """One failed attempt that will be retried."""

    label: str
    attempt: int
    max_attempts: int
    kind: ErrorKind
    delay: float
    error: str


@dataclass
class RetryPolicy:
    """
    Attributes:
        max_attempts: Total attempts, including the first
        base_delay: Rate-limit backoff is ``base_delay * 2 ** attempt`` seconds
        retry_delay: Fixed delay before retrying other transient errors
        classifier: Maps an exception to an ErrorKind
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    retry_delay: float = 1.0
    classifier: Callable[[BaseException], ErrorKind] = field(default=classify_error)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ConfigurationError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.retry_delay < 0:
            raise ConfigurationError("Retry delays cannot be negative")

    def is_retryable(self, error: BaseException) -> bool:
        return self.classifier(error) in (ErrorKind.RATE_LIMIT, ErrorKind.TRANSIENT)

    def compute_delay(self, kind: ErrorKind, attempt: int) -> float:
        """Delay after failed attempt number ``attempt`` (1-based)."""
        if kind == ErrorKind.RATE_LIMIT:
            return self.base_delay * (2 ** attempt)
        return self.retry_delay

    def wait(self, retry_state: RetryCallState) -> float:
        error = retry_state.outcome.exception()
        return self.compute_delay(self.classifier(error), retry_state.attempt_number)


async def run_with_retry(operation: Callable[[], Awaitable[T]],
                         policy: RetryPolicy,
                         label: str = "operation",
                         on_retry: Optional[Callable[[RetryAttempt], None]] = None,
                         sleep: Callable[[float], Awaitable[None]] = asyncio.sleep) -> T:
    """
    Await ``operation`` until it succeeds or the policy gives up.

    Args:
        operation: Zero-argument coroutine function
        policy: Attempt budget, delays and error classifier
        label: Name used in diagnostics (e.g. ``context[chunk 3]``)
        on_retry: Called before each inter-attempt sleep
        sleep: Awaitable sleep; tests pass a no-op

    Returns:
        The operation's result.

    Raises:
        The last error once attempts are exhausted, or immediately for
        errors the policy does not retry (authentication failures).
    """

    def _before_sleep(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception()
        record = RetryAttempt(
            label=label,
            attempt=retry_state.attempt_number,
            max_attempts=policy.max_attempts,
            kind=policy.classifier(error),
            delay=retry_state.next_action.sleep,
            error=str(error),
        )
        if on_retry is not None:
            on_retry(record)
        else:
            logger.debug("%s attempt %d/%d failed (%s); retrying in %.2fs",
                         label, record.attempt, record.max_attempts, record.kind.value, record.delay)

    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=policy.wait,
        retry=retry_if_exception(policy.is_retryable),
        before_sleep=_before_sleep,
        sleep=sleep,
        reraise=True,
    )
    # Iterating keeps the await explicit; passing a lambda that returns a
    # coroutine to retrying() is treated as a sync callable by tenacity 9.1+.
    async for attempt in retrying:
        with attempt:
            return await operation()


def policy_from_config(processing_cfg: dict) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=int(processing_cfg.get('max_retries', 3)),
        base_delay=float(processing_cfg.get('base_delay', 1.0)),
        retry_delay=float(processing_cfg.get('retry_delay', 1.0)),
    )
