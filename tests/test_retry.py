"""Tests for the stage retry policy."""

import asyncio

import pytest

from rag_ingest.errors import ApiError, ConfigurationError, FileIntegrityError
from rag_ingest.pipeline.retry import (
    ErrorKind,
    RetryPolicy,
    classify_error,
    policy_from_config,
    run_with_retry,
)


class FlakyOperation:
    """Fails with the queued errors, then returns 'ok'."""

    def __init__(self, *errors):
        self.errors = list(errors)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


def _run(operation, policy, **kwargs):
    delays = []

    async def fake_sleep(seconds):
        delays.append(seconds)

    result = asyncio.run(run_with_retry(operation, policy, sleep=fake_sleep, **kwargs))
    return result, delays


@pytest.mark.parametrize("message,kind", [
    ("401 Unauthorized", ErrorKind.AUTH),
    ("Invalid API key provided", ErrorKind.AUTH),
    ("Authentication failed", ErrorKind.AUTH),
    ("Rate limit exceeded", ErrorKind.RATE_LIMIT),
    ("HTTP 429", ErrorKind.RATE_LIMIT),
    ("Too Many Requests", ErrorKind.RATE_LIMIT),
    ("rate_limit_error", ErrorKind.RATE_LIMIT),
    ("connection reset by peer", ErrorKind.TRANSIENT),
])
def test_classify_error_by_message(message, kind):
    assert classify_error(ApiError(message)) == kind


def test_classify_error_non_retryable_and_integrity():
    assert classify_error(ApiError("Text cannot be empty", retryable=False)) == ErrorKind.FATAL
    assert classify_error(FileIntegrityError("File size has changed")) == ErrorKind.INTEGRITY
    assert classify_error(RuntimeError("boom")) == ErrorKind.TRANSIENT


def test_rate_limit_uses_exponential_backoff():
    operation = FlakyOperation(ApiError("429 rate limit"), ApiError("429 rate limit"))
    result, delays = _run(operation, RetryPolicy(max_attempts=3, base_delay=1.0, retry_delay=0.1))

    assert result == "ok"
    assert operation.calls == 3
    assert delays == [2.0, 4.0]


def test_transient_errors_use_fixed_delay():
    operation = FlakyOperation(ApiError("timeout"), ApiError("timeout"))
    result, delays = _run(operation, RetryPolicy(max_attempts=3, base_delay=5.0, retry_delay=0.5))

    assert result == "ok"
    assert delays == [0.5, 0.5]


def test_lambda_returning_coroutine_is_awaited():
    operation = FlakyOperation(ApiError("timeout"), ApiError("timeout"))
    result, delays = _run(lambda: operation(), RetryPolicy(max_attempts=3, retry_delay=0.25))

    assert result == "ok"
    assert operation.calls == 3
    assert delays == [0.25, 0.25]


def test_lambda_errors_reach_the_classifier():
    operation = FlakyOperation(ApiError("401 Unauthorized"))

    with pytest.raises(ApiError, match="Unauthorized"):
        _run(lambda: operation(), RetryPolicy(max_attempts=5))
    assert operation.calls == 1


def test_auth_error_is_not_retried():
    operation = FlakyOperation(ApiError("401 Unauthorized"))

    with pytest.raises(ApiError, match="Unauthorized"):
        _run(operation, RetryPolicy(max_attempts=5))
    assert operation.calls == 1


@pytest.mark.parametrize("error", [
    ApiError("No context model configured", retryable=False),
    FileIntegrityError("File integrity check failed: File not found"),
])
def test_fatal_and_integrity_errors_are_not_retried(error):
    operation = FlakyOperation(error)

    with pytest.raises(type(error)):
        _run(operation, RetryPolicy(max_attempts=5))
    assert operation.calls == 1


def test_exhausted_attempts_reraise_last_error():
    operation = FlakyOperation(ApiError("fail 1"), ApiError("fail 2"), ApiError("fail 3"), ApiError("fail 4"))

    with pytest.raises(ApiError, match="fail 3"):
        _run(operation, RetryPolicy(max_attempts=3, retry_delay=0))
    assert operation.calls == 3


def test_on_retry_receives_diagnostics():
    attempts = []
    operation = FlakyOperation(ApiError("Too many requests"), ApiError("socket closed"))

    _run(operation, RetryPolicy(max_attempts=3, base_delay=0.25, retry_delay=0.1),
         label="embedding[chunk 7]", on_retry=attempts.append)

    assert [(a.attempt, a.kind, a.delay) for a in attempts] == [
        (1, ErrorKind.RATE_LIMIT, 0.5),
        (2, ErrorKind.TRANSIENT, 0.1),
    ]
    assert all(a.label == "embedding[chunk 7]" and a.max_attempts == 3 for a in attempts)
    assert attempts[0].error == "Too many requests"


def test_policy_validation_and_config():
    with pytest.raises(ConfigurationError):
        RetryPolicy(max_attempts=0)
    with pytest.raises(ConfigurationError):
        RetryPolicy(base_delay=-1)

    policy = policy_from_config({'max_retries': 4, 'base_delay': 0.5, 'retry_delay': 2})
    assert (policy.max_attempts, policy.base_delay, policy.retry_delay) == (4, 0.5, 2.0)
    assert policy.compute_delay(ErrorKind.RATE_LIMIT, 3) == 4.0
    assert policy.compute_delay(ErrorKind.TRANSIENT, 3) == 2.0
