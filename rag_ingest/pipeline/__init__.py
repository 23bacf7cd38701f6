"""Bounded-parallel context + embedding processing of chunks."""

from .concurrency import ConcurrencyLimiter
from .coordinator import (
    BatchResult,
    ChunkOutcome,
    ChunkProcessingCoordinator,
    ProcessingOptions,
    derive_status,
)
from .retry import ErrorKind, RetryAttempt, RetryPolicy, classify_error, policy_from_config, run_with_retry

__all__ = [
    'BatchResult',
    'ChunkOutcome',
    'ChunkProcessingCoordinator',
    'ConcurrencyLimiter',
    'ErrorKind',
    'ProcessingOptions',
    'RetryAttempt',
    'RetryPolicy',
    'classify_error',
    'derive_status',
    'policy_from_config',
    'run_with_retry',
]
