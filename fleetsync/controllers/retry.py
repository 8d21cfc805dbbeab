"""
Requeue backoff for failed reconciliations.

Reconcilers never retry internally; a failed pass is handed back to the
work queue, which delays the key by an exponentially growing backoff.
"""

import random
from dataclasses import dataclass

from fleetsync.errors import NonRetryableError, RetryableError


@dataclass
class RetryConfig:
    """
    Configuration for requeue backoff.

    Attributes:
        retry_backoff_ms: Backoff after the first failure
        retry_backoff_max_ms: Maximum backoff
        retry_jitter_ms: Random jitter added to every backoff
    """
    retry_backoff_ms: int = 5
    retry_backoff_max_ms: int = 1000000
    retry_jitter_ms: int = 20


def calculate_backoff(config: RetryConfig, failures: int) -> int:
    """
    Calculate backoff delay with exponential growth and jitter.

    Formula: min(base * 2^failures, max) + jitter

    Args:
        config: Retry configuration
        failures: Consecutive failures before this one (0-indexed)

    Returns:
        Backoff delay in milliseconds
    """
    # Cap the exponent so huge failure counts do not build giant integers.
    exponential_backoff = config.retry_backoff_ms * (2 ** min(failures, 62))

    backoff = min(exponential_backoff, config.retry_backoff_max_ms)

    jitter = random.randint(0, config.retry_jitter_ms) if config.retry_jitter_ms > 0 else 0

    return backoff + jitter


def classify_error(error: BaseException) -> str:
    """
    Classify an error raised by a reconciliation pass.

    Returns:
        "retryable" for conflicts and transient failures, "fatal" for
        programming errors, "unexpected" for anything else
    """
    if isinstance(error, RetryableError):
        return "retryable"
    if isinstance(error, NonRetryableError):
        return "fatal"
    return "unexpected"
