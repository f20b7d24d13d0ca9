# speech_agent/retry.py

"""Exponential backoff with jitter, and the retry loop built on it."""
import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, TypeVar

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt
from tenacity.wait import wait_base

from .errors import ProviderError, TTSError, classify_error, describe_error, is_retryable
from .models import MIN_RETRY_DELAY, RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Keeps base * 2**n finite for absurd attempt numbers.
_MAX_EXPONENT = 62


def base_backoff_delay(attempt: int, policy: RetryPolicy) -> float:
    """Pre-jitter delay before retrying after `attempt` (1-based) failed."""
    if attempt < 1:
        raise ValueError(f"attempt must be >= 1, got {attempt}")
    exponent = min(attempt - 1, _MAX_EXPONENT)
    return min(policy.base_delay * (2 ** exponent), policy.max_delay)


def compute_backoff_delay(
    attempt: int,
    policy: RetryPolicy,
    rng: Callable[[], float] = random.random,
) -> float:
    """Jittered delay in seconds, always within [MIN_RETRY_DELAY, policy.max_delay]."""
    delay = base_backoff_delay(attempt, policy)
    factor = 1.0 + policy.jitter_ratio * (2.0 * rng() - 1.0)
    return max(MIN_RETRY_DELAY, min(delay * factor, policy.max_delay))


class wait_backoff_jitter(wait_base):
    """Tenacity wait strategy delegating to compute_backoff_delay."""

    def __init__(self, policy: RetryPolicy, rng: Callable[[], float] = random.random) -> None:
        self.policy = policy
        self.rng = rng

    def __call__(self, retry_state: RetryCallState) -> float:
        return compute_backoff_delay(retry_state.attempt_number, self.policy, self.rng)


def _log_before_sleep(label: str, policy: RetryPolicy) -> Callable[[RetryCallState], None]:
    def log(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            f"{label}: attempt {retry_state.attempt_number}/{policy.max_attempts} failed, "
            f"retrying in {delay:.2f}s ({describe_error(error) if error else 'no error'})"
        )
    return log


async def with_backoff_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    label: str,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    rng: Callable[[], float] = random.random,
) -> T:
    """Run `operation` up to policy.max_attempts times.

    Only errors classified as retryable are retried. The final error is
    re-raised with its ClassifiedError attached as `.classified`; errors
    that are not TTSError instances are wrapped in ProviderError first.
    """
    retryer = AsyncRetrying(
        sleep=sleep,
        stop=stop_after_attempt(policy.max_attempts),
        wait=wait_backoff_jitter(policy, rng),
        retry=retry_if_exception(is_retryable),
        before_sleep=_log_before_sleep(label, policy),
        reraise=True,
    )
    try:
        return await retryer(operation)
    except Exception as e:
        classified = classify_error(e)
        attempts: Optional[int] = retryer.statistics.get("attempt_number")
        logger.error(
            f"{label}: giving up after {attempts or 1} attempt(s) "
            f"(status={classified.status}, code={classified.code}, retryable={classified.retryable}): {classified.message}"
        )
        if isinstance(e, TTSError):
            e.classified = classified
            raise
        wrapped = ProviderError(label, classified.message, e, status=classified.status, code=classified.code)
        wrapped.classified = classified
        raise wrapped from e
