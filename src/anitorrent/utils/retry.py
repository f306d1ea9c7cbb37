"""Retry utilities for remote calls.

Remote-unavailable errors (5xx, transport failures, timeouts) are retried a
bounded number of times; everything else is surfaced immediately.
"""

import logging
from typing import Literal

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
    wait_incrementing,
)

from anitorrent.utils.errors import RemoteUnavailableError

logger = logging.getLogger(__name__)

Backoff = Literal["linear", "fixed"]


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(
        self,
        max_attempts: int = 3,
        wait_seconds: float = 1.0,
        backoff: Backoff = "linear",
    ):
        """Initialize retry configuration.

        Args:
            max_attempts: Maximum number of attempts (including initial)
            wait_seconds: Base wait between attempts
            backoff: "linear" waits wait_seconds, 2*wait_seconds, ...;
                "fixed" always waits wait_seconds
        """
        self.max_attempts = max_attempts
        self.wait_seconds = wait_seconds
        self.backoff = backoff

    def __repr__(self) -> str:
        return (
            f"RetryConfig(max_attempts={self.max_attempts}, "
            f"wait_seconds={self.wait_seconds}, backoff={self.backoff!r})"
        )


# Catalog and feed requests: 3 attempts, 1 s linear backoff
CATALOG_RETRY_CONFIG = RetryConfig(max_attempts=3, wait_seconds=1.0, backoff="linear")

# OAuth client credential fetch: 3 attempts, 2 s apart
CREDENTIALS_RETRY_CONFIG = RetryConfig(max_attempts=3, wait_seconds=2.0, backoff="fixed")

# Fast configuration for testing (no delays)
TEST_RETRY_CONFIG = RetryConfig(max_attempts=3, wait_seconds=0, backoff="fixed")


def log_retry_attempt(retry_state: RetryCallState) -> None:
    """Log retry attempts for debugging.

    Args:
        retry_state: Tenacity retry state
    """
    if retry_state.outcome and retry_state.outcome.failed:
        exception = retry_state.outcome.exception()
        logger.warning(
            f"Retry attempt {retry_state.attempt_number} failed: "
            f"{type(exception).__name__}: {exception}"
        )


def _wait_strategy(config: RetryConfig):
    if config.backoff == "linear":
        return wait_incrementing(start=config.wait_seconds, increment=config.wait_seconds)
    return wait_fixed(config.wait_seconds)


def retrying(
    config: RetryConfig,
    retry_on: tuple[type[Exception], ...] = (RemoteUnavailableError,),
) -> Retrying:
    """Build a tenacity Retrying controller for a call site.

    Usage:
        for attempt in retrying(CATALOG_RETRY_CONFIG):
            with attempt:
                response = client.get(url)

    Args:
        config: Retry configuration
        retry_on: Exception types that trigger another attempt

    Returns:
        Retrying controller that re-raises the last error on exhaustion
    """
    return Retrying(
        stop=stop_after_attempt(config.max_attempts),
        wait=_wait_strategy(config),
        retry=retry_if_exception_type(retry_on),
        before_sleep=log_retry_attempt,
        reraise=True,
    )
