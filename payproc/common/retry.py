"""Retry policy used by consumer workers around one processing attempt."""

from collections.abc import Callable

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_fixed,
)
from tenacity.wait import wait_base

from payproc.common.config import Settings
from payproc.common.errors import is_retryable


def build_wait(settings: Settings) -> wait_base:
    """Map the configured delay strategy to a tenacity wait.

    `fixed` waits the base delay between attempts; `backoff` doubles it each
    attempt. Both are capped by the max delay unless that is 0.
    """

    delay = settings.retry_delay_seconds
    max_delay = settings.retry_max_delay_seconds
    if settings.retry_delay_type == "fixed":
        if max_delay > 0:
            delay = min(delay, max_delay)
        return wait_fixed(delay)
    if max_delay > 0:
        return wait_exponential(multiplier=delay, max=max_delay)
    return wait_exponential(multiplier=delay)


def build_retrying(
    settings: Settings,
    before_sleep: Callable[[RetryCallState], None] | None = None,
) -> AsyncRetrying:
    """Bounded retry loop that only retries retryable payment errors.

    `reraise=True` surfaces the last real error once attempts are exhausted.
    """

    return AsyncRetrying(
        stop=stop_after_attempt(settings.retry_attempts),
        wait=build_wait(settings),
        retry=retry_if_exception(is_retryable),
        before_sleep=before_sleep,
        reraise=True,
    )
