import logging

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from agentcore.config.settings import settings

# tenacity's before_sleep_log expects a stdlib logger
_stdlib_logger = logging.getLogger("agentcore.retry")

# Background work retries on any failure; cancellation is not an Exception
RETRYABLE_EXCEPTIONS = (Exception,)


def background_retrying(
    max_attempts: int | None = None,
    min_wait: float | None = None,
    max_wait: float | None = None,
    exceptions: tuple = RETRYABLE_EXCEPTIONS,
) -> AsyncRetrying:
    """
    Build an AsyncRetrying controller with exponential backoff.

    Defaults come from settings.background_* values.

    Usage:
        async for attempt in background_retrying():
            with attempt:
                await operation()
    """
    return AsyncRetrying(
        reraise=True,
        stop=stop_after_attempt(max_attempts or settings.background_max_attempts),
        wait=wait_exponential(
            multiplier=min_wait if min_wait is not None else settings.background_min_wait,
            max=max_wait if max_wait is not None else settings.background_max_wait,
        ),
        retry=retry_if_exception_type(exceptions),
        before_sleep=before_sleep_log(_stdlib_logger, logging.WARNING),
    )


__all__ = ["background_retrying", "RETRYABLE_EXCEPTIONS"]
