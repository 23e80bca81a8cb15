"""Retry utilities for LLM backend calls with exponential backoff."""
import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
)

from workout_logger_api.errors import LLMContentError


logger = logging.getLogger(__name__)

T = TypeVar("T")

# Default retry configuration
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY_MS = 500
MAX_BACKOFF_SHIFT = 20

_RETRYABLE_STATUS_CODES = {408, 409, 429, 500, 502, 503, 504}
_NON_RETRYABLE_STATUS_CODES = {400, 401, 403, 404, 422}


def is_retryable_error(exception: BaseException) -> bool:
    """
    Determine if an exception is a transient transport failure.

    Retryable errors include:
    - Rate limit errors (429)
    - Server errors (5xx)
    - Timeout errors
    - Connection and DNS errors

    Content errors (the model answered, but not with valid JSON) are never
    retryable, nor are authentication, bad request or quota errors.
    """
    if isinstance(exception, LLMContentError):
        return False

    if isinstance(exception, (asyncio.TimeoutError, httpx.TimeoutException, httpx.TransportError)):
        return True

    status_code = getattr(exception, "status_code", None)
    if isinstance(status_code, int):
        if status_code in _RETRYABLE_STATUS_CODES:
            return True
        if status_code in _NON_RETRYABLE_STATUS_CODES:
            return False

    error_str = str(exception).lower()
    exception_type = type(exception).__name__.lower()

    # Check for non-retryable errors first
    if "authentication" in error_str or "unauthorized" in error_str:
        return False
    if "invalid" in error_str and "key" in error_str:
        return False
    if "quota" in error_str and "exceeded" in error_str:
        return False
    if any(code in error_str for code in ["400", "401", "403", "404"]):
        return False

    # Check for rate limit (429) - always retry
    if "rate" in error_str and "limit" in error_str:
        return True
    if "429" in error_str:
        return True

    # Check for server errors (5xx) - retry
    if any(code in error_str for code in ["500", "502", "503", "504"]):
        return True

    # Check for timeout errors - retry
    if "timeout" in error_str or "timed out" in error_str or "timeout" in exception_type:
        return True

    # Check for connection errors - retry
    if "connection" in error_str or "connect" in exception_type:
        return True

    # Check for DNS resolution failures - retry (transient network issue)
    if "name or service not known" in error_str:
        return True
    if "temporary failure in name resolution" in error_str:
        return True

    # Default: don't retry unknown errors
    return False


def backoff_delay(attempt: int, base_delay_ms: int = DEFAULT_BASE_DELAY_MS) -> float:
    """
    Seconds to wait after the given (1-based) failed attempt.

    base_delay * 2^(attempt-1), with the shift capped, plus a small
    deterministic jitter derived from the attempt number.
    """
    shift = min(max(attempt - 1, 0), MAX_BACKOFF_SHIFT)
    jitter_ms = (attempt * 37) % 100
    return (base_delay_ms * (1 << shift) + jitter_ms) / 1000.0


def _wait_backoff(base_delay_ms: int) -> Callable[[RetryCallState], float]:
    def wait(retry_state: RetryCallState) -> float:
        return backoff_delay(retry_state.attempt_number, base_delay_ms)

    return wait


async def retry_async_call(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay_ms: int = DEFAULT_BASE_DELAY_MS,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    **kwargs: Any,
) -> T:
    """
    Execute an async function with retry logic.

    Args:
        func: Async function to execute
        *args: Positional arguments for the function
        max_attempts: Maximum number of attempts (>= 1)
        base_delay_ms: Base delay of the exponential backoff
        sleep: Awaitable sleep used between attempts
        **kwargs: Keyword arguments for the function

    Returns:
        Result of the function call

    Raises:
        ValueError: If max_attempts is below 1
        Exception: The last error once attempts are exhausted, or the first
            non-retryable error
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    retrying = AsyncRetrying(
        retry=retry_if_exception(is_retryable_error),
        stop=stop_after_attempt(max_attempts),
        wait=_wait_backoff(base_delay_ms),
        sleep=sleep,
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    return await retrying(func, *args, **kwargs)
