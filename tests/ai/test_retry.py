"""Unit tests for retry logic and error classification."""
import pytest
from unittest.mock import AsyncMock

import httpx

from workout_logger_api.ai.retry import (
    DEFAULT_MAX_ATTEMPTS,
    backoff_delay,
    is_retryable_error,
    retry_async_call,
)
from workout_logger_api.errors import LLMContentError

from factories import create_httpx_error, create_openai_error


class TestIsRetryableError:
    """Test error classification for retry decisions."""

    # --- Retryable errors (should return True) ---

    @pytest.mark.parametrize(
        "error_message",
        [
            "Rate limit exceeded",
            "rate limit reached",
            "Error code: 429",
            "Status 429: Too Many Requests",
        ],
    )
    def test_rate_limit_errors_are_retryable(self, error_message):
        """429 rate limit errors should be retryable."""
        assert is_retryable_error(Exception(error_message)) is True

    @pytest.mark.parametrize("status_code", ["500", "502", "503", "504"])
    def test_server_errors_5xx_are_retryable(self, status_code):
        """5xx server errors should be retryable."""
        assert is_retryable_error(Exception(f"Server error: {status_code}")) is True

    @pytest.mark.parametrize(
        "error_message",
        [
            "Request timed out",
            "Read timeout",
            "Connection refused",
            "Temporary failure in name resolution",
        ],
    )
    def test_network_errors_are_retryable(self, error_message):
        """Timeouts, refused connections and DNS failures should be retryable."""
        assert is_retryable_error(Exception(error_message)) is True

    @pytest.mark.parametrize("status_code", [408, 429, 500, 503])
    def test_status_code_attribute_retryable(self, status_code):
        """An explicit transient status code decides retryability."""
        assert is_retryable_error(create_openai_error(status_code, "upstream trouble")) is True

    @pytest.mark.parametrize("status_code", [400, 401, 403, 404, 422])
    def test_status_code_attribute_not_retryable(self, status_code):
        """Client error status codes are final."""
        assert is_retryable_error(create_openai_error(status_code, "request rejected")) is False

    @pytest.mark.parametrize("error_type", ["timeout", "connect_timeout", "connect_error"])
    def test_httpx_transport_errors_are_retryable(self, error_type):
        assert is_retryable_error(create_httpx_error(error_type, "network down")) is True

    def test_asyncio_timeout_is_retryable(self):
        import asyncio

        assert is_retryable_error(asyncio.TimeoutError()) is True

    # --- Non-retryable errors (should return False) ---

    @pytest.mark.parametrize(
        "error_message",
        [
            "Error 401: Unauthorized",
            "Invalid authentication credentials",
            "Invalid API key provided",
            "Quota exceeded for this month",
            "Error 404: Not Found",
        ],
    )
    def test_client_errors_not_retryable(self, error_message):
        """Auth, quota and bad request errors should NOT be retryable."""
        assert is_retryable_error(Exception(error_message)) is False

    def test_content_error_never_retryable(self):
        """A malformed model answer is a content problem, not a transport one."""
        error = LLMContentError("not json, timeout 503", ValueError("bad"))
        assert is_retryable_error(error) is False

    def test_unknown_errors_not_retryable_by_default(self):
        """Unknown/unrecognized errors should NOT be retryable."""
        assert is_retryable_error(Exception("Something completely unexpected happened")) is False


class TestBackoffDelay:
    """Test exponential backoff timing."""

    def test_first_attempts(self):
        # base * 2^(n-1) plus (n * 37) % 100 ms of jitter
        assert backoff_delay(1, 500) == pytest.approx(0.537)
        assert backoff_delay(2, 500) == pytest.approx(1.074)
        assert backoff_delay(3, 500) == pytest.approx(2.011)

    def test_shift_is_capped(self):
        """Very large attempt numbers do not overflow the exponent."""
        assert backoff_delay(100, 1) == pytest.approx((2 ** 20 + 0) / 1000.0)

    def test_zero_base_leaves_only_jitter(self):
        assert backoff_delay(1, 0) == pytest.approx(0.037)


class TestRetryAsyncCall:
    """Test asynchronous retry execution."""

    @pytest.mark.asyncio
    async def test_successful_async_call_returns_immediately(self, no_sleep):
        """Successful async calls should return without retry."""
        mock_func = AsyncMock(return_value="async_success")

        result = await retry_async_call(mock_func, max_attempts=3, sleep=no_sleep)

        assert result == "async_success"
        assert mock_func.call_count == 1
        no_sleep.assert_not_called()

    @pytest.mark.asyncio
    async def test_retryable_error_retries_until_exhausted(self, no_sleep, rate_limit_error):
        """Retryable errors retry up to max_attempts, then the last error surfaces."""
        mock_func = AsyncMock(side_effect=rate_limit_error)

        with pytest.raises(Exception, match="429"):
            await retry_async_call(mock_func, max_attempts=3, base_delay_ms=500, sleep=no_sleep)

        assert mock_func.call_count == 3
        delays = [call.args[0] for call in no_sleep.call_args_list]
        assert delays == [pytest.approx(0.537), pytest.approx(1.074)]

    @pytest.mark.asyncio
    async def test_non_retryable_error_fails_immediately(self, no_sleep, auth_error):
        mock_func = AsyncMock(side_effect=auth_error)

        with pytest.raises(Exception, match="401"):
            await retry_async_call(mock_func, max_attempts=3, sleep=no_sleep)

        assert mock_func.call_count == 1

    @pytest.mark.asyncio
    async def test_eventual_success_after_failures(self, no_sleep, server_error_503, timeout_error):
        mock_func = AsyncMock(side_effect=[server_error_503, timeout_error, "async_success"])

        result = await retry_async_call(mock_func, "system", user="user", max_attempts=3, sleep=no_sleep)

        assert result == "async_success"
        assert mock_func.call_count == 3
        mock_func.assert_called_with("system", user="user")

    @pytest.mark.asyncio
    async def test_single_attempt_does_not_sleep(self, no_sleep):
        mock_func = AsyncMock(side_effect=httpx.ConnectError("refused"))

        with pytest.raises(httpx.ConnectError):
            await retry_async_call(mock_func, max_attempts=1, sleep=no_sleep)

        no_sleep.assert_not_called()

    @pytest.mark.asyncio
    async def test_max_attempts_must_be_positive(self):
        with pytest.raises(ValueError):
            await retry_async_call(AsyncMock(), max_attempts=0)

    def test_default_max_attempts_is_three(self):
        assert DEFAULT_MAX_ATTEMPTS == 3
