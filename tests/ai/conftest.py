"""Shared fixtures for AI module tests."""
from unittest.mock import AsyncMock, patch

import pytest


# =============================================================================
# Mock Settings Fixtures
# =============================================================================


@pytest.fixture
def mock_settings_helicone_enabled():
    """Mock settings with Helicone enabled."""
    with patch("workout_logger_api.ai.client_factory.settings") as mock:
        mock.OPENAI_API_KEY = "sk-test-openai"
        mock.HELICONE_ENABLED = True
        mock.HELICONE_API_KEY = "sk-test-helicone"
        mock.ENVIRONMENT = "test"
        mock.OLLAMA_BASE_URL = "http://localhost:11434"
        yield mock


@pytest.fixture
def mock_settings_helicone_disabled():
    """Mock settings with Helicone disabled."""
    with patch("workout_logger_api.ai.client_factory.settings") as mock:
        mock.OPENAI_API_KEY = "sk-test-openai"
        mock.HELICONE_ENABLED = False
        mock.HELICONE_API_KEY = None
        mock.ENVIRONMENT = "development"
        mock.OLLAMA_BASE_URL = "http://localhost:11434"
        yield mock


@pytest.fixture
def no_sleep():
    """Awaitable sleep replacement that records requested delays."""
    return AsyncMock(return_value=None)


# Error simulation fixtures


@pytest.fixture
def rate_limit_error():
    """Simulate OpenAI rate limit error."""
    return Exception("Error code: 429 - Rate limit reached for requests")


@pytest.fixture
def server_error_503():
    """Simulate 503 Service Unavailable."""
    return Exception("Error code: 503 - Service temporarily unavailable")


@pytest.fixture
def timeout_error():
    """Simulate timeout error."""
    import httpx

    return httpx.ReadTimeout("Connection read timed out")


@pytest.fixture
def auth_error():
    """Simulate authentication error."""
    return Exception("Error code: 401 - Invalid API key provided")
