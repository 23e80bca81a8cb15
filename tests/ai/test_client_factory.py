"""Tests for AIClientFactory and AIRequestContext."""
import pytest
from unittest.mock import MagicMock, patch

import httpx

from workout_logger_api.ai.client_factory import (
    _HELICONE_OPENAI_BASE_URL,
    AIClientFactory,
    AIRequestContext,
)


class TestAIRequestContextHeaders:
    """Test Helicone header generation from AIRequestContext."""

    def test_empty_context_includes_environment_only(self):
        with patch("workout_logger_api.ai.client_factory.settings") as mock_settings:
            mock_settings.ENVIRONMENT = "production"

            headers = AIRequestContext().to_tracking_headers()

            assert headers == {"Helicone-Property-Environment": "production"}

    def test_session_and_feature_headers(self):
        with patch("workout_logger_api.ai.client_factory.settings") as mock_settings:
            mock_settings.ENVIRONMENT = "development"

            context = AIRequestContext(session_id="sess_abc123", feature_name="workout_command_pipeline")
            headers = context.to_tracking_headers()

            assert headers["Helicone-Session-Id"] == "sess_abc123"
            assert headers["Helicone-Property-Feature"] == "workout_command_pipeline"

    def test_custom_properties_are_title_cased(self):
        with patch("workout_logger_api.ai.client_factory.settings") as mock_settings:
            mock_settings.ENVIRONMENT = "development"

            context = AIRequestContext(custom_properties={"model_name": "gpt-4o-mini"})
            headers = context.to_tracking_headers()

            assert headers["Helicone-Property-Model-Name"] == "gpt-4o-mini"


class TestOpenAIClientCreation:
    """Test OpenAI client creation with various configurations."""

    def test_creates_direct_client_when_helicone_disabled(self, mock_settings_helicone_disabled):
        mock_openai_class = MagicMock()
        with patch("openai.AsyncOpenAI", mock_openai_class):
            AIClientFactory.create_openai_client(timeout=12.5)

        call_kwargs = mock_openai_class.call_args[1]
        assert call_kwargs["api_key"] == "sk-test-openai"
        assert call_kwargs["timeout"] == 12.5
        assert call_kwargs["max_retries"] == 0
        assert "base_url" not in call_kwargs

    def test_creates_proxied_client_when_helicone_enabled(self, mock_settings_helicone_enabled):
        mock_openai_class = MagicMock()
        context = AIRequestContext(feature_name="workout_command_pipeline")
        with patch("openai.AsyncOpenAI", mock_openai_class):
            AIClientFactory.create_openai_client(context=context)

        call_kwargs = mock_openai_class.call_args[1]
        assert call_kwargs["base_url"] == _HELICONE_OPENAI_BASE_URL
        assert call_kwargs["default_headers"]["Helicone-Auth"] == "Bearer sk-test-helicone"
        assert call_kwargs["default_headers"]["Helicone-Property-Feature"] == "workout_command_pipeline"

    def test_helicone_without_key_falls_back_to_direct(self, mock_settings_helicone_enabled):
        mock_settings_helicone_enabled.HELICONE_API_KEY = None
        mock_openai_class = MagicMock()
        with patch("openai.AsyncOpenAI", mock_openai_class):
            AIClientFactory.create_openai_client()

        assert "base_url" not in mock_openai_class.call_args[1]

    def test_explicit_key_wins_over_settings(self, mock_settings_helicone_disabled):
        mock_openai_class = MagicMock()
        with patch("openai.AsyncOpenAI", mock_openai_class):
            AIClientFactory.create_openai_client(api_key="sk-explicit")

        assert mock_openai_class.call_args[1]["api_key"] == "sk-explicit"

    def test_missing_key_raises(self, mock_settings_helicone_disabled):
        mock_settings_helicone_disabled.OPENAI_API_KEY = None

        with pytest.raises(ValueError, match="OPENAI_API_KEY"):
            AIClientFactory.create_openai_client()


class TestOllamaClientCreation:
    """Test local-model HTTP client creation."""

    @pytest.mark.asyncio
    async def test_uses_settings_base_url(self, mock_settings_helicone_disabled):
        client = AIClientFactory.create_ollama_client(timeout=5.0)
        try:
            assert isinstance(client, httpx.AsyncClient)
            assert str(client.base_url).rstrip("/") == "http://localhost:11434"
        finally:
            await client.aclose()

    @pytest.mark.asyncio
    async def test_explicit_base_url(self, mock_settings_helicone_disabled):
        client = AIClientFactory.create_ollama_client(base_url="http://gpu-box:11434")
        try:
            assert str(client.base_url).rstrip("/") == "http://gpu-box:11434"
        finally:
            await client.aclose()
