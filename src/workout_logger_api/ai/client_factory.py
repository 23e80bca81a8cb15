"""AI client factory with Helicone integration support."""
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from workout_logger_api.config import settings


logger = logging.getLogger(__name__)

# Helicone proxy URL (private - implementation detail)
_HELICONE_OPENAI_BASE_URL = "https://oai.helicone.ai/v1"

# Default client timeout
DEFAULT_TIMEOUT = 60.0


@dataclass
class AIRequestContext:
    """Context for AI requests, used for tracking and observability."""

    session_id: str | None = None
    feature_name: str | None = None
    custom_properties: dict[str, str] = field(default_factory=dict)

    def to_tracking_headers(self) -> dict[str, str]:
        """Convert context to Helicone tracking headers."""
        headers: dict[str, str] = {}

        if self.session_id:
            headers["Helicone-Session-Id"] = self.session_id

        if self.feature_name:
            headers["Helicone-Property-Feature"] = self.feature_name

        # Add environment for filtering in Helicone dashboard
        headers["Helicone-Property-Environment"] = settings.ENVIRONMENT

        for key, value in self.custom_properties.items():
            header_key = f"Helicone-Property-{key.replace('_', '-').title()}"
            headers[header_key] = str(value)

        return headers


class AIClientFactory:
    """Factory for creating LLM backend clients."""

    @staticmethod
    def create_openai_client(
        context: AIRequestContext | None = None,
        api_key: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> Any:
        """
        Create an async OpenAI client, optionally proxied through Helicone.

        Args:
            context: Request context for tracking and observability
            api_key: Explicit API key; falls back to OPENAI_API_KEY
            timeout: Client timeout in seconds

        Returns:
            AsyncOpenAI client instance

        Raises:
            ValueError: If no API key is configured
        """
        import openai

        api_key = api_key or settings.OPENAI_API_KEY
        if not api_key:
            raise ValueError("OpenAI API key not configured. Set OPENAI_API_KEY environment variable.")

        client_kwargs: dict[str, Any] = {
            "api_key": api_key,
            "timeout": timeout,
            # Retries are handled by workout_logger_api.ai.retry
            "max_retries": 0,
        }

        if settings.HELICONE_ENABLED:
            if not settings.HELICONE_API_KEY:
                logger.warning(
                    "HELICONE_ENABLED=true but HELICONE_API_KEY not set. "
                    "Falling back to direct OpenAI API calls."
                )
            else:
                client_kwargs["base_url"] = _HELICONE_OPENAI_BASE_URL

                default_headers = {
                    "Helicone-Auth": f"Bearer {settings.HELICONE_API_KEY}",
                }
                if context:
                    default_headers.update(context.to_tracking_headers())
                client_kwargs["default_headers"] = default_headers

                logger.debug("Creating OpenAI client with Helicone proxy")
                return openai.AsyncOpenAI(**client_kwargs)

        logger.debug("Creating OpenAI client (direct)")
        return openai.AsyncOpenAI(**client_kwargs)

    @staticmethod
    def create_ollama_client(
        base_url: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> httpx.AsyncClient:
        """
        Create an HTTP client for a local Ollama server.

        Args:
            base_url: Ollama server URL; falls back to OLLAMA_BASE_URL
            timeout: Client timeout in seconds
        """
        base_url = base_url or settings.OLLAMA_BASE_URL
        logger.debug(f"Creating Ollama client for {base_url}")
        return httpx.AsyncClient(base_url=base_url, timeout=timeout)
