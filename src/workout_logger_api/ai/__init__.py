"""LLM client management for the workout logger API."""
from .client_factory import AIClientFactory, AIRequestContext
from .llm_gateway import (
    LLMBackend,
    LLMGateway,
    MockBackend,
    OllamaBackend,
    OpenAIBackend,
    mock_map_key,
    strip_code_fences,
)
from .retry import backoff_delay, is_retryable_error, retry_async_call

__all__ = [
    "AIClientFactory",
    "AIRequestContext",
    "LLMBackend",
    "LLMGateway",
    "MockBackend",
    "OllamaBackend",
    "OpenAIBackend",
    "backoff_delay",
    "is_retryable_error",
    "mock_map_key",
    "retry_async_call",
    "strip_code_fences",
]
