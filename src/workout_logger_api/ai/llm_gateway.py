"""LLM gateway: one call interface over the OpenAI, local-model and mock backends."""
import inspect
import logging
from typing import Any, Callable, Dict, Optional, Type, TypeVar

from pydantic import TypeAdapter, ValidationError

from workout_logger_api.ai.client_factory import DEFAULT_TIMEOUT, AIClientFactory, AIRequestContext
from workout_logger_api.ai.retry import DEFAULT_BASE_DELAY_MS, DEFAULT_MAX_ATTEMPTS, retry_async_call
from workout_logger_api.config import settings
from workout_logger_api.errors import LLMContentError, LLMError, LLMTransportError


logger = logging.getLogger(__name__)

T = TypeVar("T")

MockResponder = Callable[[str, str], Any]


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json / ``` Markdown fence from model output."""
    trimmed = text.strip()
    if trimmed.startswith("```json"):
        trimmed = trimmed[len("```json"):]
    elif trimmed.startswith("```"):
        trimmed = trimmed[len("```"):]
    if trimmed.endswith("```"):
        trimmed = trimmed[: -len("```")]
    return trimmed.strip()


def mock_map_key(system: str, user: str) -> str:
    """Lookup key used by map-backed mock backends."""
    return f"{system}\n--\n{user}"


class LLMBackend:
    """Base class for the supported model backends."""

    name = "backend"

    async def generate(self, system: str, user: str) -> str:
        raise NotImplementedError

    async def aclose(self) -> None:
        pass

    def describe(self) -> str:
        return self.name


class OpenAIBackend(LLMBackend):
    """OpenAI-style chat completion backend (JSON response format)."""

    name = "openai"
    DEFAULT_MODEL = "gpt-4o-mini"

    def __init__(
        self,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        client: Any = None,
    ):
        self.model = model or self.DEFAULT_MODEL
        self._api_key = api_key
        self._timeout = timeout
        self._client = client
        logger.info(f"OpenAI backend selected model={self.model}")

    def _get_client(self) -> Any:
        if self._client is None:
            context = AIRequestContext(
                feature_name="workout_command_pipeline",
                custom_properties={"model": self.model},
            )
            self._client = AIClientFactory.create_openai_client(
                context=context,
                api_key=self._api_key,
                timeout=self._timeout,
            )
        return self._client

    async def generate(self, system: str, user: str) -> str:
        client = self._get_client()
        response = await client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            temperature=0.1,
            response_format={"type": "json_object"},
        )
        if not response.choices:
            raise LLMTransportError("OpenAI returned no choices")
        content = response.choices[0].message.content or ""
        logger.debug(f"OpenAI response length={len(content)}")
        return content

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()

    def describe(self) -> str:
        return f"openai({self.model})"


class OllamaBackend(LLMBackend):
    """Local model served by Ollama's HTTP generate endpoint."""

    name = "ollama"
    DEFAULT_MODEL = "llama3.2:3b"

    def __init__(
        self,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        client: Any = None,
    ):
        self.model = model or self.DEFAULT_MODEL
        self._client = client or AIClientFactory.create_ollama_client(base_url=base_url, timeout=timeout)
        logger.info(f"Ollama backend selected model={self.model}")

    async def generate(self, system: str, user: str) -> str:
        response = await self._client.post(
            "/api/generate",
            json={
                "model": self.model,
                "system": system,
                "prompt": user,
                "stream": False,
                "format": "json",
                "keep_alive": "30m",
                "options": {"temperature": 0.001},
            },
        )
        response.raise_for_status()
        content = response.json().get("response", "")
        logger.debug(f"Ollama response length={len(content)}")
        return content

    async def aclose(self) -> None:
        await self._client.aclose()

    def describe(self) -> str:
        return f"ollama({self.model})"


class MockBackend(LLMBackend):
    """Deterministic backend driven by a function of (system, user)."""

    name = "mock"

    def __init__(self, responder: MockResponder):
        self._responder = responder

    @classmethod
    def from_map(cls, responses: Dict[str, str]) -> "MockBackend":
        """Answer from a fixed map keyed by mock_map_key; unknown prompts get ''."""
        logger.debug(f"Creating mock map backend with {len(responses)} entries")
        table = dict(responses)
        return cls(lambda system, user: table.get(mock_map_key(system, user), ""))

    async def generate(self, system: str, user: str) -> str:
        result = self._responder(system, user)
        if inspect.isawaitable(result):
            result = await result
        return result


class LLMGateway:
    """
    Stateless wrapper around one backend.

    `call` returns trimmed text and retries transient transport failures.
    `call_json` additionally strips code fences and validates the result;
    a content failure is never retried.
    """

    def __init__(
        self,
        backend: LLMBackend,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay_ms: int = DEFAULT_BASE_DELAY_MS,
    ):
        self.backend = backend
        self.max_attempts = max_attempts
        self.base_delay_ms = base_delay_ms

    @classmethod
    def openai(cls, model: Optional[str] = None, api_key: Optional[str] = None, **kwargs: Any) -> "LLMGateway":
        return cls(OpenAIBackend(model=model, api_key=api_key, timeout=settings.LLM_TIMEOUT_SECONDS), **kwargs)

    @classmethod
    def ollama(cls, model: Optional[str] = None, base_url: Optional[str] = None, **kwargs: Any) -> "LLMGateway":
        return cls(OllamaBackend(model=model, base_url=base_url, timeout=settings.LLM_TIMEOUT_SECONDS), **kwargs)

    @classmethod
    def mock(cls, responder: MockResponder, **kwargs: Any) -> "LLMGateway":
        kwargs.setdefault("max_attempts", 1)
        return cls(MockBackend(responder), **kwargs)

    @classmethod
    def mock_map(cls, responses: Dict[str, str], **kwargs: Any) -> "LLMGateway":
        kwargs.setdefault("max_attempts", 1)
        return cls(MockBackend.from_map(responses), **kwargs)

    @classmethod
    def from_settings(cls) -> "LLMGateway":
        """Build the gateway selected by LLM_PROVIDER."""
        retry_kwargs = {
            "max_attempts": settings.LLM_MAX_ATTEMPTS,
            "base_delay_ms": settings.LLM_RETRY_BASE_DELAY_MS,
        }
        if settings.LLM_PROVIDER == "ollama":
            return cls.ollama(model=settings.LLM_MODEL, **retry_kwargs)
        if settings.LLM_PROVIDER == "mock":
            # Offline development: every prompt gets an empty command list
            return cls.mock(lambda system, user: '{"commands": []}')
        return cls.openai(model=settings.LLM_MODEL, **retry_kwargs)

    async def call(self, system: str, user: str) -> str:
        logger.debug(f"LLM call backend={self.backend.describe()} user_len={len(user)}")
        try:
            raw = await retry_async_call(
                self.backend.generate,
                system,
                user,
                max_attempts=self.max_attempts,
                base_delay_ms=self.base_delay_ms,
            )
        except LLMError:
            raise
        except Exception as e:
            logger.error(f"LLM call failed backend={self.backend.describe()}: {e}")
            raise LLMTransportError(f"{self.backend.describe()} call failed: {e}") from e
        return raw.strip()

    async def call_json(self, system: str, user: str, response_model: Type[T]) -> T:
        raw = await self.call(system, user)
        logger.debug(f"raw LLM output len={len(raw)}")
        stripped = strip_code_fences(raw)
        try:
            return TypeAdapter(response_model).validate_json(stripped)
        except ValidationError as e:
            logger.error(f"Cannot parse LLM JSON output: {stripped} -- error: {e}")
            raise LLMContentError(stripped, e) from e

    async def aclose(self) -> None:
        await self.backend.aclose()
