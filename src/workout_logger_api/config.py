"""Configuration settings for the workout logger API."""
import os
from typing import Literal


EnvironmentType = Literal["development", "staging", "production"]
LLMProviderType = Literal["openai", "ollama", "mock"]


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


class Settings:
    """Application settings."""

    # Feature flags
    HELICONE_ENABLED: bool = False

    # Environment
    ENVIRONMENT: EnvironmentType = "development"
    LOG_LEVEL: str = "INFO"

    # LLM backend
    LLM_PROVIDER: LLMProviderType = "openai"
    LLM_MODEL: str | None = None
    OLLAMA_BASE_URL: str = "http://localhost:11434"
    LLM_TIMEOUT_SECONDS: float = 60.0
    LLM_MAX_ATTEMPTS: int = 3
    LLM_RETRY_BASE_DELAY_MS: int = 500

    # Prompt tuning
    RPE_SCALE_TEXT: str | None = None

    # Storage
    DATABASE_PATH: str = "workouts.db"
    REQUEST_STRING_OWNER: str = "cli"

    # API Keys
    OPENAI_API_KEY: str | None = None
    HELICONE_API_KEY: str | None = None

    def __init__(self):
        # Environment
        env = os.getenv("ENVIRONMENT", "development").lower()
        if env in ("development", "staging", "production"):
            self.ENVIRONMENT = env  # type: ignore
        else:
            self.ENVIRONMENT = "development"
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

        # Feature flags
        self.HELICONE_ENABLED = os.getenv("HELICONE_ENABLED", "false").lower() == "true"

        # LLM backend
        provider = os.getenv("LLM_PROVIDER", "openai").lower()
        if provider in ("openai", "ollama", "mock"):
            self.LLM_PROVIDER = provider  # type: ignore
        else:
            self.LLM_PROVIDER = "openai"
        self.LLM_MODEL = os.getenv("LLM_MODEL") or None
        self.OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
        self.LLM_TIMEOUT_SECONDS = _env_float("LLM_TIMEOUT_SECONDS", 60.0)
        self.LLM_MAX_ATTEMPTS = max(1, _env_int("LLM_MAX_ATTEMPTS", 3))
        self.LLM_RETRY_BASE_DELAY_MS = max(0, _env_int("LLM_RETRY_BASE_DELAY_MS", 500))

        # Prompt tuning
        self.RPE_SCALE_TEXT = os.getenv("RPE_SCALE_TEXT") or None

        # Storage
        self.DATABASE_PATH = os.getenv("DATABASE_PATH", "workouts.db")
        self.REQUEST_STRING_OWNER = os.getenv("REQUEST_STRING_OWNER", "cli")

        # API Keys
        self.OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
        self.HELICONE_API_KEY = os.getenv("HELICONE_API_KEY")


settings = Settings()
