"""
Test fixtures for workout-logger-api.

Provides an in-memory SQLite store, deterministic mock LLM gateways and a
ready-to-use Session so tests run fast and offline.
"""

import json
import sys
from pathlib import Path
from typing import Any, Dict, List

import pytest
import pytest_asyncio

# Repo root: .../workout-logger-api
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

# Make src/ importable so tests can do `import workout_logger_api...`
for p in {ROOT, SRC}:
    p_str = str(p)
    if p_str not in sys.path:
        sys.path.insert(0, p_str)

from workout_logger_api.ai.llm_gateway import LLMGateway
from workout_logger_api.session import Session
from workout_logger_api.storage.sqlite_store import SqliteWorkoutStore


# ---------------------------------------------------------------------------
# LLM doubles
# ---------------------------------------------------------------------------


def commands_gateway(commands: List[Dict[str, Any]]) -> LLMGateway:
    """Gateway whose every answer is the given command list."""
    payload = json.dumps({"commands": commands})
    return LLMGateway.mock(lambda system, user: payload)


@pytest.fixture
def empty_commands_llm() -> LLMGateway:
    return commands_gateway([])


# ---------------------------------------------------------------------------
# Storage and session
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def store():
    """Fresh in-memory store per test."""
    store = await SqliteWorkoutStore.connect(":memory:")
    yield store
    await store.close()


@pytest_asyncio.fixture
async def session(store, empty_commands_llm):
    """Session without an active workout."""
    return Session(store, empty_commands_llm, request_string_owner="test")


@pytest_asyncio.fixture
async def active_session(session):
    """Session with a fresh active workout."""
    await session.new_workout("Test Workout")
    return session


@pytest.fixture
def gateway_for():
    """Factory fixture: build a gateway that always answers with the given commands."""
    return commands_gateway
