"""Main FastAPI application."""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from workout_logger_api.ai.llm_gateway import LLMGateway
from workout_logger_api.api.routes import router
from workout_logger_api.config import settings
from workout_logger_api.session import Session
from workout_logger_api.storage.sqlite_store import SqliteWorkoutStore


logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(database_path: Optional[str] = None, llm: Optional[LLMGateway] = None) -> FastAPI:
    """
    Build the application.

    The store and the LLM gateway are opened in the lifespan so tests can
    inject an in-memory database and a mock gateway.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store = await SqliteWorkoutStore.connect(database_path or settings.DATABASE_PATH)
        gateway = llm or LLMGateway.from_settings()
        session = Session(store, gateway, settings.REQUEST_STRING_OWNER, settings.RPE_SCALE_TEXT)
        await session.restore_in_progress_workout()
        app.state.session = session
        logger.info(f"Workout logger started (llm={gateway.backend.describe()}, env={settings.ENVIRONMENT})")
        try:
            yield
        finally:
            await gateway.aclose()
            await store.close()

    app = FastAPI(title="Workout Logger API", lifespan=lifespan)

    # Configure CORS to allow requests from the UI
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://localhost:3001"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)
    return app


app = create_app()
