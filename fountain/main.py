"""Fountain Coordinator API — FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map FountainError → structured JSON responses
    - CORS configured from settings (not hardcoded)
    - ServiceContainer built once in the lifespan and held on app.state

Design Decisions:
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
    - Confirmation consumer starts with the app and is drained on shutdown, so
      in-flight execution sequences finish before the DB engine is disposed
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from fountain.api.error_handlers import register_error_handlers
from fountain.api.routes import credentials, deposits, health, operations
from fountain.config import get_settings
from fountain.infrastructure.database import DatabaseSessionManager
from fountain.infrastructure.observability import setup_logging
from fountain.services.container import build_container

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    db_manager = DatabaseSessionManager(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    if settings.auto_create_schema:
        await db_manager.create_all()
    container = build_container(settings, db_manager)
    await container.start()
    app.state.container = container
    logger.info("Fountain coordinator started")
    yield
    logger.info("Fountain coordinator shutting down")
    await container.shutdown()
    await db_manager.dispose()


app = FastAPI(
    title="Fountain Coordinator API", version="1.0.0", lifespan=lifespan,
)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(operations.router)
app.include_router(credentials.router)
app.include_router(deposits.router)

register_error_handlers(app)
