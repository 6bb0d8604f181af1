"""Escrow Engine API — FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map EscrowError -> structured JSON responses
    - CORS configured from settings (not hardcoded)
    - Database initialized on startup and disposed on shutdown via lifespan

Design Decisions:
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
    - Error handlers in api/error_handlers.py: keeps this module's imports small
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from escrow_engine import __version__
from escrow_engine.api.error_handlers import register_error_handlers
from escrow_engine.api.routes import disputes, escrows, health, users
from escrow_engine.config import get_settings
from escrow_engine.infrastructure import database as db_module
from escrow_engine.infrastructure.observability import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    db_module.init_db(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    logger.info("Escrow Engine API started")
    yield
    if db_module.db_manager is not None:
        await db_module.db_manager.dispose()
    logger.info("Escrow Engine API shutting down")


app = FastAPI(
    title="Escrow Engine API", version=__version__, lifespan=lifespan,
)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(escrows.router)
app.include_router(disputes.router)
app.include_router(users.router)

register_error_handlers(app)
