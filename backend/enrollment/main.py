"""Program Enrollment API — FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map EnrollmentServiceError → structured JSON responses
    - CORS configured from settings (not hardcoded)
    - Database initialized on startup; every open workspace closed on shutdown

Design Decisions:
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
    - Error handlers live in api/error_handlers.py
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from enrollment.api.error_handlers import register_error_handlers
from enrollment.api.routes import health, programs, workspace
from enrollment.api.routes.workspace_helpers import close_all_workspaces
from enrollment.config import get_settings
from enrollment.infrastructure import database
from enrollment.infrastructure.observability import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    if database.db_manager is None:
        database.init_db(
            settings.database_url,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
        )
    logger.info("Program Enrollment API started")
    yield
    await close_all_workspaces()
    logger.info("Program Enrollment API shutting down")


app = FastAPI(
    title="Program Enrollment API", version="1.0.0", lifespan=lifespan,
)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(workspace.router)
app.include_router(programs.router)

register_error_handlers(app)
