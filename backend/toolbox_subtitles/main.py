"""FastAPI application."""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from sqlalchemy import text

from toolbox_subtitles.config import settings
from toolbox_subtitles.database import engine
from toolbox_subtitles.logging_config import setup_logging
from toolbox_subtitles.routes import subtitles as subtitles_module
from toolbox_subtitles.services.job_queue import queue, resume_pending_jobs

# Initialize logging
setup_logging()
logger = logging.getLogger("toolbox_subtitles.main")

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown."""
    logger.info("Starting toolbox subtitle service")
    logger.info("Environment: %s", settings.environment)
    logger.info("CORS origins: %s", settings.cors_origins_list)

    from toolbox_subtitles.migrations_utils import check_migration_status
    from toolbox_subtitles.startup_checks import run_startup_checks

    await run_startup_checks()

    current_rev, head_rev = await check_migration_status(engine)
    logger.info("Database migration status: %s (head: %s)", current_rev, head_rev)
    if current_rev != head_rev and settings.is_production:
        logger.warning(
            "Database migrations are not up to date. "
            "Run 'alembic upgrade head' before starting in production."
        )

    # Expose queue via app state; only auto-start outside of unit tests
    app.state.queue = queue
    force_queue_start = os.getenv("FORCE_QUEUE_START") == "1"
    if settings.is_testing and not force_queue_start:
        logger.info("Testing mode detected; job queue will be started by tests as needed")
    else:
        await queue.start()
        resumed = await resume_pending_jobs(queue)
        if resumed:
            logger.info("Job queue started and resumed %s unfinished job(s)", resumed)
        else:
            logger.info("Job queue started")

    yield

    logger.info("Shutting down toolbox subtitle service")
    await queue.stop()


app = FastAPI(
    title="Toolbox Talk Subtitles",
    description="Transcription, subtitle generation and translation for toolbox talk videos",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(subtitles_module.router)
app.include_router(subtitles_module.languages_router)

# Public base URL of LocalObjectStorage
app.mount("/files", StaticFiles(directory=settings.storage_root), name="files")


@app.get("/health")
async def health_check():
    """Health check endpoint with database status."""
    db_status = "unknown"
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        db_status = "healthy"
    except Exception as e:
        logger.error("Database health check failed: %s", e)
        db_status = "unhealthy"

    return {
        "status": "healthy" if db_status == "healthy" else "degraded",
        "version": VERSION,
        "environment": settings.environment,
        "database": db_status,
    }
