"""
FastAPI application entry point.

Administrative surface of the queue: enqueue and inspect jobs, release a
dead worker's locks, delete everything, health and metrics.
"""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from starlette.middleware.base import BaseHTTPMiddleware

from delayed_jobs import __version__
from delayed_jobs.api.middleware import record_request_metrics
from delayed_jobs.api.routes import health_router, jobs_router, workers_router
from delayed_jobs.config import get_settings
from delayed_jobs.db import close_db, get_engine, init_db
from delayed_jobs.observability.logging import setup_logging
from delayed_jobs.observability.metrics import setup_metrics
from delayed_jobs.observability.tracing import (
    instrument_fastapi,
    instrument_sqlalchemy,
    setup_tracing,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    setup_logging()
    setup_metrics()
    setup_tracing()
    await init_db()
    instrument_sqlalchemy(get_engine())

    logger.info("Application started")

    yield

    await close_db()
    logger.info("Application shutdown")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: The configured application instance.
    """
    app = FastAPI(
        title="Delayed Jobs API",
        description="Persistent job queue with optimistic-lock reservation",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_middleware(BaseHTTPMiddleware, dispatch=record_request_metrics)

    app.include_router(health_router)
    app.include_router(jobs_router)
    app.include_router(workers_router)

    instrument_fastapi(app)

    return app


def run() -> None:
    """Run the API server."""
    settings = get_settings()

    uvicorn.run(
        "delayed_jobs.api.main:create_app",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
