"""
Main FastAPI application instance.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from deedlink import __version__
from deedlink.api.conversions import router as conversions_router
from deedlink.api.error_handlers import register_error_handlers
from deedlink.api.middleware import RequestCorrelationMiddleware
from deedlink.core.config import settings
from deedlink.core.logging_config import setup_logging
from deedlink.utils.version import format_version_info

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Lifespan context manager for FastAPI application.

    Configures logging on startup; JSON file logs are written in production
    when a log file is configured.
    """
    setup_logging(
        log_file=settings.log_file,
        json_logs=(settings.environment == "production"),
        enable_console=True,
    )
    logger.info(f"Starting Deedlink API v{__version__} in {settings.environment} mode")

    yield

    logger.info("Shutting down Deedlink API")


app = FastAPI(
    title="Deedlink API",
    description="Reconcile Deed Mapper tract descriptions with their KML placemarks",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)
app.add_middleware(RequestCorrelationMiddleware)

register_error_handlers(app)

app.include_router(conversions_router, prefix=settings.api_v1_prefix)


@app.get("/")
async def root() -> dict[str, str]:
    """
    Root endpoint returning API information.

    Returns:
        dict[str, str]: API information including name and version.
    """
    return format_version_info()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """
    Health check endpoint.

    Returns:
        dict[str, str]: Health status.
    """
    return {"status": "healthy", "version": __version__}
