"""FastAPI application entry point for the bridge host."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from visionbridge.api.routes import router
from visionbridge.config import get_settings
from visionbridge.host.commands import HostCommands
from visionbridge.host.pool import CommandPool

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: initialize on startup, clean up on shutdown."""
    settings = get_settings()
    app.state.settings = settings

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting VisionBridge host (app_dir=%s, model=%s, max_concurrent=%s)",
        settings.app_dir,
        settings.model_file,
        settings.max_concurrent,
    )

    command_pool = CommandPool(settings)
    app.state.command_pool = command_pool
    app.state.host_commands = HostCommands(settings, command_pool)

    logger.info("VisionBridge host ready")
    yield

    logger.info("Shutting down VisionBridge host")
    command_pool.shutdown()
    logger.info("VisionBridge host shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="VisionBridge",
        description="Host bridge for persisting and classifying uploaded images",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(router)
    return application


app = create_app()


def run() -> None:
    """Serve the host API with uvicorn using the configured host and port."""
    settings = get_settings()
    uvicorn.run("visionbridge.main:app", host=settings.host, port=settings.port)
