"""
Application factory for the send2tg API.

Serves the stateless chat authorization flow and message delivery.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.core.config import get_settings
from api.routes import chat, telegram

logger = logging.getLogger(__name__)

API_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings = get_settings()
    logger.info("Starting send2tg API...")

    if not settings.bot_token:
        logger.warning("BOT_TOKEN is not set. All token endpoints will fail.")
    if not settings.token:
        logger.info("TOKEN is not set. Signing keys are derived from BOT_TOKEN.")

    logger.info(
        "API running in %s mode, public level %d",
        "debug" if settings.api_debug else "production",
        settings.public_level,
    )
    yield
    logger.info("Shutdown complete")


def create_app() -> FastAPI:
    """Create the API application."""
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())

    app = FastAPI(
        title="send2tg API",
        description="Send messages and files to Telegram chats authorized by signed tokens",
        version=API_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    cors_origins = [origin.strip() for origin in settings.cors_origins.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(chat.router, prefix="/api", tags=["Chats"])
    app.include_router(telegram.router, prefix="/api", tags=["Telegram"])

    @app.get("/", tags=["Health"])
    async def root() -> dict[str, str]:
        return {
            "name": "send2tg API",
            "version": API_VERSION,
            "status": "running",
        }

    @app.get("/health", tags=["Health"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint for monitoring."""
        return {"status": "healthy"}

    return app
