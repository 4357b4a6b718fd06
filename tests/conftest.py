"""
Pytest Configuration and Fixtures

Shared fixtures for all tests.
"""

from typing import AsyncGenerator, Generator

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from api.app import create_app
from api.core.config import Settings, get_settings
from api.services.chat_token import ChatTokenManager
from api.services.keys import SigningKeys, TokenConfig
from api.services.start_token import StartTokenManager

# Fixed clock reading for deterministic token tests (2023-11-14T22:13:20Z)
NOW_MS = 1_700_000_000_000

BASE_SECRET = "S"
BOT_TOKEN = "123456:TEST-BOT-TOKEN"
BOT_NAME = "send2tg_bot"


@pytest.fixture
def now_ms() -> int:
    return NOW_MS


@pytest.fixture
def settings() -> Settings:
    """Settings for a deployment with dynamic start tokens."""
    return Settings(
        _env_file=None,
        bot_token=BOT_TOKEN,
        bot_name=BOT_NAME,
        token=BASE_SECRET,
        public_level=1,
    )


@pytest.fixture
def keys(settings: Settings) -> SigningKeys:
    return SigningKeys.derive(TokenConfig(BASE_SECRET, settings.public_level))


@pytest.fixture
def start_manager(keys: SigningKeys) -> StartTokenManager:
    return StartTokenManager(keys.start, clock=lambda: NOW_MS)


@pytest.fixture
def auth_manager(keys: SigningKeys) -> ChatTokenManager:
    return ChatTokenManager(keys.auth, clock=lambda: NOW_MS)


@pytest.fixture
def chat_manager(keys: SigningKeys) -> ChatTokenManager:
    return ChatTokenManager(keys.chat, clock=lambda: NOW_MS)


# ===========================================
# API Fixtures
# ===========================================


@pytest.fixture
def app(settings: Settings) -> Generator[FastAPI, None, None]:
    """Create the API with test settings."""
    application = create_app()
    application.dependency_overrides[get_settings] = lambda: settings
    yield application
    application.dependency_overrides.clear()


@pytest_asyncio.fixture
async def async_client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client for API testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
