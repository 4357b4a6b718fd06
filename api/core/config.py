"""
Application Configuration.

Centralized settings management using pydantic-settings.
All configuration is loaded from environment variables.
"""

import hashlib
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from api.services.keys import TokenConfig


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Telegram bot
    bot_token: str = ""
    bot_name: str = ""
    bot_secret: str = ""  # webhook secret, defaults to sha256(bot_token)

    # Base signing secret and admin token, defaults to bot_token
    token: str = ""

    # 0: private, 1: dynamic start tokens, 2: static start token
    public_level: int = Field(default=0, ge=0, le=2)
    static_start_token: str = ""

    site_name: str = "send2tg"
    auth_token_valid_minutes: int = 15

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_debug: bool = False
    cors_origins: str = "*"

    # Logging
    log_level: str = "INFO"

    @property
    def signing_secret(self) -> str:
        """Base secret all token signing keys are derived from."""
        return self.token or self.bot_token

    @property
    def webhook_secret(self) -> str:
        """Secret Telegram echoes in X-Telegram-Bot-Api-Secret-Token."""
        if self.bot_secret:
            return self.bot_secret
        return hashlib.sha256(self.bot_token.encode("utf-8")).hexdigest()

    @property
    def auth_token_valid_ms(self) -> int:
        return self.auth_token_valid_minutes * 60 * 1000

    def token_config(self) -> TokenConfig:
        return TokenConfig(
            base_secret=self.signing_secret,
            public_level=self.public_level,
        )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
