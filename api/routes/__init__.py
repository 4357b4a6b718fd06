"""API Routes Package."""

from api.routes import chat, telegram

__all__ = ["chat", "telegram"]
