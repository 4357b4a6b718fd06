"""
Telegram service helpers.

Delivers text and files to a chat and registers the webhook using the
Telegram Bot API.
"""

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org"
MAX_TEXT_LENGTH = 4096
MAX_CAPTION_LENGTH = 1024
REQUEST_TIMEOUT = 30


class TelegramError(Exception):
    """Raised when the Bot API rejects or fails a request."""


def split_text(text: str, size: int) -> list[str]:
    """Split text into chunks of at most size characters."""
    return [text[i : i + size] for i in range(0, len(text), size)]


@asynccontextmanager
async def _client_scope(client: httpx.AsyncClient | None) -> AsyncIterator[httpx.AsyncClient]:
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as new_client:
        yield new_client


async def _call(
    client: httpx.AsyncClient,
    bot_token: str,
    method: str,
    data: dict[str, str] | None = None,
    files: dict[str, Any] | None = None,
) -> dict[str, Any]:
    url = f"{TELEGRAM_API_URL}/bot{bot_token}/{method}"
    try:
        response = await client.post(url, data=data, files=files)
    except httpx.HTTPError as exc:
        logger.warning("Telegram %s error: %s", method, exc)
        raise TelegramError(f"Telegram {method} request failed") from exc

    if response.is_error:
        logger.warning("Telegram %s failed: %s", method, response.text)
        raise TelegramError(
            f"Telegram {method} failed with status {response.status_code}"
        )
    return response.json()


def _message_fields(chat_id: int) -> dict[str, str]:
    return {
        "chat_id": str(chat_id),
        "link_preview_options": json.dumps({"is_disabled": True}),
    }


async def send_text(
    bot_token: str,
    chat_id: int,
    text: str,
    client: httpx.AsyncClient | None = None,
) -> None:
    """Send text, split into several messages if it is too long."""
    if not text:
        raise TelegramError("Either text or a file is required")

    async with _client_scope(client) as http:
        for chunk in split_text(text, MAX_TEXT_LENGTH):
            data = _message_fields(chat_id)
            data["text"] = chunk
            await _call(http, bot_token, "sendMessage", data=data)


async def send_file(
    bot_token: str,
    chat_id: int,
    filename: str,
    content: bytes,
    content_type: str | None = None,
    caption: str | None = None,
    client: httpx.AsyncClient | None = None,
) -> None:
    """
    Send a file as a photo (images) or a document.

    Captions longer than Telegram allows are cut; the remainder follows as
    separate text messages.
    """
    content_type = content_type or "application/octet-stream"
    is_image = content_type.startswith("image/")
    method = "sendPhoto" if is_image else "sendDocument"
    field = "photo" if is_image else "document"

    chunks = split_text(caption, MAX_CAPTION_LENGTH) if caption else []
    data = _message_fields(chat_id)
    if chunks:
        data["caption"] = chunks[0]

    async with _client_scope(client) as http:
        await _call(
            http,
            bot_token,
            method,
            data=data,
            files={field: (filename, content, content_type)},
        )
        for chunk in chunks[1:]:
            await send_text(bot_token, chat_id, chunk, client=http)


async def set_webhook(
    bot_token: str,
    url: str,
    secret_token: str,
    client: httpx.AsyncClient | None = None,
) -> dict[str, Any]:
    """Configure the Telegram webhook endpoint."""
    async with _client_scope(client) as http:
        return await _call(
            http,
            bot_token,
            "setWebhook",
            data={"url": url, "secret_token": secret_token},
        )
