"""
Telegram webhook routes.

- Webhook registration
- /start handling: verifies the start token and replies with an auth token
"""

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, Form, HTTPException, Request, status
from pydantic import BaseModel

from api.core.config import Settings, get_settings
from api.core.dependencies import (
    get_auth_token_manager,
    get_chat_version_lookup,
    get_start_token_manager,
)
from api.services.chat_token import ChatCredential, ChatTokenManager, VersionLookup
from api.services.signing import constant_time_compare
from api.services.start_token import StartTokenManager
from api.services.telegram_service import TelegramError, send_text, set_webhook

logger = logging.getLogger(__name__)

router = APIRouter()

GITHUB_URL = "https://github.com/sagan/send2tg"
HASH_AUTH_PREFIX = "auth/"
MESSAGE_WELCOME = (
    "This bot is powered by send2tg, a free and open source web app that "
    "allows you to send messages and files directly to your Telegram. "
    f"Check {GITHUB_URL} for more details"
)


class TelegramWebhookResponse(BaseModel):
    """Telegram webhook response."""

    ok: bool = True


class SetWebhookResponse(BaseModel):
    """Webhook registration result."""

    url: str
    body: dict[str, Any]


def _require_bot(settings: Settings) -> None:
    if not settings.bot_token:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Bot is not configured",
        )


def _origin(request: Request) -> str:
    """Public origin of the request, honouring X-Forwarded-Proto."""
    scheme = request.url.scheme
    if request.headers.get("X-Forwarded-Proto") == "https":
        scheme = "https"
    return f"{scheme}://{request.url.netloc}"


def _parse_command(text: str) -> tuple[str, str | None]:
    """Extract command name and argument from a message."""
    parts = text.strip().split(maxsplit=1)
    if not parts:
        return "", None
    command = parts[0].split("@", 1)[0]
    argument = parts[1].strip() if len(parts) > 1 else None
    return command.lower(), argument


def _chat_name(message: dict[str, Any]) -> str:
    chat = message.get("chat") or {}
    sender = message.get("from") or {}
    for name in (chat.get("title"), chat.get("first_name"), sender.get("first_name")):
        if name and isinstance(name, str):
            return name
    return ""


def _welcome_text(
    settings: Settings,
    origin: str,
    credential: ChatCredential,
    auth_token: str,
    preferred_expiry: str,
) -> str:
    lines = [
        f"Welcome to use {settings.site_name}:",
        origin,
        MESSAGE_WELCOME,
        "",
        f'Add chat url for "{credential.name}" ({credential.id}): '
        f"{origin}/#{HASH_AUTH_PREFIX}{auth_token}",
    ]
    if credential.expires:
        valid_until = datetime.fromtimestamp(credential.expires / 1000, tz=timezone.utc)
        lines.append(f"(Valid until {valid_until.isoformat()})")
    if preferred_expiry:
        lines.append(f"Requested chat validity: {preferred_expiry}")
    lines.append("Auth token (paste it in web app to manually add chat):")
    return "\n".join(lines)


@router.post("/set_telegram", response_model=SetWebhookResponse)
async def register_webhook(
    request: Request,
    token: str | None = Form(None),
    settings: Settings = Depends(get_settings),
) -> SetWebhookResponse:
    """Point the bot's webhook at this deployment. Requires the admin token."""
    _require_bot(settings)
    if not token or not constant_time_compare(settings.signing_secret, token):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    url = f"{_origin(request)}/api/webhook"
    try:
        body = await set_webhook(settings.bot_token, url, settings.webhook_secret)
    except TelegramError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"url={url} {exc}",
        ) from exc

    logger.info("Telegram webhook set to %s", url)
    return SetWebhookResponse(url=url, body=body)


@router.post("/webhook", response_model=TelegramWebhookResponse)
async def telegram_webhook(
    request: Request,
    settings: Settings = Depends(get_settings),
    start_manager: StartTokenManager = Depends(get_start_token_manager),
    auth_manager: ChatTokenManager = Depends(get_auth_token_manager),
    version_lookup: VersionLookup = Depends(get_chat_version_lookup),
) -> TelegramWebhookResponse:
    _require_bot(settings)
    secret = request.headers.get("X-Telegram-Bot-Api-Secret-Token")
    if not secret or not constant_time_compare(settings.webhook_secret, secret):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid secret")

    try:
        update = await request.json()
    except ValueError:
        return TelegramWebhookResponse(ok=True)
    message = update.get("message") if isinstance(update, dict) else None
    if not isinstance(message, dict):
        return TelegramWebhookResponse(ok=True)
    text = message.get("text")
    chat = message.get("chat")
    sender = message.get("from")
    if (
        not isinstance(text, str)
        or not isinstance(chat, dict)
        or not isinstance(sender, dict)
        or not isinstance(chat.get("id"), int)
        or not isinstance(sender.get("id"), int)
    ):
        return TelegramWebhookResponse(ok=True)

    if settings.bot_name:
        text = text.removeprefix(f"@{settings.bot_name} ")
    command, start_token = _parse_command(text)
    if command != "/start":
        return TelegramWebhookResponse(ok=True)

    chat_id: int = chat["id"]
    sender_id: int = sender["id"]
    preferred_expiry = ""

    if settings.public_level == 2:
        accepted = not settings.static_start_token or constant_time_compare(
            start_token or "", settings.static_start_token
        )
    else:
        # Group chats only accept start tokens bound to the sender.
        verification = start_manager.verify(
            start_token or "", sender_id, strict_binding=chat_id < 0
        )
        accepted = verification.ok
        if accepted:
            _, preferred_expiry = verification.options.expires_duration()
        else:
            logger.info(
                "Start token rejected for chat %s: %s",
                chat_id,
                verification.error.value if verification.error else "unknown",
            )

    if not accepted:
        return TelegramWebhookResponse(ok=True)

    credential = ChatCredential(
        id=chat_id,
        name=_chat_name(message),
        version=version_lookup(chat_id),
        expires=auth_manager.now() + settings.auth_token_valid_ms,
    )
    auth_token = auth_manager.issue(credential)
    welcome = _welcome_text(
        settings, _origin(request), credential, auth_token, preferred_expiry
    )

    # Always reply to the sender; for group chats the chat id is the group.
    try:
        await send_text(settings.bot_token, sender_id, welcome)
        await send_text(settings.bot_token, sender_id, auth_token)
    except TelegramError as exc:
        logger.warning("Failed to deliver auth token to %s: %s", sender_id, exc)

    return TelegramWebhookResponse(ok=True)
