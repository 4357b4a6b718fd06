"""
Chat authorization and delivery routes.

- Start token issuance for the bot /start flow
- Auth token to chat token exchange
- Sending text and files to an authorized chat
"""

import logging

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from api.core.config import Settings, get_settings
from api.core.dependencies import (
    get_auth_token_manager,
    get_chat_token_manager,
    get_start_token_manager,
)
from api.services.auth_options import AuthOptions
from api.services.chat_token import ChatTokenManager, exchange_auth_token
from api.services.codec import is_int64, parse_strict_int
from api.services.signing import constant_time_compare
from api.services.start_token import StartTokenManager
from api.services.telegram_service import TelegramError, send_file, send_text
from api.services.token_result import TokenErrorKind

logger = logging.getLogger(__name__)

router = APIRouter()


class StartResponse(BaseModel):
    """Start token response."""

    bot_name: str
    start_token: str
    public_level: int
    user_start_token: str | None = None
    user: int | None = None
    expires: int | None = None


class ChatTokenResponse(BaseModel):
    """Chat token issued in exchange for an auth token."""

    chat_token: str


class SendResponse(BaseModel):
    """Send result."""

    ok: bool = True
    dry_run: bool = False


def token_rejection(kind: TokenErrorKind) -> HTTPException:
    """Map a token rejection to an HTTP error."""
    if kind.is_malformed:
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=kind.value)
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=kind.value)


def _require_bot(settings: Settings) -> None:
    if not settings.bot_token:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Bot is not configured",
        )


@router.post(
    "/start",
    response_model=StartResponse,
    response_model_exclude_none=True,
)
async def create_start_token(
    token: str | None = Form(None),
    user: str | None = Form(None),
    expires: str | None = Form(None),
    settings: Settings = Depends(get_settings),
    manager: StartTokenManager = Depends(get_start_token_manager),
) -> StartResponse | JSONResponse:
    """
    Issue start tokens for the bot deep link.

    At public level 2 the static start token is returned; at level 0 the
    caller must present the admin token.
    """
    _require_bot(settings)
    if not settings.bot_name:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Bot name is not configured",
        )

    if settings.public_level == 2:
        return StartResponse(
            bot_name=settings.bot_name,
            start_token=settings.static_start_token,
            public_level=settings.public_level,
        )

    if settings.public_level <= 0:
        if not token or not constant_time_compare(token, settings.signing_secret):
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"public_level": settings.public_level},
            )

    user_id = parse_strict_int(user)
    if user_id is not None and not is_int64(user_id):
        user_id = None
    options = AuthOptions.for_duration(parse_strict_int(expires))
    now = manager.now()

    start_token = manager.issue(options=options, now=now)
    user_start_token = None
    if user_id:
        user_start_token = manager.issue(user_id=user_id, options=options, now=now)

    return StartResponse(
        bot_name=settings.bot_name,
        start_token=start_token,
        public_level=settings.public_level,
        user_start_token=user_start_token,
        user=user_id or None,
        expires=now + manager.valid_duration_ms,
    )


@router.post("/auth", response_model=ChatTokenResponse)
async def exchange_token(
    auth_token: str | None = Form(None),
    expires: str | None = Form(None),
    settings: Settings = Depends(get_settings),
    auth_manager: ChatTokenManager = Depends(get_auth_token_manager),
    chat_manager: ChatTokenManager = Depends(get_chat_token_manager),
) -> ChatTokenResponse:
    """Verify an auth token and return a chat token for the same chat."""
    _require_bot(settings)
    if not auth_token:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing auth_token")

    result = exchange_auth_token(
        auth_manager,
        chat_manager,
        auth_token,
        expires=parse_strict_int(expires),
    )
    if not result.ok:
        logger.info("Auth token rejected: %s", result.error.value)
        raise token_rejection(result.error)

    return ChatTokenResponse(chat_token=result.unwrap())


@router.post("/send", response_model=SendResponse)
async def send(
    chat: str | None = Form(None),
    text: str | None = Form(None),
    file: UploadFile | None = File(None),
    dry_run: str | None = Form(None),
    settings: Settings = Depends(get_settings),
    manager: ChatTokenManager = Depends(get_chat_token_manager),
) -> SendResponse:
    """
    Send text and/or a file to the chat named by a chat token.

    The token is verified before anything is sent. With dry_run=1 the
    request stops after verification.
    """
    _require_bot(settings)
    is_dry_run = dry_run == "1"
    if not chat or (not text and file is None and not is_dry_run):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Nothing to send")

    result = manager.parse_and_verify(chat)
    if not result.ok:
        logger.info("Chat token rejected: %s", result.error.value)
        raise token_rejection(result.error)
    credential = result.unwrap()

    if is_dry_run:
        return SendResponse(dry_run=True)

    try:
        if file is not None:
            await send_file(
                settings.bot_token,
                credential.id,
                file.filename or "file",
                await file.read(),
                content_type=file.content_type,
                caption=text,
            )
        else:
            await send_text(settings.bot_token, credential.id, text or "")
    except TelegramError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(exc),
        ) from exc

    return SendResponse()
