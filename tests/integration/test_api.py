"""
Integration Tests for API

Tests for the token endpoints through the ASGI app.
"""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi import FastAPI
from httpx import AsyncClient

from api.core.config import Settings, get_settings
from api.core.dependencies import get_chat_version_lookup
from api.services.auth_options import AuthOptions
from api.services.chat_token import ChatCredential, ChatTokenManager
from api.services.clock import now_ms
from api.services.keys import SigningKeys
from api.services.start_token import StartTokenManager
from api.services.telegram_service import TelegramError

HOUR_MS = 60 * 60 * 1000


@pytest.fixture
def live_auth_manager(keys: SigningKeys) -> ChatTokenManager:
    """Auth manager on the real clock, as used by the routes."""
    return ChatTokenManager(keys.auth)


@pytest.fixture
def live_chat_manager(keys: SigningKeys) -> ChatTokenManager:
    return ChatTokenManager(keys.chat)


def _update(chat_id: int, sender_id: int, text: str, **chat: str) -> dict:
    return {
        "update_id": 1,
        "message": {
            "message_id": 10,
            "chat": {"id": chat_id, **chat},
            "from": {"id": sender_id, "first_name": "Alice"},
            "text": text,
        },
    }


@pytest.mark.asyncio
class TestHealthEndpoint:
    """Tests for health check endpoint."""

    async def test_health_check(self, async_client: AsyncClient) -> None:
        response = await async_client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
class TestStartEndpoint:
    """Tests for start token issuance."""

    async def test_dynamic_start_token(
        self, async_client: AsyncClient, keys: SigningKeys, settings: Settings
    ) -> None:
        response = await async_client.post("/api/start")

        assert response.status_code == 200
        data = response.json()
        assert data["bot_name"] == settings.bot_name
        assert data["public_level"] == 1
        assert "user_start_token" not in data
        assert StartTokenManager(keys.start).verify(data["start_token"], 777).ok
        assert data["expires"] > now_ms()

    async def test_user_start_token(self, async_client: AsyncClient, keys: SigningKeys) -> None:
        response = await async_client.post("/api/start", data={"user": "42"})

        data = response.json()
        assert data["user"] == 42
        manager = StartTokenManager(keys.start)
        assert manager.verify(data["user_start_token"], 42, strict_binding=True).ok
        assert not manager.verify(data["user_start_token"], 43).ok

    async def test_invalid_user_is_ignored(self, async_client: AsyncClient) -> None:
        response = await async_client.post("/api/start", data={"user": "abc"})

        assert response.status_code == 200
        assert "user_start_token" not in response.json()

    async def test_out_of_range_user_is_ignored(self, async_client: AsyncClient) -> None:
        response = await async_client.post("/api/start", data={"user": "99999999999999999999"})

        assert response.status_code == 200
        assert "user_start_token" not in response.json()
        assert "user" not in response.json()

    async def test_preferred_expiry_embedded(
        self, async_client: AsyncClient, keys: SigningKeys
    ) -> None:
        response = await async_client.post("/api/start", data={"expires": str(24 * HOUR_MS)})

        result = StartTokenManager(keys.start).verify(response.json()["start_token"], 0)
        assert result.options == AuthOptions(flag=1, expires_code=3)

    async def test_private_requires_token(
        self, app: FastAPI, async_client: AsyncClient, settings: Settings
    ) -> None:
        private = settings.model_copy(update={"public_level": 0})
        app.dependency_overrides[get_settings] = lambda: private

        denied = await async_client.post("/api/start", data={"token": "wrong"})
        allowed = await async_client.post("/api/start", data={"token": "S"})

        assert denied.status_code == 401
        assert denied.json() == {"public_level": 0}
        assert allowed.status_code == 200
        assert allowed.json()["public_level"] == 0

    async def test_static_start_token(
        self, app: FastAPI, async_client: AsyncClient, settings: Settings
    ) -> None:
        public = settings.model_copy(
            update={"public_level": 2, "static_start_token": "open-sesame"}
        )
        app.dependency_overrides[get_settings] = lambda: public

        response = await async_client.post("/api/start")

        assert response.json() == {
            "bot_name": settings.bot_name,
            "start_token": "open-sesame",
            "public_level": 2,
        }

    async def test_unconfigured_bot(
        self, app: FastAPI, async_client: AsyncClient, settings: Settings
    ) -> None:
        app.dependency_overrides[get_settings] = lambda: settings.model_copy(
            update={"bot_token": ""}
        )

        response = await async_client.post("/api/start")

        assert response.status_code == 500


@pytest.mark.asyncio
class TestAuthEndpoint:
    """Tests for the auth token exchange."""

    async def test_exchange(
        self,
        async_client: AsyncClient,
        live_auth_manager: ChatTokenManager,
        live_chat_manager: ChatTokenManager,
    ) -> None:
        auth_token = live_auth_manager.issue(
            ChatCredential(id=555, name="Alice", expires=now_ms() + HOUR_MS)
        )

        response = await async_client.post("/api/auth", data={"auth_token": auth_token})

        assert response.status_code == 200
        chat = live_chat_manager.parse_and_verify(response.json()["chat_token"]).unwrap()
        assert chat.id == 555
        assert chat.name == "Alice"
        assert chat.expires is None

    async def test_exchange_with_expiry(
        self,
        async_client: AsyncClient,
        live_auth_manager: ChatTokenManager,
        live_chat_manager: ChatTokenManager,
    ) -> None:
        auth_token = live_auth_manager.issue(ChatCredential(id=555, expires=now_ms() + HOUR_MS))
        expires = now_ms() + 24 * HOUR_MS

        response = await async_client.post(
            "/api/auth", data={"auth_token": auth_token, "expires": str(expires)}
        )

        chat = live_chat_manager.parse_and_verify(response.json()["chat_token"]).unwrap()
        assert chat.expires == expires

    async def test_missing_token(self, async_client: AsyncClient) -> None:
        response = await async_client.post("/api/auth")

        assert response.status_code == 400

    async def test_malformed_token(self, async_client: AsyncClient) -> None:
        response = await async_client.post("/api/auth", data={"auth_token": "!!!"})

        assert response.status_code == 400
        assert response.json()["detail"] == "malformed_token"

    async def test_chat_token_is_rejected(
        self, async_client: AsyncClient, live_chat_manager: ChatTokenManager
    ) -> None:
        chat_token = live_chat_manager.issue(ChatCredential(id=555))

        response = await async_client.post("/api/auth", data={"auth_token": chat_token})

        assert response.status_code == 401
        assert response.json()["detail"] == "invalid_signature"

    async def test_expired_token(
        self, async_client: AsyncClient, live_auth_manager: ChatTokenManager
    ) -> None:
        auth_token = live_auth_manager.issue(ChatCredential(id=555, expires=now_ms() - 5000))

        response = await async_client.post("/api/auth", data={"auth_token": auth_token})

        assert response.status_code == 401
        assert response.json()["detail"] == "expired"

    async def test_revoked_token(
        self, app: FastAPI, async_client: AsyncClient, live_auth_manager: ChatTokenManager
    ) -> None:
        app.dependency_overrides[get_chat_version_lookup] = lambda: (lambda chat_id: 3)
        auth_token = live_auth_manager.issue(ChatCredential(id=555, version=0))

        response = await async_client.post("/api/auth", data={"auth_token": auth_token})

        assert response.status_code == 401
        assert response.json()["detail"] == "revoked"


@pytest.mark.asyncio
class TestSendEndpoint:
    """Tests for message delivery."""

    async def test_send_text(
        self,
        async_client: AsyncClient,
        live_chat_manager: ChatTokenManager,
        settings: Settings,
    ) -> None:
        chat_token = live_chat_manager.issue(ChatCredential(id=555))

        with patch("api.routes.chat.send_text", new_callable=AsyncMock) as mock_send:
            response = await async_client.post(
                "/api/send", data={"chat": chat_token, "text": "hello"}
            )

        assert response.status_code == 200
        assert response.json() == {"ok": True, "dry_run": False}
        mock_send.assert_awaited_once_with(settings.bot_token, 555, "hello")

    async def test_send_file(
        self, async_client: AsyncClient, live_chat_manager: ChatTokenManager
    ) -> None:
        chat_token = live_chat_manager.issue(ChatCredential(id=-100))

        with patch("api.routes.chat.send_file", new_callable=AsyncMock) as mock_send:
            response = await async_client.post(
                "/api/send",
                data={"chat": chat_token, "text": "caption"},
                files={"file": ("cat.png", b"\x89PNG", "image/png")},
            )

        assert response.status_code == 200
        args, kwargs = mock_send.call_args
        assert args[1:] == (-100, "cat.png", b"\x89PNG")
        assert kwargs == {"content_type": "image/png", "caption": "caption"}

    async def test_dry_run(
        self, async_client: AsyncClient, live_chat_manager: ChatTokenManager
    ) -> None:
        chat_token = live_chat_manager.issue(ChatCredential(id=555))

        with patch("api.routes.chat.send_text", new_callable=AsyncMock) as mock_send:
            response = await async_client.post(
                "/api/send", data={"chat": chat_token, "dry_run": "1"}
            )

        assert response.status_code == 200
        assert response.json()["dry_run"] is True
        mock_send.assert_not_awaited()

    async def test_nothing_to_send(
        self, async_client: AsyncClient, live_chat_manager: ChatTokenManager
    ) -> None:
        chat_token = live_chat_manager.issue(ChatCredential(id=555))

        response = await async_client.post("/api/send", data={"chat": chat_token})

        assert response.status_code == 400

    async def test_auth_token_cannot_send(
        self, async_client: AsyncClient, live_auth_manager: ChatTokenManager
    ) -> None:
        auth_token = live_auth_manager.issue(ChatCredential(id=555))

        with patch("api.routes.chat.send_text", new_callable=AsyncMock) as mock_send:
            response = await async_client.post(
                "/api/send", data={"chat": auth_token, "text": "hello"}
            )

        assert response.status_code == 401
        mock_send.assert_not_awaited()

    async def test_delivery_failure(
        self, async_client: AsyncClient, live_chat_manager: ChatTokenManager
    ) -> None:
        chat_token = live_chat_manager.issue(ChatCredential(id=555))

        with patch(
            "api.routes.chat.send_text",
            new_callable=AsyncMock,
            side_effect=TelegramError("Telegram sendMessage failed with status 400"),
        ):
            response = await async_client.post(
                "/api/send", data={"chat": chat_token, "text": "hello"}
            )

        assert response.status_code == 500


@pytest.mark.asyncio
class TestWebhookEndpoint:
    """Tests for the Telegram webhook /start flow."""

    async def test_requires_secret(self, async_client: AsyncClient) -> None:
        response = await async_client.post(
            "/api/webhook",
            json=_update(1001, 1001, "/start"),
            headers={"X-Telegram-Bot-Api-Secret-Token": "wrong"},
        )

        assert response.status_code == 401

    async def test_start_private_chat(
        self,
        async_client: AsyncClient,
        keys: SigningKeys,
        settings: Settings,
        live_auth_manager: ChatTokenManager,
    ) -> None:
        start_token = StartTokenManager(keys.start).issue()

        with patch("api.routes.telegram.send_text", new_callable=AsyncMock) as mock_send:
            response = await async_client.post(
                "/api/webhook",
                json=_update(1001, 1001, f"/start {start_token}", first_name="Alice"),
                headers={"X-Telegram-Bot-Api-Secret-Token": settings.webhook_secret},
            )

        assert response.status_code == 200
        assert mock_send.await_count == 2
        welcome = mock_send.await_args_list[0].args[2]
        auth_token = mock_send.await_args_list[1].args[2]
        assert "http://test/#auth/" + auth_token in welcome
        credential = live_auth_manager.parse_and_verify(auth_token).unwrap()
        assert credential.id == 1001
        assert credential.name == "Alice"
        assert credential.expires is not None

    async def test_start_with_bot_name_prefix(
        self, async_client: AsyncClient, keys: SigningKeys, settings: Settings
    ) -> None:
        start_token = StartTokenManager(keys.start).issue()

        with patch("api.routes.telegram.send_text", new_callable=AsyncMock) as mock_send:
            await async_client.post(
                "/api/webhook",
                json=_update(1001, 1001, f"@{settings.bot_name} /start {start_token}"),
                headers={"X-Telegram-Bot-Api-Secret-Token": settings.webhook_secret},
            )

        assert mock_send.await_count == 2

    async def test_group_chat_requires_bound_token(
        self, async_client: AsyncClient, keys: SigningKeys, settings: Settings
    ) -> None:
        manager = StartTokenManager(keys.start)
        headers = {"X-Telegram-Bot-Api-Secret-Token": settings.webhook_secret}

        with patch("api.routes.telegram.send_text", new_callable=AsyncMock) as mock_send:
            await async_client.post(
                "/api/webhook",
                json=_update(-100, 1001, f"/start {manager.issue()}", title="Team"),
                headers=headers,
            )
            assert mock_send.await_count == 0

            await async_client.post(
                "/api/webhook",
                json=_update(-100, 1001, f"/start {manager.issue(user_id=1001)}", title="Team"),
                headers=headers,
            )

        assert mock_send.await_count == 2
        # Replies go to the sender, not the group.
        assert mock_send.await_args_list[0].args[1] == 1001

    async def test_invalid_start_token_is_ignored(
        self, async_client: AsyncClient, settings: Settings
    ) -> None:
        with patch("api.routes.telegram.send_text", new_callable=AsyncMock) as mock_send:
            response = await async_client.post(
                "/api/webhook",
                json=_update(1001, 1001, "/start garbage"),
                headers={"X-Telegram-Bot-Api-Secret-Token": settings.webhook_secret},
            )

        assert response.status_code == 200
        mock_send.assert_not_awaited()

    async def test_other_messages_are_ignored(
        self, async_client: AsyncClient, settings: Settings
    ) -> None:
        with patch("api.routes.telegram.send_text", new_callable=AsyncMock) as mock_send:
            response = await async_client.post(
                "/api/webhook",
                json=_update(1001, 1001, "hello bot"),
                headers={"X-Telegram-Bot-Api-Secret-Token": settings.webhook_secret},
            )

        assert response.json() == {"ok": True}
        mock_send.assert_not_awaited()

    @pytest.mark.parametrize(
        "body",
        [
            [1],
            "start",
            {"message": 5},
            {"message": {"text": 5, "chat": {"id": 1}, "from": {"id": 1}}},
            {"message": {"text": "/start x", "chat": [], "from": {"id": 1}}},
            {"message": {"text": "/start x", "chat": {"id": "1"}, "from": {"id": 1}}},
        ],
    )
    async def test_unexpected_update_shapes_are_ignored(
        self, async_client: AsyncClient, settings: Settings, body: object
    ) -> None:
        with patch("api.routes.telegram.send_text", new_callable=AsyncMock) as mock_send:
            response = await async_client.post(
                "/api/webhook",
                json=body,
                headers={"X-Telegram-Bot-Api-Secret-Token": settings.webhook_secret},
            )

        assert response.status_code == 200
        assert response.json() == {"ok": True}
        mock_send.assert_not_awaited()

    async def test_invalid_json_is_ignored(
        self, async_client: AsyncClient, settings: Settings
    ) -> None:
        response = await async_client.post(
            "/api/webhook",
            content=b"{not json",
            headers={
                "X-Telegram-Bot-Api-Secret-Token": settings.webhook_secret,
                "Content-Type": "application/json",
            },
        )

        assert response.status_code == 200

    async def test_static_start_token(
        self, app: FastAPI, async_client: AsyncClient, settings: Settings
    ) -> None:
        public = settings.model_copy(
            update={"public_level": 2, "static_start_token": "open-sesame"}
        )
        app.dependency_overrides[get_settings] = lambda: public
        headers = {"X-Telegram-Bot-Api-Secret-Token": settings.webhook_secret}

        with patch("api.routes.telegram.send_text", new_callable=AsyncMock) as mock_send:
            await async_client.post(
                "/api/webhook", json=_update(1001, 1001, "/start nope"), headers=headers
            )
            assert mock_send.await_count == 0
            await async_client.post(
                "/api/webhook", json=_update(1001, 1001, "/start open-sesame"), headers=headers
            )

        assert mock_send.await_count == 2


@pytest.mark.asyncio
class TestSetTelegramEndpoint:
    """Tests for webhook registration."""

    async def test_requires_admin_token(self, async_client: AsyncClient) -> None:
        response = await async_client.post("/api/set_telegram", data={"token": "wrong"})

        assert response.status_code == 401

    async def test_registers_webhook(
        self, async_client: AsyncClient, settings: Settings
    ) -> None:
        with patch(
            "api.routes.telegram.set_webhook",
            new_callable=AsyncMock,
            return_value={"ok": True, "result": True},
        ) as mock_set:
            response = await async_client.post(
                "/api/set_telegram",
                data={"token": "S"},
                headers={"X-Forwarded-Proto": "https"},
            )

        assert response.status_code == 200
        assert response.json()["url"] == "https://test/api/webhook"
        mock_set.assert_awaited_once_with(
            settings.bot_token, "https://test/api/webhook", settings.webhook_secret
        )
