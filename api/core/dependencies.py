"""
FastAPI Dependencies.

Builds the token managers from settings. Each dependency can be replaced
through ``app.dependency_overrides``.
"""

from fastapi import Depends

from api.core.config import Settings, get_settings
from api.services.chat_token import ChatTokenManager, VersionLookup, no_revocation
from api.services.keys import SigningKeys
from api.services.start_token import StartTokenManager


def get_signing_keys(settings: Settings = Depends(get_settings)) -> SigningKeys:
    """Derive the per-class signing keys for this deployment."""
    return SigningKeys.derive(settings.token_config())


def get_chat_version_lookup() -> VersionLookup:
    """
    Revocation authority for chat credentials.

    Credentials whose version differs from the returned value are rejected.
    No revocation store is configured, so every chat is at version 0.
    """
    return no_revocation


def get_start_token_manager(
    keys: SigningKeys = Depends(get_signing_keys),
) -> StartTokenManager:
    return StartTokenManager(keys.start)


def get_auth_token_manager(
    keys: SigningKeys = Depends(get_signing_keys),
    version_lookup: VersionLookup = Depends(get_chat_version_lookup),
) -> ChatTokenManager:
    """Manager for auth tokens issued by the bot after /start."""
    return ChatTokenManager(keys.auth, version_lookup=version_lookup)


def get_chat_token_manager(
    keys: SigningKeys = Depends(get_signing_keys),
    version_lookup: VersionLookup = Depends(get_chat_version_lookup),
) -> ChatTokenManager:
    """Manager for chat tokens presented on every send."""
    return ChatTokenManager(keys.chat, version_lookup=version_lookup)
