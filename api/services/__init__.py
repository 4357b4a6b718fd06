"""API Services Package."""

from api.services.auth_options import AuthOptions
from api.services.chat_token import (
    ChatCredential,
    ChatTokenManager,
    exchange_auth_token,
    no_revocation,
)
from api.services.keys import KeyDomain, SigningKeys, TokenConfig, derive_key
from api.services.start_token import StartTokenManager, StartTokenVerification
from api.services.token_result import (
    MalformedTokenError,
    TokenError,
    TokenErrorKind,
    TokenResult,
)

__all__ = [
    # Keys
    "KeyDomain",
    "SigningKeys",
    "TokenConfig",
    "derive_key",
    # Start tokens
    "AuthOptions",
    "StartTokenManager",
    "StartTokenVerification",
    # Chat tokens
    "ChatCredential",
    "ChatTokenManager",
    "exchange_auth_token",
    "no_revocation",
    # Errors
    "MalformedTokenError",
    "TokenError",
    "TokenErrorKind",
    "TokenResult",
]
