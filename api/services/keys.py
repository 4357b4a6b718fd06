"""
Signing key derivation.

Each token class is signed with its own key, derived from one base secret
and a domain label, so a token of one class never verifies as another.
"""

from dataclasses import dataclass
from enum import Enum


class KeyDomain(str, Enum):
    """Token classes with separate signing keys."""

    START_TOKEN = "start_token"
    AUTH_TOKEN = "auth_token"
    CHAT_TOKEN = "chat_token"


def derive_key(
    base: str,
    domain: KeyDomain | str,
    extra: int | str | None = None,
) -> bytes:
    """
    Derive the signing key for a token class.

    The key is the base secret, an optional extra component and the domain
    label joined by newlines, e.g. ``"S\\nchat_token"``.

    Args:
        base: Deployment base secret.
        domain: Token class label.
        extra: Optional component (the public-access level for start tokens).

    Returns:
        UTF-8 key material.
    """
    label = domain.value if isinstance(domain, KeyDomain) else domain
    parts = [base]
    if extra is not None:
        parts.append(str(extra))
    parts.append(label)
    return "\n".join(parts).encode("utf-8")


@dataclass(frozen=True)
class TokenConfig:
    """Static configuration the signing keys are derived from."""

    base_secret: str
    public_level: int = 0


@dataclass(frozen=True)
class SigningKeys:
    """The three per-class keys of one deployment."""

    start: bytes
    auth: bytes
    chat: bytes

    @classmethod
    def derive(cls, config: TokenConfig) -> "SigningKeys":
        # Changing the public-access level invalidates outstanding start tokens.
        return cls(
            start=derive_key(
                config.base_secret, KeyDomain.START_TOKEN, config.public_level
            ),
            auth=derive_key(config.base_secret, KeyDomain.AUTH_TOKEN),
            chat=derive_key(config.base_secret, KeyDomain.CHAT_TOKEN),
        )
