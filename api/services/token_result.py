"""
Token verification outcomes.

Every rejection in the token subsystem is reported as a distinct error kind
so callers can branch on it (e.g. map it to an HTTP status) instead of
catching exceptions.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class TokenErrorKind(str, Enum):
    """Reasons a token can be rejected."""

    MALFORMED_TOKEN = "malformed_token"
    MALFORMED_CREDENTIAL = "malformed_credential"
    EXPIRED = "expired"
    INVALID_SIGNATURE = "invalid_signature"
    UNSIGNED = "unsigned"
    REVOKED = "revoked"
    USER_MISMATCH = "user_mismatch"

    @property
    def is_malformed(self) -> bool:
        """True for rejections caused by the shape of the input."""
        return self in (
            TokenErrorKind.MALFORMED_TOKEN,
            TokenErrorKind.MALFORMED_CREDENTIAL,
        )


class TokenError(Exception):
    """Exception carrying a token rejection kind."""

    def __init__(self, kind: TokenErrorKind, message: str | None = None) -> None:
        self.kind = kind
        super().__init__(message or kind.value)


class MalformedTokenError(TokenError):
    """Raised by the codec when a token cannot be decoded."""

    def __init__(self, message: str) -> None:
        super().__init__(TokenErrorKind.MALFORMED_TOKEN, message)


@dataclass(frozen=True)
class TokenResult(Generic[T]):
    """Either a value or the reason there is none."""

    value: T | None = None
    error: TokenErrorKind | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "TokenResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: TokenErrorKind) -> "TokenResult[T]":
        return cls(error=error)

    def unwrap(self) -> T:
        """
        Return the value.

        Raises:
            TokenError: If the result is a rejection.
        """
        if self.error is not None:
            raise TokenError(self.error)
        return self.value  # type: ignore[return-value]
