"""
Start token service.

Start tokens bootstrap a bot conversation (``t.me/<bot>?start=<token>``).
They are self-contained and never stored: 48 bytes of
``[flags|timestamp][user id][HMAC-SHA256]`` framed as 64 URL-safe base64
characters, valid for 15 minutes. A token may be bound to a Telegram user;
replay inside the validity window is accepted.
"""

from dataclasses import dataclass, field

from api.services.auth_options import AuthOptions
from api.services.clock import Clock, now_ms
from api.services.codec import (
    START_TOKEN_BODY_SIZE,
    START_TOKEN_SIZE,
    decode_start_token_body,
    decode_timestamp_and_flags,
    encode_start_token_body,
    encode_timestamp_and_flags,
    urlsafe_b64decode,
    urlsafe_b64encode,
)
from api.services.signing import sign, verify
from api.services.token_result import MalformedTokenError, TokenErrorKind

START_TOKEN_VALID_DURATION_MS = 15 * 60 * 1000
START_TOKEN_FUTURE_SKEW_MS = 60 * 1000


@dataclass(frozen=True)
class StartTokenVerification:
    """Outcome of a start token check. Options are only trustworthy if ok."""

    ok: bool
    options: AuthOptions = field(default_factory=AuthOptions)
    error: TokenErrorKind | None = None
    user_id: int = 0
    issued_at: int = 0


class StartTokenManager:
    """Issues and verifies start tokens under one signing key."""

    def __init__(
        self,
        key: bytes,
        clock: Clock = now_ms,
        valid_duration_ms: int = START_TOKEN_VALID_DURATION_MS,
        future_skew_ms: int = START_TOKEN_FUTURE_SKEW_MS,
    ) -> None:
        self.key = key
        self.clock = clock
        self.valid_duration_ms = valid_duration_ms
        self.future_skew_ms = future_skew_ms

    def now(self) -> int:
        return self.clock()

    def issue(
        self,
        user_id: int = 0,
        options: AuthOptions | None = None,
        now: int | None = None,
    ) -> str:
        """
        Create a start token.

        Args:
            user_id: Telegram user the token is bound to, 0 for unbound.
            options: Auth options to embed in the flag bits.
            now: Issue time in epoch milliseconds (defaults to the clock).

        Returns:
            64-character URL-safe base64 token.
        """
        ts = self.now() if now is None else now
        flags = options.to_number() if options else 0
        body = encode_start_token_body(
            encode_timestamp_and_flags(flags, ts), user_id or 0
        )
        return urlsafe_b64encode(body + sign(self.key, body))

    def verify(
        self,
        token: str,
        caller_user_id: int,
        strict_binding: bool = False,
        now: int | None = None,
    ) -> StartTokenVerification:
        """
        Check a start token presented by caller_user_id.

        A token bound to a user only verifies for that user. With
        strict_binding (group chats) the token must also be bound.
        """
        if not token:
            return StartTokenVerification(ok=False, error=TokenErrorKind.MALFORMED_TOKEN)
        try:
            combined = urlsafe_b64decode(token)
        except MalformedTokenError:
            return StartTokenVerification(ok=False, error=TokenErrorKind.MALFORMED_TOKEN)
        if len(combined) != START_TOKEN_SIZE:
            return StartTokenVerification(ok=False, error=TokenErrorKind.MALFORMED_TOKEN)

        body = combined[:START_TOKEN_BODY_SIZE]
        signature = combined[START_TOKEN_BODY_SIZE:]
        flags_ts, token_user_id = decode_start_token_body(body)
        flags, ts = decode_timestamp_and_flags(flags_ts)
        options = AuthOptions.from_number(flags)

        def reject(error: TokenErrorKind) -> StartTokenVerification:
            return StartTokenVerification(
                ok=False,
                options=options,
                error=error,
                user_id=token_user_id,
                issued_at=ts,
            )

        if strict_binding and token_user_id == 0:
            return reject(TokenErrorKind.USER_MISMATCH)
        if token_user_id != 0 and token_user_id != caller_user_id:
            return reject(TokenErrorKind.USER_MISMATCH)

        current = self.now() if now is None else now
        if ts + self.valid_duration_ms < current or ts >= current + self.future_skew_ms:
            return reject(TokenErrorKind.EXPIRED)

        if not verify(self.key, signature, body):
            return reject(TokenErrorKind.INVALID_SIGNATURE)

        return StartTokenVerification(
            ok=True, options=options, user_id=token_user_id, issued_at=ts
        )
