"""
Chat token service.

A chat credential names a Telegram chat the holder may send to. It is
signed, serialized as URL-safe base64 of its canonical JSON and handed to the
client; the server keeps no record of it.

The same format is used under two signing keys: auth tokens (issued by the
bot after a successful ``/start``) and chat tokens (obtained by exchanging an
auth token). A token signed under one key never verifies under the other.
"""

from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, ValidationError

from api.services.clock import Clock, now_ms
from api.services.codec import canonical_json, decode_json_payload, urlsafe_b64encode
from api.services.signing import sign_canonical_json, verify_hex
from api.services.token_result import MalformedTokenError, TokenErrorKind, TokenResult

SIGNATURE_FIELD = "sign"

# Fields left out of the signed payload. The name can be changed client-side
# without a round trip to the server.
UNSIGNED_FIELDS = (SIGNATURE_FIELD, "name")

# Returns the current revocation version of a chat id.
VersionLookup = Callable[[int], int]


def no_revocation(chat_id: int) -> int:
    """Version lookup used when no revocation authority is configured."""
    return 0


class ChatCredential(BaseModel):
    """Signed description of a destination chat."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: StrictInt
    expires: StrictInt | None = None  # epoch milliseconds
    version: StrictInt = Field(default=0, ge=0)
    name: StrictStr = ""
    signature: StrictStr = Field(default="", alias=SIGNATURE_FIELD)

    @property
    def is_group(self) -> bool:
        """Negative ids are group or channel chats."""
        return self.id < 0

    def to_wire(self) -> dict[str, Any]:
        """Return the JSON object exchanged with clients."""
        return self.model_dump(by_alias=True, exclude_none=True)

    def signing_payload(self) -> dict[str, Any]:
        payload = self.to_wire()
        for field in UNSIGNED_FIELDS:
            payload.pop(field, None)
        return payload


class ChatTokenManager:
    """Signs, parses and verifies chat credentials under one key."""

    def __init__(
        self,
        key: bytes,
        clock: Clock = now_ms,
        version_lookup: VersionLookup = no_revocation,
    ) -> None:
        self.key = key
        self.clock = clock
        self.version_lookup = version_lookup

    def now(self) -> int:
        return self.clock()

    def sign(self, credential: ChatCredential) -> ChatCredential:
        """Return a copy of credential carrying a fresh signature."""
        signature = sign_canonical_json(self.key, credential.signing_payload())
        return credential.model_copy(update={"signature": signature})

    @staticmethod
    def serialize(credential: ChatCredential) -> str:
        """Frame a credential as a token string. No signing is performed."""
        return urlsafe_b64encode(canonical_json(credential.to_wire()))

    @staticmethod
    def parse(token: str) -> TokenResult[ChatCredential]:
        """Decode a token string without checking its signature."""
        try:
            data = decode_json_payload(token)
        except MalformedTokenError:
            return TokenResult.failure(TokenErrorKind.MALFORMED_TOKEN)
        if not isinstance(data, dict):
            return TokenResult.failure(TokenErrorKind.MALFORMED_CREDENTIAL)
        try:
            credential = ChatCredential.model_validate(data)
        except ValidationError:
            return TokenResult.failure(TokenErrorKind.MALFORMED_CREDENTIAL)
        return TokenResult.success(credential)

    def parse_and_verify(
        self,
        token: str,
        version_lookup: VersionLookup | None = None,
        now: int | None = None,
    ) -> TokenResult[ChatCredential]:
        """
        Decode a token and check it is usable.

        Checks, in order: expiry, presence of a signature, the signature
        itself and the revocation version.

        Args:
            token: Serialized credential.
            version_lookup: Overrides the manager's revocation lookup.
            now: Current time in epoch milliseconds (defaults to the clock).
        """
        parsed = self.parse(token)
        if not parsed.ok:
            return parsed
        credential = parsed.unwrap()

        current = self.now() if now is None else now
        if credential.expires is not None and credential.expires <= current:
            return TokenResult.failure(TokenErrorKind.EXPIRED)

        if not credential.signature:
            return TokenResult.failure(TokenErrorKind.UNSIGNED)

        payload = canonical_json(credential.signing_payload())
        if not verify_hex(self.key, credential.signature, payload):
            return TokenResult.failure(TokenErrorKind.INVALID_SIGNATURE)

        lookup = version_lookup or self.version_lookup
        if credential.version != lookup(credential.id):
            return TokenResult.failure(TokenErrorKind.REVOKED)

        return TokenResult.success(credential)

    def issue(self, credential: ChatCredential) -> str:
        """Sign and serialize a credential."""
        return self.serialize(self.sign(credential))

    def reissue(self, credential: ChatCredential, expires: int | None = None) -> str:
        """
        Re-sign a verified credential under this manager's key.

        The previous expiry is dropped; expires, when given, becomes the new one.
        """
        renewed = credential.model_copy(update={"expires": expires or None})
        return self.issue(renewed)


def exchange_auth_token(
    auth_manager: ChatTokenManager,
    chat_manager: ChatTokenManager,
    auth_token: str,
    expires: int | None = None,
) -> TokenResult[str]:
    """
    Turn an auth token into a chat token.

    Args:
        auth_manager: Manager holding the auth-token key.
        chat_manager: Manager holding the chat-token key.
        auth_token: Token issued by the bot after ``/start``.
        expires: Optional expiry of the new chat token (epoch milliseconds).
    """
    verified = auth_manager.parse_and_verify(auth_token)
    if not verified.ok:
        return TokenResult.failure(verified.error)  # type: ignore[arg-type]
    return TokenResult.success(chat_manager.reissue(verified.unwrap(), expires))
