"""
Binary and text codec for tokens.

Fixed-layout packing of the start token body and URL-safe base64 framing
shared by start, auth and chat tokens.

Start token body layout (16 bytes, big-endian):
    [flags:2B | timestamp:6B][user id: signed 8B]

The flags and the timestamp share one 64-bit field: flags occupy the top
16 bits, the millisecond timestamp is truncated to the low 48 bits. Times
beyond 2**48 ms (around the year 10889) are silently truncated.
"""

import base64
import binascii
import json
import re
import struct
from typing import Any

from api.services.token_result import MalformedTokenError

START_TOKEN_BODY_SIZE = 16
SIGNATURE_SIZE = 32
START_TOKEN_SIZE = START_TOKEN_BODY_SIZE + SIGNATURE_SIZE

FLAGS_SHIFT = 48
FLAGS_MASK = 0xFFFF
TIMESTAMP_MASK = 0x0000_FFFF_FFFF_FFFF
UINT64_MASK = 0xFFFF_FFFF_FFFF_FFFF
INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

_BODY = struct.Struct(">Qq")
_STRICT_INT = re.compile(r"^\s*[+-]?\d+\s*$")


def encode_timestamp_and_flags(flags: int, ts_millis: int) -> int:
    """Pack 16 bits of flags and a 48-bit millisecond timestamp."""
    return ((flags & FLAGS_MASK) << FLAGS_SHIFT) | (ts_millis & TIMESTAMP_MASK)


def decode_timestamp_and_flags(value: int) -> tuple[int, int]:
    """Split a packed field into (flags, timestamp)."""
    value &= UINT64_MASK
    return (value >> FLAGS_SHIFT) & FLAGS_MASK, value & TIMESTAMP_MASK


def is_int64(value: int) -> bool:
    return INT64_MIN <= value <= INT64_MAX


def encode_start_token_body(flags_ts: int, user_id: int) -> bytes:
    """
    Build the 16-byte start token body.

    Args:
        flags_ts: Packed flags and timestamp.
        user_id: Bound Telegram user id, 0 for unbound. Must fit in a
            signed 64-bit integer.

    Raises:
        ValueError: If user_id does not fit in a signed 64-bit integer.
    """
    if not is_int64(user_id):
        raise ValueError(f"User id {user_id} is out of the signed 64-bit range")
    return _BODY.pack(flags_ts & UINT64_MASK, user_id)


def decode_start_token_body(body: bytes) -> tuple[int, int]:
    """
    Inverse of encode_start_token_body.

    Raises:
        MalformedTokenError: If body is not exactly 16 bytes.
    """
    if len(body) != START_TOKEN_BODY_SIZE:
        raise MalformedTokenError(
            f"Expected {START_TOKEN_BODY_SIZE} bytes, got {len(body)}"
        )
    return _BODY.unpack(body)


def urlsafe_b64encode(data: bytes | str) -> str:
    """Encode to URL-safe base64 without padding."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def urlsafe_b64decode(token: str) -> bytes:
    """
    Decode URL-safe base64, restoring stripped padding.

    Raises:
        MalformedTokenError: On characters outside the alphabet or an
            impossible length.
    """
    try:
        raw = token.encode("ascii")
    except UnicodeEncodeError as exc:
        raise MalformedTokenError("Token is not ASCII") from exc

    padded = raw + b"=" * (-len(raw) % 4)
    try:
        return base64.b64decode(padded, altchars=b"-_", validate=True)
    except (binascii.Error, ValueError) as exc:
        raise MalformedTokenError(f"Invalid base64: {exc}") from exc


def decode_json_payload(token: str) -> Any:
    """
    Decode a base64-framed JSON document.

    Raises:
        MalformedTokenError: If the framing, encoding or JSON is invalid.
    """
    raw = urlsafe_b64decode(token)
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MalformedTokenError(f"Invalid JSON payload: {exc}") from exc


def canonical_json(obj: Any) -> str:
    """Serialize with sorted keys and compact separators."""
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def parse_strict_int(value: str | None) -> int | None:
    """
    Parse a decimal integer, rejecting anything that is not one.

    Returns:
        The integer, or None for empty, fractional or non-numeric input.
    """
    if value is None or not _STRICT_INT.match(value):
        return None
    return int(value.strip())
