"""
HMAC-SHA256 signing.

Signs raw byte payloads (start tokens) and canonical JSON objects (auth and
chat tokens). Verification never raises: a truncated, malformed or wrong
signature is simply not verified.
"""

import hashlib
import hmac
import re
from collections.abc import Mapping
from typing import Any

from api.services.codec import canonical_json

_HEX_SIGNATURE = re.compile(r"[0-9a-fA-F]{64}")


def _as_bytes(value: bytes | str) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    return value


def sign(key: bytes | str, payload: bytes | str) -> bytes:
    """Return the 32-byte HMAC-SHA256 of payload."""
    return hmac.new(_as_bytes(key), _as_bytes(payload), hashlib.sha256).digest()


def sign_canonical_json(key: bytes | str, obj: Mapping[str, Any]) -> str:
    """
    Sign an object independently of its key order.

    Returns:
        Hex-encoded HMAC-SHA256 of the canonical JSON of obj.
    """
    return sign(key, canonical_json(obj)).hex()


def constant_time_compare(a: bytes | str, b: bytes | str) -> bool:
    """
    Compare two secrets in time independent of where they differ.

    Only a length mismatch returns early.
    """
    return hmac.compare_digest(_as_bytes(a), _as_bytes(b))


def verify(key: bytes | str, signature: bytes, payload: bytes | str) -> bool:
    """Check a raw signature over payload."""
    return constant_time_compare(signature, sign(key, payload))


def verify_hex(key: bytes | str, signature: str, payload: bytes | str) -> bool:
    """Check a hex-encoded signature over payload."""
    if not isinstance(signature, str) or not _HEX_SIGNATURE.fullmatch(signature):
        return False
    return verify(key, bytes.fromhex(signature), payload)
