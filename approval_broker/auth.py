"""Bearer API key helpers."""

from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass

BEARER_PREFIX = "Bearer "
DISPLAY_PREFIX_LENGTH = 8


@dataclass(frozen=True)
class GeneratedKey:
    key: str
    key_hash: str
    key_prefix: str


def hash_api_key(key: str) -> str:
    """Return the sha256 hex digest stored in place of the raw key."""

    return hashlib.sha256(key.encode("utf-8")).hexdigest()


def display_prefix(key: str) -> str:
    return key[:DISPLAY_PREFIX_LENGTH]


def create_api_key(prefix: str = "sk-") -> GeneratedKey:
    """Generate a fresh random key; only its hash should be persisted."""

    key = f"{prefix}{secrets.token_hex(32)}"
    return GeneratedKey(key=key, key_hash=hash_api_key(key), key_prefix=display_prefix(key))


def extract_bearer_token(header: str | None) -> str | None:
    """Return the token from an ``Authorization: Bearer <key>`` header."""

    if not header or not header.startswith(BEARER_PREFIX):
        return None
    token = header[len(BEARER_PREFIX):].strip()
    return token or None
