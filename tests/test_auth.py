"""Tests for API key helpers."""

from pathlib import Path
import sys

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from approval_broker import auth  # noqa: E402


def test_created_keys_are_random_and_hashed():
    first = auth.create_api_key()
    second = auth.create_api_key()

    assert first.key != second.key
    assert first.key.startswith("sk-")
    assert first.key_hash == auth.hash_api_key(first.key)
    assert len(first.key_hash) == 64
    assert first.key_prefix == first.key[: auth.DISPLAY_PREFIX_LENGTH]


@pytest.mark.parametrize(
    ("header", "expected"),
    [
        ("Bearer sk-abc", "sk-abc"),
        ("Bearer   sk-abc  ", "sk-abc"),
        ("bearer sk-abc", None),
        ("Basic sk-abc", None),
        ("Bearer ", None),
        ("", None),
        (None, None),
    ],
)
def test_extract_bearer_token(header, expected):
    assert auth.extract_bearer_token(header) == expected
