"""Verification of signed Slack interaction webhooks."""

from __future__ import annotations

import hmac
import time
from dataclasses import dataclass
from hashlib import sha256
from typing import Mapping


SLACK_SIGNATURE_HEADER = "X-Slack-Signature"
SLACK_TIMESTAMP_HEADER = "X-Slack-Request-Timestamp"
VERSION = "v0"
DEFAULT_TOLERANCE = 60 * 5  # five minutes


@dataclass(frozen=True)
class SignatureCheck:
    """Outcome of verifying one inbound request.

    ``reason`` is one of ``verified``, ``skipped`` (no secret configured),
    ``missing_headers``, ``bad_timestamp``, ``stale`` or ``mismatch``.
    """

    ok: bool
    reason: str


def compute_signature(signing_secret: str, timestamp: str, body: str) -> str:
    """Return the ``v0=<hex>`` HMAC-SHA256 signature Slack sends for *body*."""

    basestring = f"{VERSION}:{timestamp}:{body}".encode("utf-8")
    digest = hmac.new(signing_secret.encode("utf-8"), basestring, sha256).hexdigest()
    return f"{VERSION}={digest}"


def check_signature(
    *,
    signing_secret: str | None,
    timestamp: str | None,
    body: str,
    signature: str | None,
    tolerance: int = DEFAULT_TOLERANCE,
    now: int | None = None,
) -> SignatureCheck:
    if not signing_secret:
        return SignatureCheck(ok=True, reason="skipped")

    if not timestamp or not signature:
        return SignatureCheck(ok=False, reason="missing_headers")

    try:
        request_ts = int(timestamp)
    except (TypeError, ValueError):
        return SignatureCheck(ok=False, reason="bad_timestamp")

    current_ts = int(time.time()) if now is None else now
    if abs(current_ts - request_ts) > tolerance:
        return SignatureCheck(ok=False, reason="stale")

    expected = compute_signature(signing_secret, timestamp, body)
    if not hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8")):
        return SignatureCheck(ok=False, reason="mismatch")
    return SignatureCheck(ok=True, reason="verified")


def check_request_headers(
    *, signing_secret: str | None, headers: Mapping[str, str], body: str, tolerance: int = DEFAULT_TOLERANCE
) -> SignatureCheck:
    """Verify using the Slack signature and timestamp headers of a request."""

    return check_signature(
        signing_secret=signing_secret,
        timestamp=headers.get(SLACK_TIMESTAMP_HEADER),
        body=body,
        signature=headers.get(SLACK_SIGNATURE_HEADER),
        tolerance=tolerance,
    )


def is_valid_slack_request(
    *, signing_secret: str, timestamp: str | None, body: str, signature: str | None, tolerance: int = DEFAULT_TOLERANCE
) -> bool:
    """Strict variant: a missing secret never validates."""

    if not signing_secret:
        return False
    return check_signature(
        signing_secret=signing_secret,
        timestamp=timestamp,
        body=body,
        signature=signature,
        tolerance=tolerance,
    ).ok
