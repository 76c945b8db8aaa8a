"""
HMAC-SHA256 webhook signing helpers.

The processor sends the unix timestamp of the delivery in one header and, in
another, the hex HMAC of "<timestamp>.<raw body>" under the shared secret.
The timestamp is part of the signed payload, so it cannot be refreshed on a
captured delivery without the secret.
"""
from __future__ import annotations

import hashlib
import hmac
import time
from typing import Optional, Union


def signed_payload(timestamp: str, body: Union[bytes, str]) -> bytes:
    if isinstance(body, str):
        body = body.encode("utf-8")
    return f"{str(timestamp).strip()}.".encode("utf-8") + body


def compute_signature(secret: str, timestamp: str, body: Union[bytes, str]) -> str:
    return hmac.new(secret.encode("utf-8"), signed_payload(timestamp, body), hashlib.sha256).hexdigest()


def signature_matches(
    signature: Optional[str],
    timestamp: Optional[str],
    body: Union[bytes, str],
    secret: str,
) -> bool:
    """Constant-time comparison of the presented signature with the expected one."""
    if not signature or timestamp is None:
        return False
    expected = compute_signature(secret, timestamp, body)
    presented = signature.strip()
    if presented.lower().startswith("sha256="):
        presented = presented[len("sha256="):]
    return hmac.compare_digest(expected, presented.lower())


def parse_timestamp(value: Optional[str]) -> Optional[float]:
    """Unix seconds; milliseconds are accepted and scaled down."""
    if value is None:
        return None
    try:
        ts = float(str(value).strip())
    except ValueError:
        return None
    if ts > 1e12:
        ts = ts / 1000.0
    return ts


def timestamp_within(value: Optional[str], tolerance_seconds: int, now: Optional[float] = None) -> bool:
    ts = parse_timestamp(value)
    if ts is None:
        return False
    current = time.time() if now is None else now
    return abs(current - ts) <= tolerance_seconds
