"""HMAC-SHA256 signing for webhooks sent and received by the job core.

Wire format::

    X-Webhook-Timestamp: <unix epoch milliseconds>
    X-Webhook-Signature: sha256=<hex(HMAC_SHA256(secret, "<timestamp>.<raw body>"))>

The same functions back the outbound dispatcher and both inbound receivers.
"""

import hashlib
import hmac
import time
from dataclasses import dataclass

from jobcore.v1.core.exceptions import SignatureError

SIGNATURE_HEADER = "X-Webhook-Signature"
TIMESTAMP_HEADER = "X-Webhook-Timestamp"
SIGNATURE_PREFIX = "sha256="

DEFAULT_MAX_AGE_MS = 300_000
DEFAULT_MAX_FUTURE_MS = 60_000


def now_ms() -> int:
    return int(time.time() * 1000)


def _as_bytes(value: str | bytes) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


def sign(secret: str, timestamp: int | str, raw_body: str | bytes) -> str:
    """Return the ``sha256=<hex>`` signature for a body sent at ``timestamp``."""
    message = f"{timestamp}.".encode() + _as_bytes(raw_body)
    digest = hmac.new(_as_bytes(secret), message, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def constant_time_equals(a: str | bytes, b: str | bytes) -> bool:
    """Compare without leaking the position of the first differing byte."""
    left, right = _as_bytes(a), _as_bytes(b)
    if len(left) != len(right):
        return False
    return hmac.compare_digest(left, right)


def verify(secret: str, timestamp: int | str, raw_body: str | bytes, signature: str) -> bool:
    """Check ``signature`` against the one computed for ``raw_body``."""
    if not secret or not signature:
        return False
    return constant_time_equals(sign(secret, timestamp, raw_body), signature)


def parse_timestamp(value: str | int | None) -> int | None:
    """Parse an epoch-milliseconds header value, ``None`` when malformed."""
    if value is None:
        return None
    if isinstance(value, int):
        return value
    value = value.strip()
    if not value.isdigit():
        return None
    return int(value)


def check_freshness(
    timestamp: int,
    now: int | None = None,
    max_age_ms: int = DEFAULT_MAX_AGE_MS,
    max_future_ms: int = DEFAULT_MAX_FUTURE_MS,
) -> str | None:
    """Return ``None`` when fresh, otherwise the reason it is not."""
    now = now_ms() if now is None else now
    if now - timestamp > max_age_ms:
        return "Webhook timestamp expired"
    if timestamp - now > max_future_ms:
        return "Webhook timestamp is in the future"
    return None


@dataclass(frozen=True)
class VerificationResult:
    valid: bool
    error: str | None = None

    def raise_for_error(self) -> None:
        if not self.valid:
            raise SignatureError(self.error or "Invalid signature")


def verify_request(
    secret: str,
    raw_body: str | bytes,
    signature: str | None,
    timestamp: str | int | None,
    now: int | None = None,
    max_age_ms: int = DEFAULT_MAX_AGE_MS,
    max_future_ms: int = DEFAULT_MAX_FUTURE_MS,
) -> VerificationResult:
    """Verify signature and timestamp window of an inbound request."""
    if not signature:
        return VerificationResult(False, "Missing signature")
    if timestamp is None or timestamp == "":
        return VerificationResult(False, "Missing timestamp")

    parsed = parse_timestamp(timestamp)
    if parsed is None:
        return VerificationResult(False, "Invalid timestamp")

    stale = check_freshness(parsed, now, max_age_ms, max_future_ms)
    if stale:
        return VerificationResult(False, stale)

    if not verify(secret, parsed, raw_body, signature):
        return VerificationResult(False, "Invalid signature")

    return VerificationResult(True)


def signature_headers(secret: str | None, raw_body: str | bytes, timestamp: int | None = None) -> dict[str, str]:
    """Headers to attach to an outbound body, empty without a secret."""
    if not secret:
        return {}
    timestamp = now_ms() if timestamp is None else timestamp
    return {
        SIGNATURE_HEADER: sign(secret, timestamp, raw_body),
        TIMESTAMP_HEADER: str(timestamp),
    }


def verify_bearer_token(expected: str, authorization: str | None) -> bool:
    """Check an ``Authorization: Bearer <token>`` header in constant time."""
    if not expected or not authorization:
        return False
    return constant_time_equals(f"Bearer {expected}", authorization)
