"""
HMAC-SHA256 signing for both directions of payment events.

Two canonicalizations are in play and are not interchangeable:

  Outbound (merchant webhooks):   "{timestamp}.{body}"
  Inbound (checkout confirmation): "{order_id}|{payment_id}"

Everything here is pure. Secrets are never logged.
"""

import hashlib
import hmac
from typing import Any, Optional

from loop_razorpay.models.results import SignedEnvelope

SIGNATURE_VERSION = "v1"

HEADER_TIMESTAMP = "X-Loop-Timestamp"
HEADER_SIGNATURE = "X-Loop-Signature"
HEADER_EVENT_ID = "X-Loop-Event-Id"


def _hmac_hex(secret: str, message: str) -> str:
    return hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()


def _safe_equals(expected: str, received: Any) -> bool:
    if not isinstance(received, str):
        return False
    return hmac.compare_digest(expected.encode("utf-8"), received.encode("utf-8"))


def sign_outbound(timestamp: str, body: str, secret: str) -> str:
    """Hex HMAC-SHA256 of ``"{timestamp}.{body}"``."""
    return _hmac_hex(secret, f"{timestamp}.{body}")


def sign_envelope(timestamp: str, body: str, secret: str) -> SignedEnvelope:
    return SignedEnvelope(timestamp=timestamp, body=body, signature=sign_outbound(timestamp, body, secret))


def signature_headers(event_id: str, timestamp: str, body: str, secret: Optional[str]) -> dict[str, str]:
    """
    Build the outbound webhook headers.

    Without a secret the event id and timestamp are still sent but the
    signature header is omitted (the destination opted out of verification).
    """
    headers = {
        "Content-Type": "application/json",
        HEADER_EVENT_ID: event_id,
        HEADER_TIMESTAMP: timestamp,
    }
    if secret:
        envelope = sign_envelope(timestamp, body, secret)
        headers[HEADER_SIGNATURE] = f"{SIGNATURE_VERSION}={envelope.signature}"
    return headers


def verify_outbound(timestamp: str, body: str, signature_header: Any, secret: str) -> bool:
    """
    Receiver-side check of an ``X-Loop-Signature`` header.

    Accepts the header with or without the ``v1=`` prefix. Never raises.
    """
    if not isinstance(signature_header, str) or not isinstance(timestamp, str) or not isinstance(body, str):
        return False
    prefix = f"{SIGNATURE_VERSION}="
    signature = signature_header[len(prefix):] if signature_header.startswith(prefix) else signature_header
    try:
        expected = sign_outbound(timestamp, body, secret)
    except (AttributeError, TypeError):
        return False
    return _safe_equals(expected, signature)


def verify_inbound(order_id: Any, payment_id: Any, signature: Any, secret: Any) -> bool:
    """
    Check a checkout confirmation signature from the gateway.

    Recomputes HMAC-SHA256 over ``"{order_id}|{payment_id}"`` and compares
    in constant time. Any malformed input yields False.
    """
    if not all(isinstance(value, str) for value in (order_id, payment_id, signature, secret)):
        return False
    expected = _hmac_hex(secret, f"{order_id}|{payment_id}")
    return _safe_equals(expected, signature)
