"""
Append-only audit trail for order and webhook state changes.

Each entry records:
  - Order ID and/or webhook event ID
  - Action (what happened)
  - Details (error codes, gateway identifiers, retry schedule)
  - Timestamp (UTC)

Entries are never modified or deleted. Keys in ``details`` that look like
secrets, signatures or credentials are redacted before the entry is
stored or logged.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from loop_razorpay.models.records import AuditLog

logger = logging.getLogger("loop_razorpay.audit")

REDACTED = "[redacted]"
_SENSITIVE_MARKERS = ("secret", "signature", "credential", "password", "authorization")


def _is_sensitive(key: str) -> bool:
    lowered = key.lower()
    return any(marker in lowered for marker in _SENSITIVE_MARKERS)


def scrub(details: dict[str, Any]) -> dict[str, Any]:
    """Copy of ``details`` with secret-bearing keys redacted, nested dicts included."""
    clean = {}
    for key, value in details.items():
        if _is_sensitive(str(key)):
            clean[key] = REDACTED
        elif isinstance(value, dict):
            clean[key] = scrub(value)
        else:
            clean[key] = value
    return clean


async def log_event(
    session: AsyncSession,
    action: str,
    order_id: Optional[str] = None,
    webhook_event_id: Optional[str] = None,
    details: Optional[dict[str, Any]] = None,
) -> AuditLog:
    """
    Add an audit entry to the session (committed with the caller's unit of work).

    Args:
        session: Database session.
        action: What happened (e.g. "order_status_updated", "webhook_attempt").
        order_id: Internal order the entry relates to.
        webhook_event_id: Webhook event the entry relates to.
        details: Arbitrary context (serialized to JSON, secrets redacted).
    """
    if details:
        details = scrub(details)
    entry = AuditLog(
        order_id=order_id,
        webhook_event_id=webhook_event_id,
        action=action,
        details=json.dumps(details, default=str) if details else None,
        timestamp=datetime.now(timezone.utc),
    )
    session.add(entry)
    logger.info(
        "AUDIT | order=%s webhook=%s action=%s | %s",
        order_id or "-",
        webhook_event_id or "-",
        action,
        json.dumps(details, default=str)[:200] if details else "",
    )
    return entry
