"""
Outbound merchant webhook delivery with declarative retry.

Each call to ``deliver`` is one attempt:

  1. attempts += 1
  2. canonical JSON body
  3. sign with the event secret, if any (X-Loop-* headers)
  4. POST with a 30s timeout
  5. success (2xx)        → delivered, delivered_at stamped, no next_retry_at
  6. failure (anything)   → pending with next_retry_at = now + backoff,
                            or failed once attempts reach the ceiling
  7. last_attempt_at stamped either way

Non-2xx, timeouts, network errors and unusable URLs are all the same
failure here. A cancelled attempt still counts: the bookkeeping is
applied before the cancellation propagates.

Callers must serialize attempts per event id; the engine holds no lock.
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import httpx

from loop_razorpay.config import settings
from loop_razorpay.engine.backoff import is_exhausted, next_retry_at
from loop_razorpay.engine.signatures import signature_headers
from loop_razorpay.models.enums import WebhookStatus
from loop_razorpay.models.results import DeliveryResult

logger = logging.getLogger("loop_razorpay.webhooks")


def canonical_body(payload: dict[str, Any]) -> str:
    """Compact JSON in insertion order; this exact string is what gets signed."""
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False, default=str)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _epoch_millis(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return str(int(moment.timestamp() * 1000))


class WebhookDeliveryEngine:
    """
    Performs single delivery attempts and updates the event record in place.

    The event may be any object exposing the WebhookEvent attributes
    (``id``, ``payload``, ``destination_url``, ``secret``, ``status``,
    ``attempts``, ``last_attempt_at``, ``next_retry_at``, ``delivered_at``);
    in practice it is the ORM record, persisted by the caller.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: Optional[float] = None,
        max_attempts: Optional[int] = None,
        base_delay_ms: Optional[int] = None,
        max_delay_ms: Optional[int] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._client = client
        self.timeout_seconds = timeout_seconds if timeout_seconds is not None else settings.webhook_timeout_seconds
        self.max_attempts = max_attempts if max_attempts is not None else settings.webhook_max_attempts
        self.base_delay_ms = base_delay_ms if base_delay_ms is not None else settings.webhook_base_delay_ms
        self.max_delay_ms = max_delay_ms if max_delay_ms is not None else settings.webhook_max_delay_ms
        self._clock = clock

    async def _post(self, url: str, body: str, headers: dict[str, str]) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(url, content=body, headers=headers, timeout=self.timeout_seconds)
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            return await client.post(url, content=body, headers=headers)

    async def deliver(self, event: Any) -> DeliveryResult:
        """Make one delivery attempt for ``event`` and record the outcome on it."""
        if event.status in (WebhookStatus.DELIVERED.value, WebhookStatus.FAILED.value):
            logger.info("Webhook %s is already %s; not redelivering", event.id, event.status)
            return DeliveryResult(
                success=event.status == WebhookStatus.DELIVERED.value,
                status=WebhookStatus(event.status),
                attempts=event.attempts or 0,
                delivered_at=event.delivered_at,
                error_message=f"Webhook already {event.status}",
            )

        attempts = (event.attempts or 0) + 1
        event.attempts = attempts

        body = canonical_body(event.payload or {})
        timestamp = _epoch_millis(self._clock())
        headers = signature_headers(event.id, timestamp, body, event.secret)

        try:
            response = await self._post(event.destination_url, body, headers)
        except asyncio.CancelledError:
            self._record_failure(event, attempts, "Delivery cancelled")
            raise
        except httpx.TimeoutException as e:
            return self._record_failure(event, attempts, f"Timed out after {self.timeout_seconds:g}s: {e}")
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            return self._record_failure(event, attempts, f"{type(e).__name__}: {e}")

        if response.is_success:
            return self._record_success(event, attempts, response.status_code)
        return self._record_failure(
            event,
            attempts,
            f"HTTP {response.status_code}",
            status_code=response.status_code,
        )

    def _record_success(self, event: Any, attempts: int, status_code: int) -> DeliveryResult:
        now = self._clock()
        event.status = WebhookStatus.DELIVERED.value
        event.delivered_at = now
        event.next_retry_at = None
        event.last_attempt_at = now

        logger.info("Webhook %s delivered on attempt %d (HTTP %d)", event.id, attempts, status_code)
        return DeliveryResult(
            success=True,
            status=WebhookStatus.DELIVERED,
            attempts=attempts,
            status_code=status_code,
            delivered_at=now,
        )

    def _record_failure(
        self,
        event: Any,
        attempts: int,
        error_message: str,
        status_code: Optional[int] = None,
    ) -> DeliveryResult:
        now = self._clock()
        retry_at = next_retry_at(
            now,
            attempts,
            max_attempts=self.max_attempts,
            base_delay_ms=self.base_delay_ms,
            max_delay_ms=self.max_delay_ms,
        )
        if is_exhausted(attempts, self.max_attempts):
            event.status = WebhookStatus.FAILED.value
            logger.error(
                "Webhook %s failed permanently after %d attempts: %s",
                event.id,
                attempts,
                error_message,
            )
        else:
            event.status = WebhookStatus.PENDING.value
            logger.warning(
                "Webhook %s attempt %d/%d failed: %s; next retry at %s",
                event.id,
                attempts,
                self.max_attempts,
                error_message,
                retry_at.isoformat() if retry_at else "-",
            )
        event.next_retry_at = retry_at
        event.last_attempt_at = now

        return DeliveryResult(
            success=False,
            status=WebhookStatus(event.status),
            attempts=attempts,
            status_code=status_code,
            next_retry_at=retry_at,
            error_message=error_message,
        )
