"""Integration tests for the store-backed units of work."""

import asyncio
import hashlib
import hmac
from datetime import timedelta, timezone

import httpx
import pytest
from sqlalchemy import select

from loop_razorpay.engine import orchestrator
from loop_razorpay.engine.credentials import get_credentials
from loop_razorpay.engine.orchestrator import PaymentInput
from loop_razorpay.engine.webhook_delivery import WebhookDeliveryEngine
from loop_razorpay.models.enums import CanonicalPaymentStatus, RefundStatus
from loop_razorpay.models.records import AuditLog, Order, Transaction, WebhookEvent
from tests.conftest import FIXED_NOW, KEY_SECRET


def _callback_signature(order_id: str, payment_id: str, secret: str = KEY_SECRET) -> str:
    return hmac.new(secret.encode(), f"{order_id}|{payment_id}".encode(), hashlib.sha256).hexdigest()


async def _actions(session, **filters) -> list[str]:
    query = select(AuditLog)
    for column, value in filters.items():
        query = query.where(getattr(AuditLog, column) == value)
    logs = (await session.execute(query.order_by(AuditLog.id))).scalars().all()
    return [log.action for log in logs]


async def _create_gateway_order(session, gateway_factory) -> str:
    result = await orchestrator.process_payment(
        session,
        PaymentInput(order_id="ORD-1", merchant_id="MER-001", amount=49_900, currency="INR"),
        gateway_factory,
    )
    return result.gateway_order_id


class TestCredentials:
    @pytest.mark.asyncio
    async def test_resolves_configured_merchant(self, seeded_session):
        creds = await get_credentials(seeded_session, "MER-001")
        assert creds.key_id == "rzp_test_key"
        assert creds.key_secret == KEY_SECRET
        assert creds.webhook_secret == "whsec_test"
        assert creds.test_mode is True

    @pytest.mark.asyncio
    async def test_missing_config(self, seeded_session):
        assert await get_credentials(seeded_session, "MER-404") is None

    @pytest.mark.asyncio
    async def test_incomplete_credentials(self, seeded_session):
        assert await get_credentials(seeded_session, "MER-002") is None


class TestProcessPayment:
    @pytest.mark.asyncio
    async def test_links_gateway_order(self, seeded_session, gateway, gateway_factory):
        result = await orchestrator.process_payment(
            seeded_session,
            PaymentInput(order_id="ORD-1", merchant_id="MER-001", amount=49_900, currency="INR"),
            gateway_factory,
        )

        assert result.success is False
        assert result.status == CanonicalPaymentStatus.PENDING
        assert result.gateway_order_id in gateway.orders
        assert result.metadata["key"] == "rzp_test_key"

        order = await seeded_session.get(Order, "ORD-1")
        assert order.processor_order_id == result.gateway_order_id
        assert order.status == "pending"
        assert gateway_factory.built[0].key_secret == KEY_SECRET

    @pytest.mark.asyncio
    async def test_no_processor_config(self, seeded_session, gateway, gateway_factory):
        result = await orchestrator.process_payment(
            seeded_session,
            PaymentInput(order_id="ORD-X", merchant_id="MER-404", amount=100, currency="INR"),
            gateway_factory,
        )

        assert result.success is False
        assert result.status == CanonicalPaymentStatus.FAILED
        assert result.error_code == "no_processor_config"
        assert gateway.calls["create_order"] == 0
        assert gateway_factory.built == []

    @pytest.mark.asyncio
    async def test_gateway_rejection_is_audited(self, seeded_session, gateway_factory):
        result = await orchestrator.process_payment(
            seeded_session,
            PaymentInput(order_id="ORD-X", merchant_id="MER-001", amount=0, currency="INR"),
            gateway_factory,
        )

        assert result.error_code == "BAD_REQUEST_ERROR"
        assert "gateway_order_failed" in await _actions(seeded_session, order_id="ORD-X")


class TestCapturePayment:
    @pytest.mark.asyncio
    async def test_capture_records_transaction(self, seeded_session, gateway, gateway_factory):
        gateway_order_id = await _create_gateway_order(seeded_session, gateway_factory)
        gateway.add_payment(gateway_order_id, "authorized", payment_id="pay_1", amount=49_900)

        result = await orchestrator.capture_payment(
            seeded_session, gateway_order_id, 49_900, "MER-001", gateway_factory
        )

        assert result.success is True
        assert result.gateway_transaction_id == "pay_1"

        order = await seeded_session.get(Order, "ORD-1")
        assert order.status == "captured"
        txs = (await seeded_session.execute(select(Transaction))).scalars().all()
        assert [(t.type, t.status, t.processor_transaction_id, t.amount) for t in txs] == [
            ("capture", "success", "pay_1", 49_900)
        ]

    @pytest.mark.asyncio
    async def test_repeated_capture_is_idempotent(self, seeded_session, gateway, gateway_factory):
        gateway_order_id = await _create_gateway_order(seeded_session, gateway_factory)
        gateway.add_payment(gateway_order_id, "authorized", payment_id="pay_1")

        first = await orchestrator.capture_payment(seeded_session, gateway_order_id, 49_900, "MER-001", gateway_factory)
        second = await orchestrator.capture_payment(seeded_session, gateway_order_id, 49_900, "MER-001", gateway_factory)

        assert first == second
        assert gateway.calls["capture_payment"] == 1
        txs = (await seeded_session.execute(select(Transaction))).scalars().all()
        assert len(txs) == 1

    @pytest.mark.asyncio
    async def test_transport_failure_leaves_order_untouched(self, seeded_session, gateway, gateway_factory):
        from loop_razorpay.gateway.base import GatewayError

        gateway_order_id = await _create_gateway_order(seeded_session, gateway_factory)
        gateway.fail_with = GatewayError("Gateway unreachable", code="gateway_unreachable")

        result = await orchestrator.capture_payment(
            seeded_session, gateway_order_id, 49_900, "MER-001", gateway_factory
        )

        assert result.error_code == "gateway_unreachable"
        order = await seeded_session.get(Order, "ORD-1")
        assert order.status == "pending"

    @pytest.mark.asyncio
    async def test_terminal_status_not_overwritten(self, seeded_session, gateway, gateway_factory):
        gateway_order_id = await _create_gateway_order(seeded_session, gateway_factory)
        payment = gateway.add_payment(gateway_order_id, "captured", payment_id="pay_1")
        await orchestrator.capture_payment(seeded_session, gateway_order_id, 49_900, "MER-001", gateway_factory)

        payment.status = "failed"
        result = await orchestrator.get_payment_status(seeded_session, gateway_order_id, "MER-001", gateway_factory)

        assert result.status == CanonicalPaymentStatus.FAILED
        order = await seeded_session.get(Order, "ORD-1")
        assert order.status == "captured"
        assert "order_status_rejected" in await _actions(seeded_session, order_id="ORD-1")


class TestPaymentStatus:
    @pytest.mark.asyncio
    async def test_no_attempt_is_pending(self, seeded_session, gateway_factory):
        gateway_order_id = await _create_gateway_order(seeded_session, gateway_factory)

        result = await orchestrator.get_payment_status(seeded_session, gateway_order_id, "MER-001", gateway_factory)

        assert result.status == CanonicalPaymentStatus.PENDING
        assert result.gateway_transaction_id is None

    @pytest.mark.asyncio
    async def test_authorized_is_recorded(self, seeded_session, gateway, gateway_factory):
        gateway_order_id = await _create_gateway_order(seeded_session, gateway_factory)
        gateway.add_payment(gateway_order_id, "authorized", payment_id="pay_1")

        result = await orchestrator.get_payment_status(seeded_session, gateway_order_id, "MER-001", gateway_factory)

        assert result.status == CanonicalPaymentStatus.AUTHORIZED
        order = await seeded_session.get(Order, "ORD-1")
        assert order.status == "authorized"
        tx = (await seeded_session.execute(select(Transaction))).scalar_one()
        assert tx.type == "authorization"
        assert gateway.calls["capture_payment"] == 0


class TestRefundPayment:
    @pytest.mark.asyncio
    async def test_refund_creates_transaction(self, seeded_session, gateway, gateway_factory):
        gateway_order_id = await _create_gateway_order(seeded_session, gateway_factory)
        gateway.add_payment(gateway_order_id, "authorized", payment_id="pay_1")
        await orchestrator.capture_payment(seeded_session, gateway_order_id, 49_900, "MER-001", gateway_factory)
        gateway.refund_status = "pending"

        result = await orchestrator.refund_payment(seeded_session, "pay_1", 10_000, "MER-001", gateway_factory)

        assert result.success is True
        assert result.status == RefundStatus.PENDING
        refund = (await seeded_session.execute(
            select(Transaction).where(Transaction.type == "refund")
        )).scalar_one()
        assert refund.order_id == "ORD-1"
        assert refund.amount == 10_000
        assert refund.status == "pending"
        assert refund.processor_transaction_id == result.refund_id

        order = await seeded_session.get(Order, "ORD-1")
        assert order.status == "captured"

    @pytest.mark.asyncio
    async def test_refund_without_config(self, seeded_session, gateway_factory):
        result = await orchestrator.refund_payment(seeded_session, "pay_1", 100, "MER-404", gateway_factory)

        assert result.success is False
        assert result.status == RefundStatus.FAILED
        assert result.error_code == "no_processor_config"


class TestConfirmPayment:
    @pytest.mark.asyncio
    async def test_valid_callback_captures(self, seeded_session, gateway, gateway_factory):
        gateway_order_id = await _create_gateway_order(seeded_session, gateway_factory)
        gateway.add_payment(gateway_order_id, "authorized", payment_id="pay_1")

        result = await orchestrator.confirm_payment(
            seeded_session,
            merchant_id="MER-001",
            order_id="ORD-1",
            processor_order_id=gateway_order_id,
            processor_payment_id="pay_1",
            signature=_callback_signature(gateway_order_id, "pay_1"),
            gateway_factory=gateway_factory,
        )

        assert result.success is True
        assert result.status == CanonicalPaymentStatus.CAPTURED
        order = await seeded_session.get(Order, "ORD-1")
        assert order.status == "captured"
        assert "callback_verified" in await _actions(seeded_session, order_id="ORD-1")

    @pytest.mark.asyncio
    async def test_duplicate_callback_does_not_recapture(self, seeded_session, gateway, gateway_factory):
        gateway_order_id = await _create_gateway_order(seeded_session, gateway_factory)
        gateway.add_payment(gateway_order_id, "authorized", payment_id="pay_1")
        signature = _callback_signature(gateway_order_id, "pay_1")

        for _ in range(3):
            result = await orchestrator.confirm_payment(
                seeded_session, "MER-001", "ORD-1", gateway_order_id, "pay_1", signature, gateway_factory
            )
            assert result.success is True

        assert gateway.calls["capture_payment"] == 1
        txs = (await seeded_session.execute(select(Transaction))).scalars().all()
        assert len(txs) == 1

    @pytest.mark.asyncio
    async def test_spoofed_callback_rejected(self, seeded_session, gateway, gateway_factory):
        gateway_order_id = await _create_gateway_order(seeded_session, gateway_factory)
        gateway.add_payment(gateway_order_id, "authorized", payment_id="pay_1")

        result = await orchestrator.confirm_payment(
            seeded_session,
            "MER-001",
            "ORD-1",
            gateway_order_id,
            "pay_1",
            _callback_signature(gateway_order_id, "pay_1", secret="attacker"),
            gateway_factory,
        )

        assert result.success is False
        assert result.error_code == "invalid_signature"
        assert gateway.calls["capture_payment"] == 0
        assert gateway.calls["fetch_payments_for_order"] == 0
        order = await seeded_session.get(Order, "ORD-1")
        assert order.status == "pending"
        assert "callback_signature_invalid" in await _actions(seeded_session, order_id="ORD-1")

    @pytest.mark.asyncio
    async def test_callback_for_other_order_rejected(self, seeded_session, gateway, gateway_factory):
        await _create_gateway_order(seeded_session, gateway_factory)

        result = await orchestrator.confirm_payment(
            seeded_session,
            "MER-001",
            "ORD-1",
            "order_other",
            "pay_1",
            _callback_signature("order_other", "pay_1"),
            gateway_factory,
        )

        assert result.error_code == "order_mismatch"
        assert gateway.calls["capture_payment"] == 0


class TestWebhooks:
    @pytest.mark.asyncio
    async def test_enqueue_uses_merchant_target(self, seeded_session):
        event = await orchestrator.enqueue_webhook(
            seeded_session, "MER-001", "payment.captured", {"order_id": "ORD-1"}
        )

        assert event.destination_url == "https://merchant.test/hooks"
        assert event.secret == "whsec_test"
        assert event.status == "pending"
        assert event.attempts == 0
        assert event.next_retry_at is None

    @pytest.mark.asyncio
    async def test_enqueue_without_url(self, seeded_session):
        assert await orchestrator.enqueue_webhook(seeded_session, "MER-003", "payment.captured", {}) is None

    @pytest.mark.asyncio
    async def test_merchant_target(self, seeded_session):
        assert await orchestrator.get_merchant_webhook_target(seeded_session, "MER-002") == (
            "https://books.test/hooks",
            None,
        )
        assert await orchestrator.get_merchant_webhook_target(seeded_session, "nope") == (None, None)

    @pytest.mark.asyncio
    async def test_delivery_outcome_is_persisted(self, seeded_session, clock):
        event = await orchestrator.enqueue_webhook(
            seeded_session, "MER-001", "payment.captured", {"order_id": "ORD-1"}
        )
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(500)))
        engine = WebhookDeliveryEngine(client=client, clock=clock)

        result = await orchestrator.deliver_webhook(seeded_session, event.id, engine)

        assert result.success is False
        await seeded_session.refresh(event)
        assert event.attempts == 1
        assert event.status == "pending"
        assert "webhook_attempt" in await _actions(seeded_session, webhook_event_id=event.id)

    @pytest.mark.asyncio
    async def test_cancelled_delivery_is_committed(self, seeded_session, clock):
        event = await orchestrator.enqueue_webhook(
            seeded_session, "MER-001", "payment.captured", {"order_id": "ORD-1"}
        )
        started = asyncio.Event()

        async def handler(request):
            started.set()
            await asyncio.sleep(3600)
            return httpx.Response(200)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        engine = WebhookDeliveryEngine(client=client, clock=clock)

        task = asyncio.create_task(orchestrator.deliver_webhook(seeded_session, event.id, engine))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        seeded_session.expire_all()
        stored = await seeded_session.get(WebhookEvent, event.id)
        assert stored.attempts == 1
        assert stored.status == "pending"
        assert stored.next_retry_at.replace(tzinfo=timezone.utc) == FIXED_NOW + timedelta(seconds=60)
        assert "webhook_attempt_cancelled" in await _actions(seeded_session, webhook_event_id=event.id)

    @pytest.mark.asyncio
    async def test_deliver_unknown_event(self, seeded_session, clock):
        engine = WebhookDeliveryEngine(clock=clock)
        result = await orchestrator.deliver_webhook(seeded_session, "missing", engine)
        assert result.success is False
        assert result.attempts == 0

    @pytest.mark.asyncio
    async def test_due_events(self, seeded_session):
        fresh = WebhookEvent(
            id="evt_fresh", event_type="a", payload={}, destination_url="u", status="pending", attempts=0
        )
        due = WebhookEvent(
            id="evt_due", event_type="a", payload={}, destination_url="u", status="pending", attempts=1,
            next_retry_at=FIXED_NOW - timedelta(seconds=1),
        )
        later = WebhookEvent(
            id="evt_later", event_type="a", payload={}, destination_url="u", status="pending", attempts=1,
            next_retry_at=FIXED_NOW + timedelta(minutes=5),
        )
        done = WebhookEvent(
            id="evt_done", event_type="a", payload={}, destination_url="u", status="delivered", attempts=1,
        )
        dead = WebhookEvent(
            id="evt_dead", event_type="a", payload={}, destination_url="u", status="failed", attempts=5,
        )
        seeded_session.add_all([fresh, due, later, done, dead])
        await seeded_session.commit()

        events = await orchestrator.due_webhook_events(seeded_session, now=FIXED_NOW)

        assert {e.id for e in events} == {"evt_fresh", "evt_due"}
