"""SQLAlchemy models for the order, transaction and webhook store."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, relationship


class Base(DeclarativeBase):
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


class Merchant(Base):
    """A merchant and the endpoint it wants payment notifications sent to."""

    __tablename__ = "merchants"

    id = Column(String(50), primary_key=True)
    name = Column(String(200), nullable=False)
    webhook_url = Column(String(500), nullable=True)
    webhook_secret = Column(String(200), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class ProcessorConfig(Base):
    """
    Per-merchant gateway credentials.

    ``credentials`` holds ``{"keyId", "keySecret", "webhookSecret"}``.
    """

    __tablename__ = "processor_configs"
    __table_args__ = (
        UniqueConstraint("merchant_id", "processor", name="uq_merchant_processor"),
    )

    id = Column(String(12), primary_key=True, default=_new_id)
    merchant_id = Column(String(50), ForeignKey("merchants.id"), nullable=False, index=True)
    processor = Column(String(30), nullable=False, default="razorpay")
    test_mode = Column(Boolean, nullable=False, default=True)
    credentials = Column(JSON, nullable=False)


class Order(Base):
    """
    An internal order collected through the gateway.

    ``processor_order_id`` links to the gateway-side order created before
    checkout. Status uses the canonical vocabulary; captured and failed
    are terminal.
    """

    __tablename__ = "orders"

    id = Column(String(50), primary_key=True, default=_new_id)
    merchant_id = Column(String(50), ForeignKey("merchants.id"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)  # minor units (paise)
    currency = Column(String(3), nullable=False, default="INR")
    status = Column(String(20), nullable=False, default="pending")
    processor_order_id = Column(String(100), nullable=True, unique=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    transactions = relationship("Transaction", back_populates="order", lazy="raise")


class Transaction(Base):
    """A money movement recorded against an order (authorization, capture, refund)."""

    __tablename__ = "transactions"

    id = Column(String(12), primary_key=True, default=_new_id)
    order_id = Column(String(50), ForeignKey("orders.id"), nullable=False, index=True)
    type = Column(String(20), nullable=False)
    amount = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False)
    processor_transaction_id = Column(String(100), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    order = relationship("Order", back_populates="transactions")


class WebhookEvent(Base):
    """
    An outbound merchant notification and its delivery bookkeeping.

    Mutated only by the delivery engine after each attempt. Once status is
    delivered or failed the record is final. A poller picks up
    ``status='pending' AND next_retry_at <= now``.
    """

    __tablename__ = "webhook_events"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    merchant_id = Column(String(50), ForeignKey("merchants.id"), nullable=True, index=True)
    event_type = Column(String(50), nullable=False)
    payload = Column(JSON, nullable=False)
    destination_url = Column(String(500), nullable=False)
    secret = Column(String(200), nullable=True)
    status = Column(String(20), nullable=False, default="pending", index=True)
    attempts = Column(Integer, nullable=False, default=0)
    last_attempt_at = Column(DateTime(timezone=True), nullable=True)
    next_retry_at = Column(DateTime(timezone=True), nullable=True, index=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class AuditLog(Base):
    """
    Append-only record of every state change the adapter persists.

    Never modified or deleted.
    """

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(50), nullable=True, index=True)
    webhook_event_id = Column(String(36), nullable=True, index=True)
    action = Column(String(50), nullable=False)
    details = Column(Text, nullable=True)
    timestamp = Column(DateTime(timezone=True), default=_utcnow)
