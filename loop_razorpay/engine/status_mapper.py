"""
Gateway status → canonical status mapping.

Fail-closed: any status not in the table (including case variants and
statuses like "refunded") maps to FAILED. An unknown state must never be
read as a successful payment.
"""

from typing import Any

from loop_razorpay.models.enums import CanonicalPaymentStatus, GatewayPaymentStatus

STATUS_TABLE: dict[str, CanonicalPaymentStatus] = {
    GatewayPaymentStatus.CAPTURED.value: CanonicalPaymentStatus.CAPTURED,
    GatewayPaymentStatus.AUTHORIZED.value: CanonicalPaymentStatus.AUTHORIZED,
    GatewayPaymentStatus.CREATED.value: CanonicalPaymentStatus.PENDING,
    GatewayPaymentStatus.FAILED.value: CanonicalPaymentStatus.FAILED,
}


def map_status(gateway_status: Any) -> CanonicalPaymentStatus:
    """Exact, case-sensitive lookup. Total: never raises."""
    if not isinstance(gateway_status, str):
        return CanonicalPaymentStatus.FAILED
    return STATUS_TABLE.get(gateway_status, CanonicalPaymentStatus.FAILED)
