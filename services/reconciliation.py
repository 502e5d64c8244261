"""Periodic repair of checkouts that never finished.

Two sweeps, both safe to run concurrently with live traffic because every
write goes through the same status guards as the request path:

* ``expire_stale_orders`` cancels orders left pending after the customer
  abandoned the gateway widget. Stock is never reserved for pending orders,
  so there is nothing to release.
* ``reconcile_completed_payments`` finishes confirmations that stopped after
  the payment was marked completed but before the order was updated.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from core.config import settings
from core.db import transaction
from core.errors import GatewayError
from models.enums import OrderStatus, PaymentStatus
from models.order import Order
from models.payment import Payment
from services import orders, payment_records, razorpay
from services.orchestrator import PaymentOrchestrator

logger = logging.getLogger(__name__)

EXPIRED_MESSAGE = "Payment session expired"


def _captured_remotely(payment: Payment, gateway) -> bool:
    """True when the gateway reports the order paid, or when we cannot tell."""
    try:
        remote = gateway.fetch_order(payment.gateway_order_id)
    except GatewayError as exc:
        logger.warning("Could not check gateway order %s, skipping this round: %s", payment.gateway_order_id, exc)
        return True
    return remote.get("status") == "paid"


def expire_stale_orders(
    db: Session,
    now: Optional[datetime] = None,
    ttl_minutes: Optional[int] = None,
    gateway=razorpay,
) -> List[str]:
    now = now or datetime.utcnow()
    ttl = ttl_minutes if ttl_minutes is not None else settings.PENDING_ORDER_TTL_MINUTES
    cutoff = now - timedelta(minutes=ttl)

    stale = (
        db.query(Order)
        .filter(Order.status == OrderStatus.PENDING.value, Order.created_at < cutoff)
        .all()
    )
    expired: List[str] = []
    for order in stale:
        if any(p.status == PaymentStatus.COMPLETED.value for p in order.payments):
            # Left for reconcile_completed_payments
            continue
        # Superseded and failed attempts may still have been paid in an old widget
        paid = [p for p in order.payments if _captured_remotely(p, gateway)]
        if paid:
            logger.error(
                "Order %s is stale but gateway order(s) %s may be paid; leaving it pending for manual follow-up",
                order.id, ", ".join(p.gateway_order_id for p in paid),
            )
            continue

        pending = [p for p in order.payments if p.status == PaymentStatus.PENDING.value]
        with transaction(db, "expire_order"):
            if not orders.mark_cancelled(db, order.id, expected=[OrderStatus.PENDING]):
                continue
            for payment in pending:
                payment_records.mark_failed(db, payment.id, EXPIRED_MESSAGE)
        expired.append(order.id)

    if expired:
        logger.info("Expired %d stale pending order(s)", len(expired))
    return expired


def reconcile_completed_payments(db: Session) -> List[str]:
    stuck = (
        db.query(Payment)
        .join(Order, Payment.order_id == Order.id)
        .filter(Payment.status == PaymentStatus.COMPLETED.value, Order.status == OrderStatus.PENDING.value)
        .all()
    )
    orchestrator = PaymentOrchestrator(db)
    repaired: List[str] = []
    for payment in stuck:
        logger.warning("Payment %s is completed but order %s is pending; confirming", payment.id, payment.order_id)
        result = orchestrator.finalize(payment)
        if result.order_confirmed:
            orchestrator.notify(orders.get_order(db, payment.order_id))
            repaired.append(payment.order_id)
    return repaired
