import logging
from decimal import Decimal
from typing import List

from sqlalchemy.orm import Session

from core.db import guarded_update
from core.errors import NotFound
from models.enums import PaymentStatus
from models.order import Order
from models.payment import Payment

logger = logging.getLogger(__name__)

SUPERSEDED_MESSAGE = "Superseded by a newer payment attempt"
SIGNATURE_FAILED_MESSAGE = "Signature verification failed"


def get_payment(db: Session, payment_id: str) -> Payment:
    payment = db.get(Payment, payment_id)
    if not payment:
        raise NotFound("Payment not found")
    return payment


def get_by_gateway_order_id(db: Session, gateway_order_id: str) -> Payment:
    payment = db.query(Payment).filter(Payment.gateway_order_id == gateway_order_id).one_or_none()
    if not payment:
        raise NotFound("Payment not found")
    return payment


def list_for_order(db: Session, order_id: str, user_id: str) -> List[Payment]:
    return (
        db.query(Payment)
        .filter(Payment.order_id == order_id, Payment.user_id == user_id)
        .order_by(Payment.created_at)
        .all()
    )


def supersede_pending(db: Session, order_id: str) -> List[str]:
    """Fail every pending attempt for the order so at most one stays open."""
    superseded = []
    pending = (
        db.query(Payment)
        .filter(Payment.order_id == order_id, Payment.status == PaymentStatus.PENDING.value)
        .all()
    )
    for payment in pending:
        if mark_failed(db, payment.id, SUPERSEDED_MESSAGE):
            superseded.append(payment.gateway_order_id)
    if superseded:
        logger.info("Order %s: superseded pending gateway orders %s", order_id, ", ".join(superseded))
    return superseded


def add_pending(db: Session, order: Order, gateway_order_id: str, currency: str) -> Payment:
    payment = Payment(
        order_id=order.id,
        user_id=order.user_id,
        provider="razorpay",
        gateway_order_id=gateway_order_id,
        # Always the order total, never a client-supplied amount
        amount=Decimal(order.total),
        currency=currency,
        status=PaymentStatus.PENDING.value,
    )
    db.add(payment)
    db.flush()
    return payment


def mark_completed(db: Session, payment_id: str, gateway_payment_id: str, signature: str) -> bool:
    return guarded_update(
        db,
        Payment,
        payment_id,
        [PaymentStatus.PENDING],
        status=PaymentStatus.COMPLETED,
        gateway_payment_id=gateway_payment_id,
        gateway_signature=signature,
        error_message=None,
    )


def mark_failed(db: Session, payment_id: str, message: str) -> bool:
    return guarded_update(
        db,
        Payment,
        payment_id,
        [PaymentStatus.PENDING],
        status=PaymentStatus.FAILED,
        error_message=message,
    )
