import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session, selectinload

from core.config import settings
from core.db import guarded_update, transaction
from core.errors import InsufficientStock, InvalidOrder, InvalidTransition, NotFound, Unauthorized
from models.enums import (
    ADMIN_ORDER_STATUSES,
    CANCELLABLE_ORDER_STATUSES,
    OrderStatus,
    PaymentStatus,
    TERMINAL_ORDER_STATUSES,
)
from models.order import Order
from models.order_item import OrderItem
from models.payment import Payment
from models.product import Product, ProductVariant
from schemas.order import OrderCreate
from schemas.users import CurrentUser

logger = logging.getLogger(__name__)


def _to_decimal(value: float | int | Decimal) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def create_order(db: Session, user: CurrentUser, data: OrderCreate) -> Order:
    """Persist a pending order and its item snapshots from the caller's cart."""
    if not data.items:
        raise InvalidOrder("Order must contain items")

    variant_ids = [item.variant_id for item in data.items]
    variants_map = {
        v.id: v
        for v in db.query(ProductVariant)
        .join(Product)
        .options(selectinload(ProductVariant.product))
        .filter(ProductVariant.id.in_(variant_ids), Product.is_active.is_(True))
        .all()
    }
    if len(variants_map) != len(set(variant_ids)):
        raise NotFound("One or more product variants not found")

    # Stock is checked when the cart is submitted, not reserved
    requested: dict[str, int] = {}
    for item in data.items:
        requested[item.variant_id] = requested.get(item.variant_id, 0) + item.quantity
    for variant_id, quantity in requested.items():
        available = variants_map[variant_id].stock_quantity
        if available < quantity:
            raise InsufficientStock(variant_id, available, quantity)

    order = Order(
        user_id=user.id,
        email=data.email or user.email,
        status=OrderStatus.PENDING.value,
        currency=settings.PAYMENT_CURRENCY,
        shipping_address=data.shipping_address.model_dump(),
        payment_method="razorpay",
    )

    subtotal = Decimal("0.00")
    for position, item in enumerate(data.items):
        variant = variants_map[item.variant_id]
        unit_price = _to_decimal(variant.unit_price)
        total_price = unit_price * _to_decimal(item.quantity)
        subtotal += total_price
        order.items.append(
            OrderItem(
                position=position,
                product_id=variant.product_id,
                variant_id=variant.id,
                product_name=variant.product.name,
                variant_details={"size": variant.size, "color": variant.color},
                quantity=item.quantity,
                unit_price=unit_price,
                total_price=total_price,
            )
        )

    shipping_cost = _to_decimal(settings.SHIPPING_COST)
    order.subtotal = subtotal
    order.shipping_cost = shipping_cost
    order.total = subtotal + shipping_cost

    with transaction(db, "create_order"):
        db.add(order)
    db.refresh(order)
    logger.info("Order %s created for user %s, total %s %s", order.id, user.id, order.total, order.currency)
    return order


def get_order(db: Session, order_id: str) -> Order:
    order = db.get(Order, order_id)
    if not order:
        raise NotFound("Order not found")
    return order


def get_owned_order(db: Session, order_id: str, user: CurrentUser) -> Order:
    order = get_order(db, order_id)
    if order.user_id != user.id:
        raise Unauthorized("Order does not belong to the current user")
    return order


def list_orders_for_user(db: Session, user_id: str) -> List[Order]:
    return (
        db.query(Order)
        .options(selectinload(Order.items))
        .filter(Order.user_id == user_id)
        .order_by(Order.created_at.desc())
        .all()
    )


def list_orders(db: Session, status: Optional[str] = None) -> List[Order]:
    qs = db.query(Order).options(selectinload(Order.items))
    if status:
        qs = qs.filter(Order.status == status)
    return qs.order_by(Order.created_at.desc()).all()


def mark_confirmed(db: Session, order_id: str, payment_method: str = "razorpay") -> bool:
    """pending -> confirmed. Does not commit; the caller owns the transaction."""
    return guarded_update(
        db,
        Order,
        order_id,
        [OrderStatus.PENDING],
        status=OrderStatus.CONFIRMED,
        payment_method=payment_method,
    )


def mark_cancelled(db: Session, order_id: str, expected=CANCELLABLE_ORDER_STATUSES) -> bool:
    return guarded_update(db, Order, order_id, expected, status=OrderStatus.CANCELLED)


def fail_pending_payments(db: Session, order_id: str, reason: str) -> int:
    pending = (
        db.query(Payment)
        .filter(Payment.order_id == order_id, Payment.status == PaymentStatus.PENDING.value)
        .all()
    )
    failed = 0
    for payment in pending:
        if guarded_update(db, Payment, payment.id, [PaymentStatus.PENDING],
                          status=PaymentStatus.FAILED, error_message=reason):
            failed += 1
    return failed


def cancel_order(db: Session, order_id: str, user: CurrentUser) -> Order:
    order = get_owned_order(db, order_id, user)
    current = order.status
    with transaction(db, "cancel_order"):
        if not mark_cancelled(db, order.id):
            db.refresh(order)
            raise InvalidTransition(order.status, OrderStatus.CANCELLED.value)
        fail_pending_payments(db, order.id, "Order cancelled by customer")
    db.refresh(order)
    logger.info("Order %s cancelled by owner (was %s)", order.id, current)
    return order


def set_status(db: Session, order_id: str, status: str) -> Order:
    """Administrator status change along the shipping lifecycle."""
    if status not in {s.value for s in ADMIN_ORDER_STATUSES}:
        raise InvalidOrder(f"Status {status} cannot be set by an administrator")
    order = get_order(db, order_id)
    current = order.status
    if current in {s.value for s in TERMINAL_ORDER_STATUSES}:
        raise InvalidTransition(current, status)

    with transaction(db, "set_order_status"):
        if not guarded_update(db, Order, order.id, [current], status=status):
            db.refresh(order)
            raise InvalidTransition(order.status, status)
        if status == OrderStatus.CANCELLED.value:
            fail_pending_payments(db, order.id, "Order cancelled by administrator")
    db.refresh(order)
    logger.info("Order %s moved from %s to %s by administrator", order.id, current, status)
    return order
