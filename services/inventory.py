"""Stock adjustments for confirmed orders.

Decrements are a plain read followed by a write of ``current - quantity``.
Two confirmations touching the same variant at the same moment can both read
the same value and the last write wins. Checkout volume is low enough that
this is accepted; an atomic ``stock_quantity = stock_quantity - :q`` update
is the fix if that changes.
"""

import logging
from typing import List

from sqlalchemy.orm import Session

from core.errors import InsufficientStock, NotFound
from models.order import Order
from models.product import ProductVariant

logger = logging.getLogger(__name__)


def decrement(db: Session, variant_id: str, quantity: int) -> int:
    """Remove ``quantity`` units from a variant and return the new stock level.

    Does not commit.
    """
    if quantity <= 0:
        raise ValueError("quantity must be positive")
    variant = db.get(ProductVariant, variant_id, populate_existing=True)
    if not variant:
        raise NotFound(f"Variant {variant_id} not found")

    current = variant.stock_quantity
    if current < quantity:
        raise InsufficientStock(variant_id, current, quantity)

    variant.stock_quantity = current - quantity
    db.flush()
    return variant.stock_quantity


def apply_order(db: Session, order: Order) -> List[InsufficientStock]:
    """Decrement stock for every item of a just-confirmed order.

    A shortfall does not undo the confirmation: the payment is already
    captured. The affected variant is left as is and the shortfall returned
    for the caller to report.
    """
    shortfalls: List[InsufficientStock] = []
    for item in order.items:
        try:
            remaining = decrement(db, item.variant_id, item.quantity)
        except InsufficientStock as exc:
            logger.warning("Order %s: %s", order.id, exc.message)
            shortfalls.append(exc)
            continue
        logger.debug("Order %s: variant %s stock now %s", order.id, item.variant_id, remaining)
    return shortfalls
