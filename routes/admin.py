from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.db import get_db, guarded_update, transaction
from core.errors import InvalidOrder, InvalidTransition
from models.enums import PaymentStatus
from models.payment import Payment
from routes.auth import require_admin
from schemas.order import OrderOut, OrderStatusUpdate
from schemas.payment import PaymentOut, PaymentStatusUpdate
from services import orders as order_service
from services import payment_records

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


@router.get("/orders", response_model=List[OrderOut])
def list_orders(status: Optional[str] = None, db: Session = Depends(get_db)):
    return order_service.list_orders(db, status)


@router.patch("/orders/{order_id}/status", response_model=OrderOut)
def update_order_status(order_id: str, data: OrderStatusUpdate, db: Session = Depends(get_db)):
    return order_service.set_status(db, order_id, data.status)


@router.get("/payments/{payment_id}", response_model=PaymentOut)
def get_payment(payment_id: str, db: Session = Depends(get_db)):
    return payment_records.get_payment(db, payment_id)


@router.patch("/payments/{payment_id}/status", response_model=PaymentOut)
def update_payment_status(payment_id: str, data: PaymentStatusUpdate, db: Session = Depends(get_db)):
    # Terminal payments never change; only open attempts can be settled by hand
    if data.status not in (PaymentStatus.COMPLETED.value, PaymentStatus.FAILED.value):
        raise InvalidOrder(f"Payment status cannot be set to {data.status}")
    payment = payment_records.get_payment(db, payment_id)
    with transaction(db, "set_payment_status"):
        changed = guarded_update(
            db, Payment, payment.id, [PaymentStatus.PENDING],
            status=data.status, error_message=data.error_message,
        )
        if not changed:
            db.refresh(payment)
            raise InvalidTransition(payment.status, data.status)
    db.refresh(payment)
    return payment
