from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.db import get_db
from routes.auth import get_current_user
from schemas.order import OrderCreate, OrderOut
from schemas.users import CurrentUser
from services import orders as order_service

router = APIRouter(prefix="/orders", tags=["orders"])


@router.get("/", response_model=List[OrderOut])
def list_orders(user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
    return order_service.list_orders_for_user(db, user.id)


@router.get("/{order_id}", response_model=OrderOut)
def get_order(order_id: str, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
    return order_service.get_owned_order(db, order_id, user)


@router.post("/", response_model=OrderOut, status_code=201)
def create_order(data: OrderCreate, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
    return order_service.create_order(db, user, data)


@router.post("/{order_id}/cancel", response_model=OrderOut)
def cancel_order(order_id: str, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
    return order_service.cancel_order(db, order_id, user)
