from typing import List

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from core.db import get_db
from routes.auth import get_current_user
from schemas.payment import (
    BeginPaymentRequest,
    BeginPaymentResponse,
    ConfirmPaymentRequest,
    ConfirmPaymentResponse,
    PaymentOut,
)
from schemas.users import CurrentUser
from services import orders as order_service
from services import payment_records
from services.orchestrator import PaymentOrchestrator

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/begin", response_model=BeginPaymentResponse)
def begin_payment(data: BeginPaymentRequest, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
    return PaymentOrchestrator(db).begin(data.order_id, user)


@router.post("/confirm", response_model=ConfirmPaymentResponse)
def confirm_payment(data: ConfirmPaymentRequest, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
    result = PaymentOrchestrator(db).confirm(data, user)
    if not result.valid:
        return JSONResponse(status_code=400, content=result.model_dump())
    return result


@router.get("/", response_model=List[PaymentOut])
def list_payments(order_id: str, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
    order_service.get_owned_order(db, order_id, user)
    return payment_records.list_for_order(db, order_id, user.id)
