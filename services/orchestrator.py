"""Begin and confirm gateway payments for orders.

``begin`` opens a remote Razorpay order and records a pending payment for it.
``confirm`` authenticates the widget callback, completes the payment,
confirms the order and takes the items out of stock.

Payment and order live in separate rows and are updated in two steps, each
guarded by the row's previous status:

1. payment ``pending -> completed`` (committed on its own)
2. order ``pending -> confirmed`` plus inventory decrements (one commit)

Only the caller that wins step 2 touches stock, so repeated or concurrent
callbacks take effect once. A crash between the steps leaves a completed
payment on a pending order; ``confirm`` retried with the same payload and
the reconciliation sweep both finish step 2.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from core.config import settings
from core.db import transaction
from core.errors import InsufficientStock, InvalidOrder, StoreError, Unauthorized
from models.enums import OrderStatus, PaymentStatus
from models.order import Order
from models.payment import Payment
from schemas.payment import BeginPaymentResponse, ConfirmPaymentRequest, ConfirmPaymentResponse
from schemas.users import CurrentUser
from security import signature
from services import email as email_service
from services import inventory, orders, payment_records, razorpay

logger = logging.getLogger(__name__)

VERIFIED_MESSAGE = "Payment verified successfully"
ALREADY_VERIFIED_MESSAGE = "Payment already verified"
SIGNATURE_MISMATCH_MESSAGE = "Payment could not be verified. Please contact support."
STALE_ATTEMPT_MESSAGE = "This payment attempt is no longer active. Please contact support."
ORDER_NOT_PENDING_MESSAGE = "Payment verified, but the order is no longer awaiting payment. Please contact support."
BACKORDER_MESSAGE = "Some items are short on stock; our team will contact you about delivery."


@dataclass
class FinalizeResult:
    order_confirmed: bool
    order_status: str
    shortfalls: List[InsufficientStock] = field(default_factory=list)


class PaymentOrchestrator:
    def __init__(
        self,
        db: Session,
        gateway=razorpay,
        key_id: Optional[str] = None,
        key_secret: Optional[str] = None,
        currency: Optional[str] = None,
    ):
        self.db = db
        self.gateway = gateway
        self.key_id = key_id if key_id is not None else settings.RAZORPAY_KEY_ID
        self.key_secret = key_secret if key_secret is not None else settings.RAZORPAY_KEY_SECRET
        self.currency = currency or settings.PAYMENT_CURRENCY

    def begin(self, order_id: str, user: CurrentUser) -> BeginPaymentResponse:
        order = orders.get_owned_order(self.db, order_id, user)
        if order.status != OrderStatus.PENDING.value:
            raise InvalidOrder(f"Order is {order.status}, payment can only start for pending orders")
        total = Decimal(order.total) if order.total is not None else Decimal("0")
        if total <= 0:
            raise InvalidOrder("Order total must be greater than 0")

        amount_minor = razorpay.to_minor_units(total)
        remote = self.gateway.create_order(
            amount=amount_minor,
            currency=self.currency,
            receipt=order.id,
            notes={"order_id": order.id},
        )
        gateway_order_id = remote["id"]

        try:
            with transaction(self.db, "record_payment"):
                payment_records.supersede_pending(self.db, order.id)
                payment = payment_records.add_pending(self.db, order, gateway_order_id, self.currency)
        except StoreError:
            # Nothing references the remote order; it expires on the gateway side
            logger.error("Orphaned Razorpay order %s for order %s", gateway_order_id, order.id)
            raise

        logger.info("Payment %s pending for order %s (gateway order %s)", payment.id, order.id, gateway_order_id)
        return BeginPaymentResponse(
            order_id=order.id,
            gateway_order_id=gateway_order_id,
            gateway_key_id=self.key_id,
            amount=int(remote.get("amount", amount_minor)),
            currency=remote.get("currency", self.currency),
        )

    def confirm(self, payload: ConfirmPaymentRequest, user: CurrentUser) -> ConfirmPaymentResponse:
        payment = payment_records.get_by_gateway_order_id(self.db, payload.gateway_order_id)
        order = orders.get_order(self.db, payload.order_id)
        if order.user_id != user.id or payment.user_id != user.id:
            raise Unauthorized("Order does not belong to the current user")
        if payment.order_id != order.id:
            raise Unauthorized("Payment does not belong to this order")

        if not signature.verify(
            self.key_secret, payload.gateway_order_id, payload.gateway_payment_id, payload.signature
        ):
            return self._reject_signature(payment, payload)

        if payment.status == PaymentStatus.COMPLETED.value:
            if order.status == OrderStatus.PENDING.value:
                # An earlier confirm completed the payment but never reached the order
                logger.warning("Payment %s completed on pending order %s, finishing confirmation", payment.id, order.id)
                result = self.finalize(payment)
                if result.order_confirmed:
                    self.notify(order)
                return self._response(result)
            return ConfirmPaymentResponse(valid=True, message=ALREADY_VERIFIED_MESSAGE)

        if payment.status == PaymentStatus.FAILED.value:
            logger.error(
                "Verified callback for failed payment %s (gateway order %s, gateway payment %s, reason: %s); "
                "funds may be captured, manual follow-up needed",
                payment.id, payload.gateway_order_id, payload.gateway_payment_id, payment.error_message,
            )
            return ConfirmPaymentResponse(valid=False, message=STALE_ATTEMPT_MESSAGE)

        with transaction(self.db, "complete_payment"):
            claimed = payment_records.mark_completed(
                self.db, payment.id, payload.gateway_payment_id, payload.signature
            )
        if not claimed:
            # Another confirm for the same attempt got there first
            self.db.refresh(payment)
            if payment.status == PaymentStatus.COMPLETED.value:
                return ConfirmPaymentResponse(valid=True, message=ALREADY_VERIFIED_MESSAGE)
            return ConfirmPaymentResponse(valid=False, message=STALE_ATTEMPT_MESSAGE)

        logger.info("Payment %s completed (gateway payment %s)", payment.id, payload.gateway_payment_id)
        result = self.finalize(payment)
        if result.order_confirmed:
            self.notify(order)
        return self._response(result)

    def finalize(self, payment: Payment) -> FinalizeResult:
        """Confirm the order of a completed payment and take its items out of stock.

        Safe to call repeatedly: stock only moves for the call that confirms
        the order. Store failures here are indeterminate because the payment
        is already completed.
        """
        with transaction(self.db, "confirm_order", indeterminate=True):
            confirmed = orders.mark_confirmed(self.db, payment.order_id, payment_method=payment.provider)
            order = orders.get_order(self.db, payment.order_id)
            if not confirmed:
                if order.status != OrderStatus.CONFIRMED.value:
                    logger.warning(
                        "Payment %s completed but order %s is %s; left unchanged",
                        payment.id, order.id, order.status,
                    )
                return FinalizeResult(order_confirmed=False, order_status=order.status)
            shortfalls = inventory.apply_order(self.db, order)

        logger.info("Order %s confirmed by payment %s", order.id, payment.id)
        return FinalizeResult(order_confirmed=True, order_status=order.status, shortfalls=shortfalls)

    def _reject_signature(self, payment: Payment, payload: ConfirmPaymentRequest) -> ConfirmPaymentResponse:
        logger.warning(
            "Signature verification failed for gateway order %s, gateway payment %s (order %s)",
            payload.gateway_order_id, payload.gateway_payment_id, payment.order_id,
        )
        with transaction(self.db, "fail_payment"):
            payment_records.mark_failed(self.db, payment.id, payment_records.SIGNATURE_FAILED_MESSAGE)
        return ConfirmPaymentResponse(valid=False, message=SIGNATURE_MISMATCH_MESSAGE)

    def _response(self, result: FinalizeResult) -> ConfirmPaymentResponse:
        if not result.order_confirmed and result.order_status != OrderStatus.CONFIRMED.value:
            return ConfirmPaymentResponse(valid=True, message=ORDER_NOT_PENDING_MESSAGE)
        if result.shortfalls:
            return ConfirmPaymentResponse(valid=True, message=f"{VERIFIED_MESSAGE}. {BACKORDER_MESSAGE}")
        return ConfirmPaymentResponse(valid=True, message=VERIFIED_MESSAGE)

    def notify(self, order: Order) -> None:
        if not order.email:
            return
        try:
            email_service.send_order_confirmation(order)
        except Exception:
            # The order is confirmed either way
            logger.exception("Could not queue confirmation email for order %s", order.id)
