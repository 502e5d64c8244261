"""Caller side of checkout: place the order, open a payment, confirm it.

``CheckoutClient.start`` persists the order and begins a payment, returning a
``PendingCheckout``. The gateway widget runs outside this module; whatever it
reports (success, failure or the customer closing it) is handed to
``PendingCheckout.resume`` exactly once. A confirmation that fails in
transit (network error, indeterminate answer) leaves the checkout open and
is resent with ``PendingCheckout.retry_confirm``.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union

import requests
from pydantic import ValidationError

from client.cart import Cart
from schemas.order import ShippingAddress
from schemas.payment import BeginPaymentResponse, ConfirmPaymentRequest, ConfirmPaymentResponse

logger = logging.getLogger(__name__)


class CheckoutStatus(str, Enum):
    CONFIRMED = "confirmed"
    VERIFICATION_FAILED = "verification_failed"
    PAYMENT_FAILED = "payment_failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class GatewaySuccess:
    payload: Mapping[str, Any]


@dataclass(frozen=True)
class GatewayFailure:
    reason: str
    code: Optional[str] = None


@dataclass(frozen=True)
class GatewayCancelled:
    pass


GatewayOutcome = Union[GatewaySuccess, GatewayFailure, GatewayCancelled]


@dataclass
class CheckoutResult:
    status: CheckoutStatus
    order_id: str
    message: Optional[str] = None


class CheckoutAlreadyResolved(RuntimeError):
    """Raised when a pending checkout is resumed a second time."""


class CheckoutRequestError(Exception):
    """Raised when the checkout API answers with an error."""

    def __init__(self, status_code: int, detail: Any):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"Checkout request failed ({status_code}): {detail}")

    @property
    def indeterminate(self) -> bool:
        return isinstance(self.detail, dict) and self.detail.get("state") == "indeterminate"


def parse_gateway_callback(raw: Any, order_id: str) -> ConfirmPaymentRequest:
    """Coerce the widget's untyped callback into a confirm request.

    Raises ``pydantic.ValidationError`` for anything that does not fit.
    """
    if not isinstance(raw, Mapping):
        raise TypeError(f"Gateway callback must be a mapping, got {type(raw).__name__}")
    data: Dict[str, Any] = {k: v for k, v in raw.items() if k != "order_id"}
    data["order_id"] = order_id
    return ConfirmPaymentRequest.model_validate(data)


class CheckoutClient:
    def __init__(self, base_url: str, token: str, session=None, timeout: float = 15):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.session = session if session is not None else requests.Session()
        self.timeout = timeout

    def _post(self, path: str, payload: Dict[str, Any]):
        return self.session.post(
            f"{self.base_url}{path}",
            json=payload,
            headers={"Authorization": f"Bearer {self.token}"},
            timeout=self.timeout,
        )

    @staticmethod
    def _detail(resp) -> Any:
        try:
            body = resp.json()
        except ValueError:
            return resp.text
        if isinstance(body, dict) and len(body) == 1 and "detail" in body:
            return body["detail"]
        # Store failures carry state/stage next to detail
        return body

    def create_order(self, cart: Cart, address: ShippingAddress, email: Optional[str] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "items": [{"variant_id": item.variant_id, "quantity": item.quantity} for item in cart.items],
            "shipping_address": address.model_dump(),
        }
        if email:
            payload["email"] = email
        resp = self._post("/orders/", payload)
        if resp.status_code != 201:
            raise CheckoutRequestError(resp.status_code, self._detail(resp))
        return resp.json()

    def begin_payment(self, order_id: str) -> BeginPaymentResponse:
        resp = self._post("/payments/begin", {"order_id": order_id})
        if resp.status_code != 200:
            raise CheckoutRequestError(resp.status_code, self._detail(resp))
        return BeginPaymentResponse.model_validate(resp.json())

    def confirm_payment(self, request: ConfirmPaymentRequest) -> ConfirmPaymentResponse:
        """Safe to repeat after a network error: the server applies it once."""
        resp = self._post("/payments/confirm", request.model_dump())
        if resp.status_code in (200, 400):
            body = resp.json()
            if isinstance(body, dict) and "valid" in body:
                return ConfirmPaymentResponse.model_validate(body)
        raise CheckoutRequestError(resp.status_code, self._detail(resp))

    def start(self, cart: Cart, address: Union[ShippingAddress, Mapping[str, Any]],
              email: Optional[str] = None) -> "PendingCheckout":
        if cart.is_empty:
            raise ValueError("Cart is empty")
        # Validated before anything is sent
        if not isinstance(address, ShippingAddress):
            address = ShippingAddress.model_validate(address)

        order = self.create_order(cart, address, email)
        payment = self.begin_payment(order["id"])
        logger.info("Checkout started for order %s (gateway order %s)", order["id"], payment.gateway_order_id)
        return PendingCheckout(client=self, cart=cart, order=order, payment=payment, address=address, email=email)


@dataclass
class PendingCheckout:
    client: CheckoutClient
    cart: Cart
    order: Dict[str, Any]
    payment: BeginPaymentResponse
    address: ShippingAddress
    email: Optional[str] = None
    _resolved: bool = field(default=False, init=False, repr=False)
    _request: Optional[ConfirmPaymentRequest] = field(default=None, init=False, repr=False)

    @property
    def order_id(self) -> str:
        return self.order["id"]

    @property
    def resolved(self) -> bool:
        return self._resolved

    def widget_options(self, store_name: str = "Your Store") -> Dict[str, Any]:
        """Options for the gateway's browser widget."""
        a = self.address
        return {
            "key": self.payment.gateway_key_id,
            "amount": self.payment.amount,
            "currency": self.payment.currency,
            "name": store_name,
            "description": "Order Payment",
            "order_id": self.payment.gateway_order_id,
            "prefill": {"name": a.full_name, "contact": a.phone, "email": self.email},
            "notes": {"address": f"{a.street}, {a.city}, {a.region} {a.postal_code}"},
        }

    def resume(self, outcome: GatewayOutcome) -> CheckoutResult:
        if self._resolved:
            raise CheckoutAlreadyResolved(f"Checkout for order {self.order_id} already resumed")

        if isinstance(outcome, GatewayCancelled):
            # Order stays pending; the expiry sweep cancels it later
            self._resolved = True
            return CheckoutResult(CheckoutStatus.CANCELLED, self.order_id, "Payment cancelled")
        if isinstance(outcome, GatewayFailure):
            logger.info("Gateway reported failure for order %s: %s", self.order_id, outcome.reason)
            self._resolved = True
            return CheckoutResult(CheckoutStatus.PAYMENT_FAILED, self.order_id, f"Payment failed: {outcome.reason}")
        if not isinstance(outcome, GatewaySuccess):
            raise TypeError(f"Unknown gateway outcome {outcome!r}")

        try:
            request = parse_gateway_callback(outcome.payload, self.order_id)
        except (TypeError, ValidationError) as exc:
            logger.warning("Rejected malformed gateway callback for order %s: %s", self.order_id, exc)
            self._resolved = True
            return CheckoutResult(
                CheckoutStatus.VERIFICATION_FAILED,
                self.order_id,
                "Payment verification failed. Please contact support.",
            )

        self._request = request
        return self._confirm()

    def retry_confirm(self) -> CheckoutResult:
        """Resend the gateway callback after a network error or an indeterminate answer."""
        if self._resolved:
            raise CheckoutAlreadyResolved(f"Checkout for order {self.order_id} already resumed")
        if self._request is None:
            raise RuntimeError(f"No gateway callback received for order {self.order_id}")
        return self._confirm()

    def _confirm(self) -> CheckoutResult:
        # Errors propagate and leave the checkout open for retry_confirm
        result = self.client.confirm_payment(self._request)
        self._resolved = True
        if not result.valid:
            return CheckoutResult(
                CheckoutStatus.VERIFICATION_FAILED,
                self.order_id,
                result.message or "Payment verification failed. Please contact support.",
            )

        self.cart.clear()
        return CheckoutResult(CheckoutStatus.CONFIRMED, self.order_id, result.message)
