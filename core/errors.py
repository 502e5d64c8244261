"""Exceptions raised by the checkout services.

Routes never build HTTP errors for these by hand: ``main.py`` registers one
handler that maps every ``CheckoutError`` to its ``status_code``.
"""


class CheckoutError(Exception):
    """Base exception for all checkout errors."""

    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"detail": self.message}


class Unauthorized(CheckoutError):
    """Raised when the caller does not own the referenced order or payment."""

    status_code = 403


class NotFound(CheckoutError):
    """Raised when an order, payment or variant doesn't exist."""

    status_code = 404


class InvalidOrder(CheckoutError):
    """Raised when an order is not in a state that allows the operation."""

    status_code = 400


class InvalidTransition(CheckoutError):
    """Raised when a status change is not allowed from the current status."""

    status_code = 409

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot change status from {current} to {target}")


class GatewayError(CheckoutError):
    """Raised when the payment gateway is unreachable or rejects a request."""

    status_code = 502

    def __init__(self, message: str, details: dict | None = None):
        self.details = details
        super().__init__(message)


class StoreError(CheckoutError):
    """Raised when a database write or read fails.

    ``indeterminate`` is set when the failure happened after the payment was
    already marked completed, so the caller cannot assume the order failed.
    """

    status_code = 503

    def __init__(self, message: str, stage: str | None = None, indeterminate: bool = False):
        self.stage = stage
        self.indeterminate = indeterminate
        super().__init__(message)

    def to_dict(self) -> dict:
        body = {"detail": self.message}
        if self.indeterminate:
            body["state"] = "indeterminate"
        if self.stage:
            body["stage"] = self.stage
        return body


class InsufficientStock(CheckoutError):
    """Raised when a variant has fewer units in stock than requested."""

    status_code = 409

    def __init__(self, variant_id: str, available: int, requested: int):
        self.variant_id = variant_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient stock for variant {variant_id}: {available} available, {requested} requested"
        )
