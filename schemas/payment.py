from datetime import datetime
from typing import Optional

from pydantic import AliasChoices, BaseModel, Field


class BeginPaymentRequest(BaseModel):
    order_id: str = Field(min_length=1)


class BeginPaymentResponse(BaseModel):
    order_id: str
    gateway_order_id: str
    gateway_key_id: str
    amount: int  # minor units
    currency: str


class ConfirmPaymentRequest(BaseModel):
    """Callback payload from the gateway widget.

    Accepts both our field names and the gateway's native ``razorpay_*`` keys.
    """

    gateway_order_id: str = Field(
        min_length=1,
        max_length=100,
        validation_alias=AliasChoices("gateway_order_id", "razorpay_order_id"),
    )
    gateway_payment_id: str = Field(
        min_length=1,
        max_length=100,
        validation_alias=AliasChoices("gateway_payment_id", "razorpay_payment_id"),
    )
    signature: str = Field(
        min_length=1,
        max_length=128,
        validation_alias=AliasChoices("signature", "razorpay_signature"),
    )
    order_id: str = Field(min_length=1, validation_alias=AliasChoices("order_id", "orderId"))

    class Config:
        str_strip_whitespace = True
        populate_by_name = True


class ConfirmPaymentResponse(BaseModel):
    valid: bool
    message: Optional[str] = None


class PaymentOut(BaseModel):
    id: str
    order_id: str
    provider: str
    gateway_order_id: str
    gateway_payment_id: Optional[str] = None
    amount: float
    currency: str
    status: str
    error_message: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class PaymentStatusUpdate(BaseModel):
    status: str
    error_message: Optional[str] = None
