from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field


class ShippingAddress(BaseModel):
    full_name: str = Field(min_length=1, max_length=100)
    street: str = Field(min_length=1, max_length=200)
    city: str = Field(min_length=1, max_length=100)
    region: str = Field(min_length=1, max_length=50)
    postal_code: str = Field(min_length=5, max_length=10)
    phone: str = Field(min_length=10, max_length=15)

    class Config:
        str_strip_whitespace = True


class OrderItemIn(BaseModel):
    variant_id: str
    quantity: int = Field(gt=0)


class OrderCreate(BaseModel):
    items: List[OrderItemIn] = Field(min_length=1)
    shipping_address: ShippingAddress
    email: Optional[EmailStr] = None


class OrderItemOut(BaseModel):
    id: str
    product_id: str
    variant_id: str
    product_name: str
    variant_details: dict
    quantity: int
    unit_price: float
    total_price: float

    class Config:
        from_attributes = True


class OrderOut(BaseModel):
    id: str
    user_id: str
    status: str
    currency: str
    subtotal: float
    shipping_cost: float
    total: float
    shipping_address: dict
    payment_method: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    items: List[OrderItemOut]

    class Config:
        from_attributes = True


class OrderStatusUpdate(BaseModel):
    status: str
