from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class VariantCreate(BaseModel):
    size: Optional[str] = None
    color: Optional[str] = None
    stock_quantity: int = Field(default=0, ge=0)
    price_adjustment: Decimal = Decimal("0.00")


class VariantUpdate(BaseModel):
    stock_quantity: Optional[int] = Field(default=None, ge=0)
    price_adjustment: Optional[Decimal] = None


class ProductCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    base_price: Decimal = Field(ge=0)
    description: Optional[str] = None
    variants: List[VariantCreate] = []


class VariantOut(BaseModel):
    id: str
    product_id: str
    size: Optional[str] = None
    color: Optional[str] = None
    stock_quantity: int
    price_adjustment: float

    class Config:
        from_attributes = True


class ProductOut(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    base_price: float
    is_active: bool
    variants: List[VariantOut]

    class Config:
        from_attributes = True
