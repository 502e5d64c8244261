"""Shopping cart passed explicitly through the checkout flow.

Persistence is injected: a cart reads its items from a ``CartStorage`` once
and writes them back after every change.
"""

import json
import os
from decimal import Decimal
from typing import Any, Dict, List, Optional, Protocol

from pydantic import BaseModel, Field


class CartItem(BaseModel):
    product_id: str
    variant_id: str
    name: str
    size: Optional[str] = None
    color: Optional[str] = None
    price: Decimal = Field(ge=0)
    quantity: int = Field(gt=0)
    image_url: Optional[str] = None


class CartStorage(Protocol):
    def load(self) -> List[Dict[str, Any]]: ...

    def save(self, items: List[Dict[str, Any]]) -> None: ...


class MemoryCartStorage:
    def __init__(self, items: Optional[List[Dict[str, Any]]] = None):
        self.items = list(items or [])

    def load(self) -> List[Dict[str, Any]]:
        return list(self.items)

    def save(self, items: List[Dict[str, Any]]) -> None:
        self.items = list(items)


class JsonFileCartStorage:
    def __init__(self, path: str):
        self.path = path

    def load(self) -> List[Dict[str, Any]]:
        if not os.path.exists(self.path):
            return []
        with open(self.path, encoding="utf-8") as fh:
            data = json.load(fh)
        return data if isinstance(data, list) else []

    def save(self, items: List[Dict[str, Any]]) -> None:
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as fh:
            json.dump(items, fh)
        os.replace(tmp_path, self.path)


class Cart:
    def __init__(self, storage: Optional[CartStorage] = None):
        self._storage = storage if storage is not None else MemoryCartStorage()
        self._items: List[CartItem] = [CartItem.model_validate(raw) for raw in self._storage.load()]

    @property
    def items(self) -> List[CartItem]:
        return [item.model_copy() for item in self._items]

    @property
    def is_empty(self) -> bool:
        return not self._items

    @property
    def subtotal(self) -> Decimal:
        return sum((item.price * item.quantity for item in self._items), Decimal("0"))

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self._items)

    def add_item(self, item: CartItem) -> None:
        for existing in self._items:
            if existing.variant_id == item.variant_id:
                existing.quantity += item.quantity
                break
        else:
            self._items.append(item.model_copy())
        self._persist()

    def remove_item(self, variant_id: str) -> None:
        self._items = [item for item in self._items if item.variant_id != variant_id]
        self._persist()

    def update_quantity(self, variant_id: str, quantity: int) -> None:
        if quantity <= 0:
            self.remove_item(variant_id)
            return
        for item in self._items:
            if item.variant_id == variant_id:
                item.quantity = quantity
        self._persist()

    def clear(self) -> None:
        self._items = []
        self._persist()

    def _persist(self) -> None:
        self._storage.save([item.model_dump(mode="json") for item in self._items])
