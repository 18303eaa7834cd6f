from decimal import Decimal
from typing import List

from pydantic import BaseModel


class CartPrice(BaseModel):
    currency: str
    amount: Decimal

    class Config:
        from_attributes = True


class CartLine(BaseModel):
    variant_id: int
    sku: str
    qty: int
    product_name: str
    prices: List[CartPrice] = []


class CartSnapshot(BaseModel):
    """Read-only view of a cart handed to checkout."""
    id: str
    items: List[CartLine] = []
