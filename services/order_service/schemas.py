from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from .status import FulfillmentStatus, OrderStatus, PaymentStatus


class OrderCreate(BaseModel):
    billing_address_id: str
    shipping_address_id: str
    # Falls back to the store currency when omitted
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class PaymentStatusUpdate(BaseModel):
    payment_status: PaymentStatus


class FulfillmentStatusUpdate(BaseModel):
    fulfillment_status: FulfillmentStatus


class OrderItemResponse(BaseModel):
    id: int
    variant_id: Optional[int]
    name_snapshot: str
    sku_snapshot: str
    unit_price: Decimal
    qty: int

    class Config:
        from_attributes = True


class AddressResponse(BaseModel):
    id: str
    first_name: str
    last_name: str
    phone: str
    line1: str
    line2: Optional[str]
    city: str
    country: str
    postal_code: str

    class Config:
        from_attributes = True


class OrderResponse(BaseModel):
    id: str
    order_no: str
    customer_id: str
    currency: str
    status: OrderStatus
    payment_status: PaymentStatus
    fulfillment_status: FulfillmentStatus
    placed_at: datetime
    deleted_at: Optional[datetime]
    items: List[OrderItemResponse] = []
    billing_address: Optional[AddressResponse] = None
    shipping_address: Optional[AddressResponse] = None
    subtotal: Decimal
    tax_total: Decimal
    shipping_total: Decimal
    total: Decimal

    class Config:
        from_attributes = True
