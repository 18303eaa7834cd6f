from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field

from services.order_service.status import PaymentMethod, PaymentStatus


class PaymentEvent(BaseModel):
    """Provider-neutral view of a webhook delivery."""
    order_id: str
    transaction_id: str
    amount: Decimal
    currency: str
    status: Literal[PaymentStatus.PAID, PaymentStatus.FAILED]
    method: PaymentMethod
    captured_at: Optional[datetime] = None


class SavePayment(BaseModel):
    order_id: str
    provider: str
    provider_ref: str
    amount: Decimal
    currency: str
    status: PaymentStatus
    method: PaymentMethod
    captured_at: Optional[datetime] = None


class BillingData(BaseModel):
    first_name: str
    last_name: str
    email: Optional[str] = None
    phone: str
    line1: str
    line2: Optional[str] = None
    city: str
    country: str
    postal_code: str

    class Config:
        from_attributes = True


class RecordCashPayment(BaseModel):
    amount: Decimal = Field(gt=0)
    currency: str = Field(min_length=3, max_length=3)


class PaymentIntentCreate(BaseModel):
    order_id: str
    method: PaymentMethod


class PaymentIntentResponse(BaseModel):
    order_id: str
    method: PaymentMethod
    # None when no redirect is needed (cash on delivery)
    payment_url: Optional[str]


class WebhookResponse(BaseModel):
    message: str


class PaymentResponse(BaseModel):
    id: int
    order_id: str
    provider: str
    provider_ref: str
    amount: Decimal
    currency: str
    status: PaymentStatus
    method: PaymentMethod
    captured_at: Optional[datetime]

    class Config:
        from_attributes = True
