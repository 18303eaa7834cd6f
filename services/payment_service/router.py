from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.security.dependencies import get_current_customer, verify_internal_api_key

from .providers import PaymentProvider, get_payment_provider
from .repository import PaymentRepository
from .schemas import (
    PaymentIntentCreate,
    PaymentIntentResponse,
    PaymentResponse,
    RecordCashPayment,
    WebhookResponse,
)
from .service import PaymentService

# Staff and courier endpoints
router = APIRouter(dependencies=[Depends(verify_internal_api_key)])
customer_router = APIRouter()
public_router = APIRouter()  # Health check and the provider-signed webhook


@public_router.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "payment", "status": "running"}


@public_router.post("/webhook", response_model=WebhookResponse)
async def payment_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    provider: PaymentProvider = Depends(get_payment_provider),
):
    # The signature covers the exact bytes received, so read the raw body
    payload = await request.body()
    signature = request.headers.get(provider.signature_header)
    applied = await PaymentService.handle_webhook(db, provider, payload, signature, request.headers)
    message = "Webhook processed successfully" if applied else "Webhook already processed"
    return WebhookResponse(message=message)


@customer_router.post("/intent", response_model=PaymentIntentResponse)
async def create_payment_intent(
    payload: PaymentIntentCreate,
    customer_id: str = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
    provider: PaymentProvider = Depends(get_payment_provider),
):
    payment_url = await PaymentService.create_payment_intent(
        db, provider, customer_id, payload.order_id, payload.method
    )
    return PaymentIntentResponse(order_id=payload.order_id, method=payload.method, payment_url=payment_url)


@router.post("/orders/{order_id}/cash", status_code=status.HTTP_201_CREATED)
async def record_cash_payment(order_id: str, payload: RecordCashPayment, db: AsyncSession = Depends(get_db)):
    await PaymentService.record_cash_payment(db, order_id, payload.amount, payload.currency)
    return {"message": "Cash payment recorded"}


@router.get("/orders/{order_id}", response_model=list[PaymentResponse])
async def list_order_payments(order_id: str, db: AsyncSession = Depends(get_db)):
    return await PaymentRepository.list_for_order(db, order_id)
