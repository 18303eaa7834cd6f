from typing import List

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.security.dependencies import get_current_customer, verify_internal_api_key

from .schemas import (
    FulfillmentStatusUpdate,
    OrderCreate,
    OrderResponse,
    OrderStatusUpdate,
    PaymentStatusUpdate,
)
from .service import OrderService

# Customer routes, authenticated by bearer token
customer_router = APIRouter(tags=["orders"])

# Staff routes, protected as a whole by the internal key
admin_router = APIRouter(prefix="/admin", tags=["orders-admin"], dependencies=[Depends(verify_internal_api_key)])

public_router = APIRouter()


@public_router.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "order", "status": "running"}


@customer_router.post("/checkout", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    payload: OrderCreate,
    customer_id: str = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
):
    return await OrderService.create_order(db, customer_id, payload)


@customer_router.get("/my-orders", response_model=List[OrderResponse])
async def list_my_orders(
    limit: int = Query(default=10, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    customer_id: str = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
):
    return await OrderService.list_customer_orders(db, customer_id, limit, offset)


@customer_router.get("/my-orders/number/{order_no}", response_model=OrderResponse)
async def get_my_order_by_number(
    order_no: str,
    customer_id: str = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
):
    return await OrderService.get_order_by_number(db, order_no, customer_id)


@customer_router.get("/my-orders/{order_id}", response_model=OrderResponse)
async def get_my_order(
    order_id: str,
    customer_id: str = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
):
    return await OrderService.get_order(db, order_id, customer_id)


@customer_router.patch("/my-orders/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: str,
    customer_id: str = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
):
    return await OrderService.cancel_order(db, order_id, customer_id)


@admin_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str, db: AsyncSession = Depends(get_db)):
    return await OrderService.get_order(db, order_id)


@admin_router.patch("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(order_id: str, payload: OrderStatusUpdate, db: AsyncSession = Depends(get_db)):
    return await OrderService.update_order_status(db, order_id, payload.status)


@admin_router.patch("/{order_id}/payment-status", response_model=OrderResponse)
async def update_payment_status(order_id: str, payload: PaymentStatusUpdate, db: AsyncSession = Depends(get_db)):
    return await OrderService.update_payment_status(db, order_id, payload.payment_status)


@admin_router.patch("/{order_id}/fulfillment-status", response_model=OrderResponse)
async def update_fulfillment_status(
    order_id: str, payload: FulfillmentStatusUpdate, db: AsyncSession = Depends(get_db)
):
    return await OrderService.update_fulfillment_status(db, order_id, payload.fulfillment_status)


@admin_router.delete("/{order_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_order(order_id: str, db: AsyncSession = Depends(get_db)):
    await OrderService.soft_delete_order(db, order_id)
