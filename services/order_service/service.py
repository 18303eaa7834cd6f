"""
Order use cases.

Each public method is one unit of work on the session it is handed: it either
commits everything it did or nothing. Helpers that run inside another use case
(``apply_payment_status``) take the same session and never commit on their own.
"""
from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import transaction
from shared.config.settings import STORE_CURRENCY
from shared.errors import AddressInvalid, CartEmpty, InsufficientStock, NotFound, OrderError
from shared.observability import (
    storefront_checkout_duration_seconds,
    storefront_checkout_total,
    storefront_order_cancellations_total,
    storefront_status_transitions_total,
    storefront_stock_conflicts_total,
)
from services.cart_service.repository import CartRepository
from services.customer_service.repository import AddressRepository
from services.inventory_service.ledger import InventoryLedger
from services.product_service.repository import ProductRepository

from . import status as machine
from .models import Order, OrderItem
from .numbering import OrderNumberSequencer
from .pricing import price_cart
from .repository import OrderRepository
from .schemas import OrderCreate

logger = structlog.get_logger(__name__)


def _record_transitions(before: machine.OrderState, after: machine.OrderState) -> None:
    for field in ("status", "payment_status", "fulfillment_status"):
        target = getattr(after, field)
        if getattr(before, field) != target:
            storefront_status_transitions_total.labels(field=field, target=target.value).inc()


def _in_lock_order(items):
    # Inventory rows are always locked in ascending variant id order
    return sorted(items, key=lambda item: item.variant_id or 0)


class OrderService:

    @staticmethod
    async def create_order(db: AsyncSession, customer_id: str, data: OrderCreate) -> Order:
        log = logger.bind(customer_id=customer_id)
        currency = (data.currency or STORE_CURRENCY).upper()

        try:
            with storefront_checkout_duration_seconds.time():
                async with transaction(db):
                    order = await OrderService._place_order(db, customer_id, data, currency)
        except OrderError as exc:
            storefront_checkout_total.labels(status=exc.kind).inc()
            log.warning("order_create_failed", kind=exc.kind, detail=exc.message)
            raise

        storefront_checkout_total.labels(status="success").inc()
        log.info("order_created", order_id=order.id, order_no=order.order_no, total=str(order.total))
        return order

    @staticmethod
    async def _place_order(db: AsyncSession, customer_id: str, data: OrderCreate, currency: str) -> Order:
        # 1. Both addresses must belong to the customer
        billing = await AddressRepository.get_for_customer(db, data.billing_address_id, customer_id)
        shipping = await AddressRepository.get_for_customer(db, data.shipping_address_id, customer_id)
        if billing is None or shipping is None:
            raise AddressInvalid()

        # 2. Cart snapshot
        cart = await CartRepository.get_cart_for_checkout(db, customer_id)
        if cart is None or not cart.items:
            raise CartEmpty()

        # 3. Validate every line against the live variant before writing anything
        variants = await ProductRepository.get_variants_by_ids(db, [line.variant_id for line in cart.items])
        priced, rejected = price_cart(cart.items, variants, currency)
        if rejected:
            details = [rejection.to_dict() for rejection in rejected]
            raise rejected[0].to_error(details=details if len(rejected) > 1 else None)

        # 4. Order number from the per-year counter
        order_no = await OrderNumberSequencer.next_order_number(db)

        # 5. Order and item snapshots in one write
        order = Order(
            order_no=order_no,
            customer_id=customer_id,
            currency=currency,
            billing_address=billing,
            shipping_address=shipping,
            items=[
                OrderItem(
                    variant_id=line.variant_id,
                    name_snapshot=line.name_snapshot,
                    sku_snapshot=line.sku_snapshot,
                    unit_price=line.unit_price,
                    qty=line.qty,
                )
                for line in priced
            ],
        )
        order.apply_state(machine.initial_state())
        await OrderRepository.create_order(db, order)

        # 6. Reserve stock; the decrement re-checks sufficiency at write time
        for item in _in_lock_order(order.items):
            try:
                await InventoryLedger.reserve(db, item.variant_id, item.qty)
            except InsufficientStock:
                storefront_stock_conflicts_total.inc()
                raise InsufficientStock(
                    f'Insufficient stock for "{item.name_snapshot}"',
                    details=[{"variant_id": item.variant_id, "error": InsufficientStock.kind}],
                )

        # 7. Empty the cart
        await CartRepository.clear_cart(db, cart.id)
        return order

    @staticmethod
    async def get_order(db: AsyncSession, order_id: str, customer_id: Optional[str] = None) -> Order:
        order = await OrderRepository.get_order(db, order_id, customer_id)
        if order is None:
            raise NotFound()
        return order

    @staticmethod
    async def get_order_by_number(db: AsyncSession, order_no: str, customer_id: Optional[str] = None) -> Order:
        order = await OrderRepository.get_order_by_number(db, order_no, customer_id)
        if order is None:
            raise NotFound()
        return order

    @staticmethod
    async def list_customer_orders(db: AsyncSession, customer_id: str, limit: int = 10, offset: int = 0):
        return await OrderRepository.list_customer_orders(db, customer_id, limit, offset)

    @staticmethod
    async def _update_state(db: AsyncSession, order_id: str, change, target, field: str) -> Order:
        async with transaction(db):
            order = await OrderRepository.get_order(db, order_id, for_update=True)
            if order is None:
                raise NotFound()
            before = order.state
            after = change(before, target)
            order.apply_state(after)

        _record_transitions(before, after)
        logger.info(
            "order_status_updated",
            order_id=order.id,
            order_no=order.order_no,
            field=field,
            target=target.value,
            status=after.status.value,
        )
        return order

    @staticmethod
    async def update_order_status(db: AsyncSession, order_id: str, target: machine.OrderStatus) -> Order:
        return await OrderService._update_state(db, order_id, machine.change_order_status, target, "status")

    @staticmethod
    async def update_payment_status(db: AsyncSession, order_id: str, target: machine.PaymentStatus) -> Order:
        return await OrderService._update_state(
            db, order_id, machine.change_payment_status, target, "payment_status"
        )

    @staticmethod
    async def update_fulfillment_status(
        db: AsyncSession, order_id: str, target: machine.FulfillmentStatus
    ) -> Order:
        return await OrderService._update_state(
            db, order_id, machine.change_fulfillment_status, target, "fulfillment_status"
        )

    @staticmethod
    async def apply_payment_status(db: AsyncSession, order: Order, target: machine.PaymentStatus) -> Order:
        """Payment status change inside the caller's transaction (webhooks, cash)."""
        before = order.state
        after = machine.change_payment_status(before, target)
        order.apply_state(after)
        await db.flush()
        _record_transitions(before, after)
        return order

    @staticmethod
    async def cancel_order(db: AsyncSession, order_id: str, customer_id: str) -> Order:
        async with transaction(db):
            order = await OrderRepository.get_order(db, order_id, customer_id, for_update=True)
            if order is None:
                raise NotFound()
            before = order.state
            after = machine.cancel(before)

            for item in _in_lock_order(order.items):
                if item.variant_id is not None:
                    await InventoryLedger.restore(db, item.variant_id, item.qty)
            order.apply_state(after)

        _record_transitions(before, after)
        storefront_order_cancellations_total.inc()
        logger.info("order_cancelled", order_id=order.id, order_no=order.order_no, customer_id=customer_id)
        return order

    @staticmethod
    async def soft_delete_order(db: AsyncSession, order_id: str) -> None:
        async with transaction(db):
            order = await OrderRepository.get_order(db, order_id, for_update=True)
            if order is None:
                raise NotFound()
            order.deleted_at = datetime.now(timezone.utc)
        logger.info("order_soft_deleted", order_id=order_id)
