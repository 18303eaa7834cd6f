from decimal import Decimal

import pytest
from sqlalchemy import delete

from shared.errors import InvalidTransition, NotCancellable, NotFound
from services.order_service.schemas import OrderCreate
from services.order_service.service import OrderService
from services.order_service.status import FulfillmentStatus, OrderStatus, PaymentStatus
from services.product_service.models import ProductVariant


@pytest.fixture
async def placed(store, session_factory):
    """A shopper with one PENDING order for 2 x 100.00 of a variant stocked at 50."""
    variant_id = await store.add_variant(stock=50)
    shopper = await store.add_shopper(cart={variant_id: 2})
    data = OrderCreate(billing_address_id=shopper.billing_id, shipping_address_id=shopper.shipping_id)
    async with session_factory() as db:
        order = await OrderService.create_order(db, shopper.customer_id, data)
    return shopper, variant_id, order


async def run(session_factory, method, *args):
    async with session_factory() as db:
        return await method(db, *args)


class TestCancellation:

    async def test_cancel_restores_stock(self, store, session_factory, placed):
        shopper, variant_id, order = placed
        assert await store.stock_of(variant_id) == 48

        cancelled = await run(session_factory, OrderService.cancel_order, order.id, shopper.customer_id)

        assert cancelled.status == OrderStatus.CANCELLED
        assert cancelled.payment_status == PaymentStatus.REFUNDED
        assert await store.stock_of(variant_id) == 50

    async def test_processing_order_can_be_cancelled(self, store, session_factory, placed):
        shopper, variant_id, order = placed
        await run(session_factory, OrderService.update_payment_status, order.id, PaymentStatus.PAID)

        cancelled = await run(session_factory, OrderService.cancel_order, order.id, shopper.customer_id)

        assert cancelled.status == OrderStatus.CANCELLED
        assert await store.stock_of(variant_id) == 50

    async def test_cancel_twice(self, store, session_factory, placed):
        shopper, variant_id, order = placed
        await run(session_factory, OrderService.cancel_order, order.id, shopper.customer_id)

        with pytest.raises(NotCancellable):
            await run(session_factory, OrderService.cancel_order, order.id, shopper.customer_id)
        assert await store.stock_of(variant_id) == 50

    async def test_shipped_order_is_not_cancellable(self, store, session_factory, placed):
        shopper, variant_id, order = placed
        await run(session_factory, OrderService.update_fulfillment_status, order.id, FulfillmentStatus.SHIPPED)

        with pytest.raises(NotCancellable):
            await run(session_factory, OrderService.cancel_order, order.id, shopper.customer_id)

        reloaded = await store.load_order(order.id)
        assert reloaded.status == OrderStatus.SHIPPED
        assert await store.stock_of(variant_id) == 48

    async def test_other_customers_order_is_not_found(self, store, session_factory, placed):
        _, variant_id, order = placed
        stranger = await store.add_shopper()

        with pytest.raises(NotFound):
            await run(session_factory, OrderService.cancel_order, order.id, stranger.customer_id)
        assert await store.stock_of(variant_id) == 48

    async def test_cancel_after_variant_removed(self, store, session_factory, placed):
        shopper, variant_id, order = placed
        async with session_factory() as db:
            await db.execute(delete(ProductVariant).where(ProductVariant.id == variant_id))
            await db.commit()

        cancelled = await run(session_factory, OrderService.cancel_order, order.id, shopper.customer_id)

        assert cancelled.status == OrderStatus.CANCELLED

    async def test_cancelled_order_is_frozen(self, session_factory, placed):
        shopper, _, order = placed
        await run(session_factory, OrderService.cancel_order, order.id, shopper.customer_id)

        with pytest.raises(InvalidTransition, match="cancelled"):
            await run(session_factory, OrderService.update_order_status, order.id, OrderStatus.PROCESSING)
        with pytest.raises(InvalidTransition):
            await run(session_factory, OrderService.update_payment_status, order.id, PaymentStatus.PAID)
        with pytest.raises(InvalidTransition):
            await run(session_factory, OrderService.update_fulfillment_status, order.id, FulfillmentStatus.SHIPPED)


class TestStatusUpdates:

    async def test_payment_promotes_order(self, session_factory, placed):
        _, _, order = placed

        updated = await run(session_factory, OrderService.update_payment_status, order.id, PaymentStatus.PAID)

        assert updated.status == OrderStatus.PROCESSING
        assert updated.payment_status == PaymentStatus.PAID

    async def test_full_fulfillment_path(self, store, session_factory, placed):
        _, _, order = placed
        await run(session_factory, OrderService.update_payment_status, order.id, PaymentStatus.PAID)
        shipped = await run(
            session_factory, OrderService.update_fulfillment_status, order.id, FulfillmentStatus.SHIPPED
        )
        assert shipped.status == OrderStatus.SHIPPED

        delivered = await run(
            session_factory, OrderService.update_fulfillment_status, order.id, FulfillmentStatus.DELIVERED
        )
        assert delivered.status == OrderStatus.DELIVERED
        assert (await store.load_order(order.id)).fulfillment_status == FulfillmentStatus.DELIVERED

    async def test_delivered_order_only_refunds(self, store, session_factory, placed):
        _, _, order = placed
        await run(session_factory, OrderService.update_payment_status, order.id, PaymentStatus.PAID)
        await run(session_factory, OrderService.update_order_status, order.id, OrderStatus.DELIVERED)

        with pytest.raises(InvalidTransition, match="Delivered orders can only be refunded"):
            await run(session_factory, OrderService.update_order_status, order.id, OrderStatus.PROCESSING)
        assert (await store.load_order(order.id)).status == OrderStatus.DELIVERED

        refunded = await run(session_factory, OrderService.update_order_status, order.id, OrderStatus.REFUNDED)
        assert refunded.status == OrderStatus.REFUNDED

    async def test_unpaid_order_cannot_be_delivered(self, store, session_factory, placed):
        _, _, order = placed

        with pytest.raises(InvalidTransition):
            await run(session_factory, OrderService.update_fulfillment_status, order.id, FulfillmentStatus.DELIVERED)
        assert (await store.load_order(order.id)).fulfillment_status == FulfillmentStatus.PENDING

    async def test_generic_update_cannot_cancel(self, store, session_factory, placed):
        _, variant_id, order = placed

        with pytest.raises(InvalidTransition):
            await run(session_factory, OrderService.update_order_status, order.id, OrderStatus.CANCELLED)
        assert await store.stock_of(variant_id) == 48

    async def test_unknown_order(self, session_factory):
        with pytest.raises(NotFound):
            await run(session_factory, OrderService.update_order_status, "missing", OrderStatus.SHIPPED)

    async def test_totals_unchanged_by_status(self, session_factory, placed):
        _, _, order = placed
        updated = await run(session_factory, OrderService.update_order_status, order.id, OrderStatus.SHIPPED)
        assert updated.total == Decimal("200.00")
