import asyncio
from decimal import Decimal

import pytest
from sqlalchemy import delete, update

from shared.errors import (
    AddressInvalid,
    CartEmpty,
    InsufficientStock,
    NotFound,
    PriceUnavailable,
    VariantInactive,
)
from services.inventory_service.ledger import InventoryLedger
from services.inventory_service.models import VariantInventory
from services.order_service.numbering import OrderNumberSequencer
from services.order_service.schemas import OrderCreate
from services.order_service.service import OrderService
from services.order_service.status import FulfillmentStatus, OrderStatus, PaymentStatus
from services.product_service.models import Product, ProductVariant, VariantPrice


def checkout_for(shopper, currency=None):
    return OrderCreate(
        billing_address_id=shopper.billing_id, shipping_address_id=shopper.shipping_id, currency=currency
    )


async def place(session_factory, shopper, currency=None):
    async with session_factory() as db:
        return await OrderService.create_order(db, shopper.customer_id, checkout_for(shopper, currency))


async def test_checkout_creates_pending_order(store, session_factory):
    variant_id = await store.add_variant(stock=50)
    shopper = await store.add_shopper(cart={variant_id: 2})

    order = await place(session_factory, shopper)

    assert order.order_no.startswith("ORD-")
    assert order.currency == "EGP"
    assert order.status == OrderStatus.PENDING
    assert order.payment_status == PaymentStatus.PENDING
    assert order.fulfillment_status == FulfillmentStatus.PENDING
    assert order.subtotal == Decimal("200.00")
    assert order.total == Decimal("200.00")
    assert [(i.variant_id, i.qty, i.unit_price, i.name_snapshot) for i in order.items] == [
        (variant_id, 2, Decimal("100.00"), "Linen Shirt")
    ]
    assert await store.stock_of(variant_id) == 48
    assert await store.cart_size(shopper.customer_id) == 0


async def test_order_numbers_are_sequential(store, session_factory):
    variant_id = await store.add_variant(stock=50)
    first = await store.add_shopper(cart={variant_id: 1})
    second = await store.add_shopper(cart={variant_id: 1})

    a = await place(session_factory, first)
    b = await place(session_factory, second)

    assert int(b.order_no.rsplit("-", 1)[1]) == int(a.order_no.rsplit("-", 1)[1]) + 1


async def test_requested_currency_selects_price(store, session_factory):
    variant_id = await store.add_variant(prices={"EGP": "100.00", "USD": "3.25"})
    shopper = await store.add_shopper(cart={variant_id: 2})

    order = await place(session_factory, shopper, currency="usd")

    assert order.currency == "USD"
    assert order.total == Decimal("6.50")


async def test_insufficient_stock_writes_nothing(store, session_factory):
    variant_id = await store.add_variant(stock=1)
    shopper = await store.add_shopper(cart={variant_id: 2})

    with pytest.raises(InsufficientStock, match="Only 1 available"):
        await place(session_factory, shopper)

    assert await store.order_count() == 0
    assert await store.stock_of(variant_id) == 1
    assert await store.cart_size(shopper.customer_id) == 1


async def test_stock_taken_between_check_and_write(store, session_factory, monkeypatch):
    variant_id = await store.add_variant(stock=5)
    shopper = await store.add_shopper(cart={variant_id: 2})
    allocate = OrderNumberSequencer.next_order_number

    async def allocate_after_stock_drained(db, year=None):
        await db.execute(
            update(VariantInventory).where(VariantInventory.variant_id == variant_id).values(stock_on_hand=1)
        )
        return await allocate(db, year)

    monkeypatch.setattr(OrderNumberSequencer, "next_order_number", staticmethod(allocate_after_stock_drained))

    with pytest.raises(InsufficientStock) as excinfo:
        await place(session_factory, shopper)

    assert excinfo.value.details == [{"variant_id": variant_id, "error": "insufficient_stock"}]
    assert await store.order_count() == 0
    assert await store.stock_of(variant_id) == 5
    assert await store.cart_size(shopper.customer_id) == 1


async def test_failure_on_later_line_rolls_back_earlier_reservations(store, session_factory, monkeypatch):
    shirt = await store.add_variant(name="Linen Shirt", stock=10)
    scarf = await store.add_variant(name="Wool Scarf", stock=10)
    shopper = await store.add_shopper(cart={shirt: 2, scarf: 3})
    allocate = OrderNumberSequencer.next_order_number

    async def allocate_after_scarf_sold_out(db, year=None):
        await db.execute(update(VariantInventory).where(VariantInventory.variant_id == scarf).values(stock_on_hand=0))
        return await allocate(db, year)

    monkeypatch.setattr(OrderNumberSequencer, "next_order_number", staticmethod(allocate_after_scarf_sold_out))

    with pytest.raises(InsufficientStock, match="Wool Scarf"):
        await place(session_factory, shopper)

    assert await store.stock_of(shirt) == 10
    assert await store.stock_of(scarf) == 10


async def test_concurrent_checkouts_never_oversell(store, session_factory):
    variant_id = await store.add_variant(stock=5)
    shoppers = [await store.add_shopper(cart={variant_id: 1}) for _ in range(10)]

    results = await asyncio.gather(*(place(session_factory, s) for s in shoppers), return_exceptions=True)

    placed = [r for r in results if not isinstance(r, Exception)]
    failed = [r for r in results if isinstance(r, Exception)]
    assert len(placed) == 5
    assert all(isinstance(exc, InsufficientStock) for exc in failed)
    assert len({order.order_no for order in placed}) == 5
    assert await store.stock_of(variant_id) == 0


async def test_foreign_address_is_rejected(store, session_factory):
    variant_id = await store.add_variant()
    shopper = await store.add_shopper(cart={variant_id: 1})
    stranger = await store.add_shopper()

    data = OrderCreate(billing_address_id=shopper.billing_id, shipping_address_id=stranger.shipping_id)
    async with session_factory() as db:
        with pytest.raises(AddressInvalid):
            await OrderService.create_order(db, shopper.customer_id, data)

    assert await store.stock_of(variant_id) == 50


async def test_empty_cart(store, session_factory):
    shopper = await store.add_shopper()

    with pytest.raises(CartEmpty):
        await place(session_factory, shopper)


async def test_inactive_variant(store, session_factory):
    variant_id = await store.add_variant(active=False)
    shopper = await store.add_shopper(cart={variant_id: 1})

    with pytest.raises(VariantInactive):
        await place(session_factory, shopper)


async def test_price_missing_in_currency(store, session_factory):
    variant_id = await store.add_variant(prices={"USD": "3.25"})
    shopper = await store.add_shopper(cart={variant_id: 1})

    with pytest.raises(PriceUnavailable):
        await place(session_factory, shopper)

    assert await store.order_count() == 0


async def test_every_failing_line_is_reported(store, session_factory):
    inactive = await store.add_variant(active=False)
    unpriced = await store.add_variant(prices={})
    shopper = await store.add_shopper(cart={inactive: 1, unpriced: 1})

    with pytest.raises(VariantInactive) as excinfo:
        await place(session_factory, shopper)

    assert [d["error"] for d in excinfo.value.details] == ["variant_inactive", "price_unavailable"]


async def test_deleted_variant_in_cart(store, session_factory):
    variant_id = await store.add_variant()
    shopper = await store.add_shopper(cart={variant_id: 1})

    # Cart rows go with the variant, so a vanished variant shows up as an empty cart
    async with session_factory() as db:
        await db.execute(delete(ProductVariant).where(ProductVariant.id == variant_id))
        await db.commit()

    with pytest.raises(CartEmpty):
        await place(session_factory, shopper)


async def test_order_keeps_snapshot_after_catalog_changes(store, session_factory):
    variant_id = await store.add_variant(name="Linen Shirt")
    shopper = await store.add_shopper(cart={variant_id: 2})
    order = await place(session_factory, shopper)

    async with session_factory() as db:
        await db.execute(
            update(VariantPrice).where(VariantPrice.variant_id == variant_id).values(amount=Decimal("150.00"))
        )
        await db.execute(update(Product).values(name="Linen Shirt v2"))
        await db.commit()

    async with session_factory() as db:
        reloaded = await OrderService.get_order(db, order.id, shopper.customer_id)
        assert reloaded.items[0].unit_price == Decimal("100.00")
        assert reloaded.items[0].name_snapshot == "Linen Shirt"
        assert reloaded.total == Decimal("200.00")


async def test_order_items_cannot_be_edited(store, session_factory):
    variant_id = await store.add_variant()
    shopper = await store.add_shopper(cart={variant_id: 2})
    order = await place(session_factory, shopper)

    async with session_factory() as db:
        reloaded = await OrderService.get_order(db, order.id)
        reloaded.items[0].qty = 5
        with pytest.raises(ValueError, match="immutable"):
            await db.flush()


async def test_orders_survive_variant_deletion(store, session_factory):
    variant_id = await store.add_variant()
    shopper = await store.add_shopper(cart={variant_id: 2})
    order = await place(session_factory, shopper)

    async with session_factory() as db:
        await db.execute(delete(ProductVariant).where(ProductVariant.id == variant_id))
        await db.commit()

    async with session_factory() as db:
        reloaded = await OrderService.get_order(db, order.id)
        assert reloaded.items[0].variant_id is None
        assert reloaded.items[0].sku_snapshot
        assert reloaded.total == Decimal("200.00")


async def test_lookup_is_scoped_to_customer(store, session_factory):
    variant_id = await store.add_variant()
    shopper = await store.add_shopper(cart={variant_id: 1})
    stranger = await store.add_shopper()
    order = await place(session_factory, shopper)

    async with session_factory() as db:
        assert (await OrderService.get_order_by_number(db, order.order_no, shopper.customer_id)).id == order.id
        with pytest.raises(NotFound):
            await OrderService.get_order(db, order.id, stranger.customer_id)
        assert await OrderService.list_customer_orders(db, stranger.customer_id) == []


async def test_soft_deleted_orders_are_hidden(store, session_factory):
    variant_id = await store.add_variant()
    shopper = await store.add_shopper(cart={variant_id: 1})
    order = await place(session_factory, shopper)

    async with session_factory() as db:
        await OrderService.soft_delete_order(db, order.id)

    async with session_factory() as db:
        with pytest.raises(NotFound):
            await OrderService.get_order(db, order.id)
        assert await OrderService.list_customer_orders(db, shopper.customer_id) == []


async def test_inventory_rows_are_touched_in_variant_order(store, session_factory, monkeypatch):
    shirt = await store.add_variant(name="Linen Shirt")
    scarf = await store.add_variant(name="Wool Scarf")
    shopper = await store.add_shopper(cart={scarf: 1, shirt: 1})
    touched = []
    reserve, restore = InventoryLedger.reserve, InventoryLedger.restore

    async def recording_reserve(db, variant_id, qty):
        touched.append(("reserve", variant_id))
        return await reserve(db, variant_id, qty)

    async def recording_restore(db, variant_id, qty):
        touched.append(("restore", variant_id))
        return await restore(db, variant_id, qty)

    monkeypatch.setattr(InventoryLedger, "reserve", staticmethod(recording_reserve))
    monkeypatch.setattr(InventoryLedger, "restore", staticmethod(recording_restore))

    order = await place(session_factory, shopper)
    assert [i.variant_id for i in order.items] == [scarf, shirt]
    async with session_factory() as db:
        await OrderService.cancel_order(db, order.id, shopper.customer_id)

    assert touched == [("reserve", shirt), ("reserve", scarf), ("restore", shirt), ("restore", scarf)]
