"""
Shared fixtures: a throwaway SQLite database per test and helpers to seed a
small storefront (customers, addresses, variants with stock, carts).
"""
import json
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret")
os.environ.setdefault("INTERNAL_API_KEY", "test-internal-key")
os.environ.setdefault("PAYMOB_HMAC_SECRET", "test-hmac-secret")
os.environ.setdefault("STORE_CURRENCY", "EGP")

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Optional

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from shared.config.database import Base, build_engine
from services.customer_service.models import Address, Customer
from services.product_service.models import Product, ProductVariant, VariantPrice
from services.inventory_service.models import VariantInventory
from services.cart_service.models import Cart, CartItem
from services.order_service.models import Order, OrderItem, OrderNumberSequence  # noqa: F401
from services.order_service.schemas import OrderCreate
from services.order_service.service import OrderService
from services.payment_service.models import Payment
from services.payment_service.providers import PaymobProvider


@dataclass
class Shopper:
    customer_id: str
    billing_id: str
    shipping_id: str


class Storefront:
    """Seeds rows and reads them back, each call on its own session."""

    def __init__(self, session_factory):
        self.session_factory = session_factory
        self._count = 0

    async def add_variant(
        self,
        name: str = "Linen Shirt",
        sku: Optional[str] = None,
        stock: Optional[int] = 50,
        prices: Optional[Dict[str, str]] = None,
        active: bool = True,
    ) -> int:
        self._count += 1
        prices = {"EGP": "100.00"} if prices is None else prices
        async with self.session_factory() as db:
            variant = ProductVariant(
                sku=sku or f"SKU-{self._count:04d}",
                is_active=active,
                product=Product(name=name),
                prices=[VariantPrice(currency=c, amount=Decimal(a)) for c, a in prices.items()],
            )
            db.add(variant)
            await db.flush()
            if stock is not None:
                db.add(VariantInventory(variant_id=variant.id, stock_on_hand=stock))
            await db.commit()
            return variant.id

    async def add_shopper(self, cart: Optional[Dict[int, int]] = None) -> Shopper:
        self._count += 1
        async with self.session_factory() as db:
            customer = Customer(email=f"shopper{self._count}@example.com", name=f"Shopper {self._count}")
            db.add(customer)
            await db.flush()
            billing, shipping = (
                Address(
                    customer_id=customer.id,
                    first_name="Mona",
                    last_name="Adel",
                    phone="+201000000000",
                    line1=line1,
                    city="Cairo",
                    country="EG",
                    postal_code="11511",
                )
                for line1 in ("12 Tahrir St", "5 Nile Corniche")
            )
            db.add_all([billing, shipping, Cart(customer_id=customer.id)])
            await db.commit()
            shopper = Shopper(customer.id, billing.id, shipping.id)

        if cart:
            await self.fill_cart(shopper.customer_id, cart)
        return shopper

    async def fill_cart(self, customer_id: str, lines: Dict[int, int]) -> None:
        async with self.session_factory() as db:
            cart = (await db.execute(select(Cart).where(Cart.customer_id == customer_id))).scalar_one()
            for variant_id, qty in lines.items():
                db.add(CartItem(cart_id=cart.id, variant_id=variant_id, qty=qty))
            await db.commit()

    async def stock_of(self, variant_id: int) -> int:
        async with self.session_factory() as db:
            result = await db.execute(
                select(VariantInventory.stock_on_hand).where(VariantInventory.variant_id == variant_id)
            )
            return result.scalar_one()

    async def cart_size(self, customer_id: str) -> int:
        async with self.session_factory() as db:
            result = await db.execute(
                select(func.count(CartItem.id)).join(Cart).where(Cart.customer_id == customer_id)
            )
            return result.scalar_one()

    async def order_count(self) -> int:
        async with self.session_factory() as db:
            return (await db.execute(select(func.count(Order.id)))).scalar_one()

    async def payments_for(self, order_id: str):
        async with self.session_factory() as db:
            result = await db.execute(select(Payment).where(Payment.order_id == order_id))
            return result.scalars().all()

    async def load_order(self, order_id: str) -> Order:
        async with self.session_factory() as db:
            return (await db.execute(select(Order).where(Order.id == order_id))).scalar_one()


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'storefront.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
def store(session_factory):
    return Storefront(session_factory)


@pytest.fixture
def paymob():
    return PaymobProvider(
        base_url="https://paymob.test/api",
        api_key="paymob-api-key",
        hmac_secret=os.environ["PAYMOB_HMAC_SECRET"],
        iframe_id=11,
        card_integration_id=22,
        wallet_integration_id=33,
    )


@pytest.fixture
def paymob_webhook():
    """Builds a Paymob transaction callback body for an order."""

    def build(order_id, transaction_id=9001, success=True, pending=False, amount_cents=20000, source=None):
        body = {
            "type": "TRANSACTION",
            "obj": {
                "id": transaction_id,
                "success": success,
                "pending": pending,
                "amount_cents": amount_cents,
                "currency": "EGP",
                "order": {"id": 5512, "merchant_order_id": order_id},
                "source_data": source or {"type": "card", "sub_type": "MasterCard", "pan": "2346"},
                "created_at": "2025-03-01T10:15:00",
            },
        }
        return json.dumps(body).encode()

    return build


@pytest.fixture
async def placed_order(store, session_factory):
    """A PENDING order for 2 x 100.00 EGP."""
    variant_id = await store.add_variant(stock=50)
    shopper = await store.add_shopper(cart={variant_id: 2})
    data = OrderCreate(billing_address_id=shopper.billing_id, shipping_address_id=shopper.shipping_id)
    async with session_factory() as db:
        order = await OrderService.create_order(db, shopper.customer_id, data)
    return shopper, order
