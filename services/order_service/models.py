import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    event,
)
from sqlalchemy.orm import relationship

from shared.config.database import Base
from services.customer_service.models import Address

from .pricing import order_totals, subtotal as lines_subtotal
from .status import FulfillmentStatus, OrderState, OrderStatus, PaymentStatus


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _status_column(enum_cls, default):
    return Column(
        Enum(enum_cls, native_enum=False, length=20, validate_strings=True),
        nullable=False,
        default=default,
    )


class Order(Base):
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    order_no = Column(String(32), unique=True, nullable=False, index=True)
    customer_id = Column(String(36), ForeignKey("customers.id"), nullable=False, index=True)
    currency = Column(String(3), nullable=False)
    status = _status_column(OrderStatus, OrderStatus.PENDING)
    payment_status = _status_column(PaymentStatus, PaymentStatus.PENDING)
    fulfillment_status = _status_column(FulfillmentStatus, FulfillmentStatus.PENDING)
    billing_address_id = Column(String(36), ForeignKey("addresses.id"), nullable=False)
    shipping_address_id = Column(String(36), ForeignKey("addresses.id"), nullable=False)
    placed_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    items = relationship("OrderItem", lazy="selectin", order_by="OrderItem.id", cascade="all, delete-orphan")
    billing_address = relationship(Address, foreign_keys=[billing_address_id], lazy="selectin")
    shipping_address = relationship(Address, foreign_keys=[shipping_address_id], lazy="selectin")

    @property
    def state(self) -> OrderState:
        return OrderState(self.status, self.payment_status, self.fulfillment_status)

    def apply_state(self, state: OrderState) -> None:
        self.status = state.status
        self.payment_status = state.payment_status
        self.fulfillment_status = state.fulfillment_status

    @property
    def subtotal(self) -> Decimal:
        return lines_subtotal(self.items)

    @property
    def totals(self):
        return order_totals(self.subtotal)

    @property
    def tax_total(self) -> Decimal:
        return self.totals.tax_total

    @property
    def shipping_total(self) -> Decimal:
        return self.totals.shipping_total

    @property
    def total(self) -> Decimal:
        return self.totals.total


class OrderItem(Base):
    """Historical line snapshot. Never re-derived from the live catalog."""
    __tablename__ = "order_items"
    __table_args__ = (CheckConstraint("qty > 0", name="ck_order_item_qty_positive"),)

    id = Column(Integer, primary_key=True)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    # Variant rows may be deleted later; the snapshot columns keep the record intact
    variant_id = Column(Integer, ForeignKey("product_variants.id", ondelete="SET NULL"), nullable=True)
    name_snapshot = Column(String(255), nullable=False)
    sku_snapshot = Column(String(64), nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    qty = Column(Integer, nullable=False)

    @property
    def line_total(self) -> Decimal:
        return Decimal(self.unit_price) * self.qty


@event.listens_for(OrderItem, "before_update")
def _order_items_are_immutable(mapper, connection, target):
    raise ValueError("Order items are immutable once placed")


class OrderNumberSequence(Base):
    """One counter row per calendar year."""
    __tablename__ = "order_number_sequences"

    year = Column(Integer, primary_key=True, autoincrement=False)
    last_value = Column(Integer, nullable=False, default=0)
