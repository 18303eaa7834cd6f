"""
Checkout line validation and totals.

Each cart line is checked against its live variant and becomes either a
``PricedLine`` or a ``LineRejection``. Nothing here touches the database, so all
lines are validated before any write happens.
"""
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Union

from shared.errors import (
    InsufficientStock,
    OrderError,
    PriceUnavailable,
    VariantInactive,
    VariantNotFound,
)

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")


@dataclass(frozen=True)
class PricedLine:
    variant_id: int
    name_snapshot: str
    sku_snapshot: str
    unit_price: Decimal
    qty: int

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.qty


@dataclass(frozen=True)
class LineRejection:
    variant_id: int
    error: type
    message: str

    def to_dict(self) -> dict:
        return {"variant_id": self.variant_id, "error": self.error.kind, "detail": self.message}

    def to_error(self, details: Optional[list] = None) -> OrderError:
        return self.error(self.message, details=details)


LineResult = Union[PricedLine, LineRejection]


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    # Tax and shipping are not computed yet; kept explicit so totals stay honest
    tax_total: Decimal = ZERO
    shipping_total: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return (self.subtotal + self.tax_total + self.shipping_total).quantize(CENTS, rounding=ROUND_HALF_UP)


def order_totals(subtotal: Decimal) -> Totals:
    return Totals(subtotal=subtotal)


def price_cart_line(line, variant, currency: str) -> LineResult:
    """
    Validate one cart line against its live variant.

    ``variant`` is the freshly loaded ProductVariant (or None when it no longer
    exists). Checks run in order: exists, active, stock, price.
    """
    if variant is None:
        return LineRejection(line.variant_id, VariantNotFound, "Product variant not found")

    name = variant.product.name
    if not variant.is_active:
        return LineRejection(line.variant_id, VariantInactive, f'Product "{name}" is no longer available')

    stock = variant.inventory.stock_on_hand if variant.inventory is not None else 0
    if stock < line.qty:
        return LineRejection(
            line.variant_id,
            InsufficientStock,
            f'Insufficient stock for "{name}". Only {stock} available',
        )

    amount = variant.price_for(currency)
    if amount is None:
        return LineRejection(
            line.variant_id, PriceUnavailable, f'Price not available for "{name}" in {currency}'
        )

    return PricedLine(
        variant_id=variant.id,
        name_snapshot=name,
        sku_snapshot=variant.sku,
        unit_price=Decimal(amount),
        qty=line.qty,
    )


def price_cart(lines: Iterable, variants: dict, currency: str):
    """Returns ``(priced, rejected)`` for every line of the cart."""
    priced, rejected = [], []
    for line in lines:
        result = price_cart_line(line, variants.get(line.variant_id), currency)
        (rejected if isinstance(result, LineRejection) else priced).append(result)
    return priced, rejected


def subtotal(lines: Iterable) -> Decimal:
    """Exact sum of ``line_total`` over priced lines or placed order items."""
    return sum((line.line_total for line in lines), Decimal("0"))
