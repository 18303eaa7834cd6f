from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Cart, CartItem
from .schemas import CartLine, CartPrice, CartSnapshot


class CartRepository:

    @staticmethod
    async def get_cart_for_checkout(db: AsyncSession, customer_id: str) -> Optional[CartSnapshot]:
        result = await db.execute(select(Cart).where(Cart.customer_id == customer_id))
        cart = result.scalars().first()
        if not cart:
            return None

        lines = [
            CartLine(
                variant_id=item.variant_id,
                sku=item.variant.sku,
                qty=item.qty,
                product_name=item.variant.product.name,
                prices=[CartPrice.model_validate(price) for price in item.variant.prices],
            )
            for item in sorted(cart.items, key=lambda i: i.id)
        ]
        return CartSnapshot(id=cart.id, items=lines)

    @staticmethod
    async def clear_cart(db: AsyncSession, cart_id: str) -> None:
        """Deletes every line of the cart. Runs inside the caller's transaction."""
        await db.execute(delete(CartItem).where(CartItem.cart_id == cart_id))
