"""
Stock-on-hand mutations.

These are the only two writers of ``variant_inventory`` in the order flow. Both
run on the caller's session so they commit or roll back with the use case that
issued them.
"""
import structlog
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from shared.errors import InsufficientStock

from .models import VariantInventory

logger = structlog.get_logger(__name__)


class InventoryLedger:

    @staticmethod
    async def reserve(db: AsyncSession, variant_id: int, qty: int) -> None:
        """
        Decrement stock only if enough remains at write time.

        The sufficiency check lives in the UPDATE's WHERE clause, so the store
        evaluates it against the row as locked by this transaction. Zero affected
        rows means another transaction took the stock (or the variant has no
        inventory row).
        """
        if qty <= 0:
            raise ValueError("Reserved quantity must be positive")

        result = await db.execute(
            update(VariantInventory)
            .where(VariantInventory.variant_id == variant_id, VariantInventory.stock_on_hand >= qty)
            .values(stock_on_hand=VariantInventory.stock_on_hand - qty)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InsufficientStock(f"Insufficient stock for variant {variant_id}")

    @staticmethod
    async def restore(db: AsyncSession, variant_id: int, qty: int) -> bool:
        """Unconditional increment. Returns False when the inventory row is gone."""
        result = await db.execute(
            update(VariantInventory)
            .where(VariantInventory.variant_id == variant_id)
            .values(stock_on_hand=VariantInventory.stock_on_hand + qty)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning("inventory_restore_skipped", variant_id=variant_id, qty=qty)
            return False
        return True

