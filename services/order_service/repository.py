from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Order


class OrderRepository:

    @staticmethod
    async def create_order(db: AsyncSession, order: Order) -> Order:
        db.add(order)
        await db.flush()
        return order

    @staticmethod
    async def get_order(
        db: AsyncSession,
        order_id: str,
        customer_id: Optional[str] = None,
        for_update: bool = False,
        include_deleted: bool = False,
    ) -> Optional[Order]:
        """
        Load an order, scoped to ``customer_id`` when given. ``for_update`` row-locks it.

        Soft-deleted orders are hidden unless ``include_deleted`` is set; payments
        still have to land on them.
        """
        stmt = select(Order).where(Order.id == order_id)
        if not include_deleted:
            stmt = stmt.where(Order.deleted_at.is_(None))
        if customer_id is not None:
            stmt = stmt.where(Order.customer_id == customer_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await db.execute(stmt)
        return result.scalars().first()

    @staticmethod
    async def get_order_by_number(
        db: AsyncSession, order_no: str, customer_id: Optional[str] = None
    ) -> Optional[Order]:
        stmt = select(Order).where(Order.order_no == order_no, Order.deleted_at.is_(None))
        if customer_id is not None:
            stmt = stmt.where(Order.customer_id == customer_id)
        result = await db.execute(stmt)
        return result.scalars().first()

    @staticmethod
    async def list_customer_orders(
        db: AsyncSession, customer_id: str, limit: int = 10, offset: int = 0
    ) -> Sequence[Order]:
        result = await db.execute(
            select(Order)
            .where(Order.customer_id == customer_id, Order.deleted_at.is_(None))
            .order_by(Order.placed_at.desc(), Order.order_no.desc())
            .limit(limit)
            .offset(offset)
        )
        return result.scalars().all()
