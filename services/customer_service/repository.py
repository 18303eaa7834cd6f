from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Address


class AddressRepository:

    @staticmethod
    async def get_for_customer(db: AsyncSession, address_id: str, customer_id: str) -> Optional[Address]:
        """Owner-scoped lookup: another customer's address resolves to None."""
        result = await db.execute(
            select(Address).where(Address.id == address_id, Address.customer_id == customer_id)
        )
        return result.scalars().first()
