"""
Human readable order numbers: ``ORD-<year>-<6 digit sequence>``.

Numbers are allocated from a per-year counter row that is incremented inside the
caller's transaction. The UPDATE locks the row, so concurrent checkouts queue on
it instead of reading the same maximum. ``orders.order_no`` is unique as well.
"""
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .models import OrderNumberSequence

ORDER_NO_PREFIX = "ORD"


def format_order_number(year: int, sequence: int) -> str:
    return f"{ORDER_NO_PREFIX}-{year:04d}-{sequence:06d}"


class OrderNumberSequencer:

    @staticmethod
    async def _increment(db: AsyncSession, year: int) -> Optional[int]:
        result = await db.execute(
            update(OrderNumberSequence)
            .where(OrderNumberSequence.year == year)
            .values(last_value=OrderNumberSequence.last_value + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None
        value = await db.execute(
            select(OrderNumberSequence.last_value).where(OrderNumberSequence.year == year)
        )
        return value.scalar_one()

    @staticmethod
    async def next_order_number(db: AsyncSession, year: Optional[int] = None) -> str:
        year = year or datetime.now(timezone.utc).year

        sequence = await OrderNumberSequencer._increment(db, year)
        if sequence is None:
            # First order of the year. Another transaction may create the row
            # at the same time; the loser falls back to incrementing it.
            try:
                async with db.begin_nested():
                    await db.execute(insert(OrderNumberSequence).values(year=year, last_value=1))
                sequence = 1
            except IntegrityError:
                sequence = await OrderNumberSequencer._increment(db, year)

        return format_order_number(year, sequence)
