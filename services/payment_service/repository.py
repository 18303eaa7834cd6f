from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from services.order_service.status import PaymentMethod

from .models import Payment


class PaymentRepository:
    @staticmethod
    async def create_payment(db: AsyncSession, payment: Payment) -> Payment:
        db.add(payment)
        await db.flush()
        return payment

    @staticmethod
    async def get_by_provider_ref(db: AsyncSession, provider: str, provider_ref: str) -> Optional[Payment]:
        result = await db.execute(
            select(Payment).where(Payment.provider == provider, Payment.provider_ref == provider_ref)
        )
        return result.scalars().first()

    @staticmethod
    async def get_cash_payment(db: AsyncSession, order_id: str) -> Optional[Payment]:
        result = await db.execute(
            select(Payment).where(
                Payment.order_id == order_id, Payment.method == PaymentMethod.CASH_ON_DELIVERY
            )
        )
        return result.scalars().first()

    @staticmethod
    async def list_for_order(db: AsyncSession, order_id: str):
        result = await db.execute(select(Payment).where(Payment.order_id == order_id).order_by(Payment.id))
        return result.scalars().all()
