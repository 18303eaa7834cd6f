from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import ProductVariant


class ProductRepository:

    @staticmethod
    async def get_variants_by_ids(db: AsyncSession, variant_ids: list[int]) -> dict[int, ProductVariant]:
        """Live variants (product name, prices and stock loaded) keyed by id."""
        if not variant_ids:
            return {}
        result = await db.execute(
            select(ProductVariant)
            .where(ProductVariant.id.in_(variant_ids))
            .execution_options(populate_existing=True)
        )
        return {variant.id: variant for variant in result.scalars().unique().all()}
