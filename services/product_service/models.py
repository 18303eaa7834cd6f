from sqlalchemy import Boolean, Column, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import relationship

from shared.config.database import Base
from services.inventory_service.models import VariantInventory


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)

    variants = relationship("ProductVariant", back_populates="product")


class ProductVariant(Base):
    __tablename__ = "product_variants"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    sku = Column(String(64), unique=True, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    product = relationship("Product", back_populates="variants", lazy="joined")
    prices = relationship("VariantPrice", lazy="selectin", cascade="all, delete-orphan")
    inventory = relationship(VariantInventory, uselist=False, lazy="selectin")

    def price_for(self, currency: str):
        for price in self.prices:
            if price.currency == currency:
                return price.amount
        return None


class VariantPrice(Base):
    __tablename__ = "variant_prices"
    __table_args__ = (UniqueConstraint("variant_id", "currency", name="uq_variant_price_currency"),)

    id = Column(Integer, primary_key=True)
    variant_id = Column(Integer, ForeignKey("product_variants.id", ondelete="CASCADE"), nullable=False)
    currency = Column(String(3), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
