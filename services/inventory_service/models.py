from sqlalchemy import CheckConstraint, Column, ForeignKey, Integer

from shared.config.database import Base


class VariantInventory(Base):
    __tablename__ = "variant_inventory"
    __table_args__ = (CheckConstraint("stock_on_hand >= 0", name="ck_stock_on_hand_non_negative"),)

    id = Column(Integer, primary_key=True)
    variant_id = Column(
        Integer, ForeignKey("product_variants.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    stock_on_hand = Column(Integer, nullable=False, default=0)
