from decimal import Decimal

from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship

from storefront.data.database import Base


class ProductModel(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)

    variants = relationship("ProductVariantModel", back_populates="product")


class ProductVariantModel(Base):
    __tablename__ = "product_variants"

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)

    sku = Column(String, nullable=False, unique=True)
    color = Column(String, nullable=False)
    #stock ledger, only touched by reserve/restore
    quantity = Column(Integer, nullable=False, default=0)
    #optional override of the product base price
    price = Column(Numeric(10, 2), nullable=True)

    product = relationship("ProductModel", back_populates="variants")

    __table_args__ = (CheckConstraint("quantity >= 0", name="ck_variant_quantity_non_negative"),)

    @property
    def effective_price(self) -> Decimal:
        if self.price is not None:
            return self.price
        return self.product.price
