from sqlalchemy import Column, Integer, ForeignKey, String, DateTime, Numeric, JSON
from sqlalchemy.orm import relationship

from storefront.data.database import Base
from storefront.domain.statuses import OrderStatus, PaymentStatus
from storefront.utils.clock import utcnow


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    cart_id = Column(Integer, ForeignKey("carts.id"), nullable=True)

    #external payment reference (stripe payment intent id)
    payment_id = Column(String, nullable=False, unique=True)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    shipping_address = Column(JSON, nullable=True)

    status = Column(String(20), nullable=False, default=OrderStatus.PENDING)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    items = relationship("OrderItemModel", back_populates="order", order_by="OrderItemModel.id")


class OrderItemModel(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    #kept as a plain reference, the snapshot below survives variant deletion
    variant_id = Column(Integer, nullable=True)

    product_name = Column(String, nullable=False)
    variant_sku = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)

    order = relationship("OrderModel", back_populates="items")
