# storefront/domain/schemas.py
from pydantic import BaseModel, Field, ConfigDict
from typing import List, Optional
from decimal import Decimal
from datetime import datetime


class AddItemIn(BaseModel):
    """Add-to-cart payload."""

    variant_id: int = Field(..., gt=0, description="Product variant ID")
    quantity: int = Field(..., ge=1, description="Quantity to add to cart")


class AddItemOut(BaseModel):
    message: str
    cart_id: int
    item_id: int
    available_quantity: int


class ProductOut(BaseModel):
    id: int
    name: str
    price: Decimal

    model_config = ConfigDict(from_attributes=True)


class VariantOut(BaseModel):
    id: int
    sku: str
    color: str
    quantity: int
    price: Optional[Decimal] = None
    product: Optional[ProductOut] = None

    model_config = ConfigDict(from_attributes=True)


class CartItemOut(BaseModel):
    """Cart line enriched with current variant/product data."""

    id: int
    variant_id: int
    quantity: int
    price: Decimal
    subtotal: Decimal
    variant: Optional[VariantOut] = None


class CartOut(BaseModel):
    id: int
    user_id: int
    status: str
    expires_at: datetime
    items: List[CartItemOut]
    total: Decimal


class CartViewOut(BaseModel):
    """`cart` is None when the user has no active cart."""

    message: Optional[str] = None
    cart: Optional[CartOut] = None
    items: List[CartItemOut] = []


class CheckoutLineOut(BaseModel):
    item_id: int
    variant_id: int
    quantity: int
    price: Decimal
    subtotal: Decimal


class CheckoutSummaryOut(BaseModel):
    total_amount: Decimal
    item_count: int
    items: List[CheckoutLineOut]


class CheckoutIn(BaseModel):
    """Checkout payload."""

    payment_method_id: str = Field(..., min_length=1, description="Stripe payment method (pm_... or tok_...)")
    address_id: int = Field(..., gt=0, description="Shipping address ID")


class CheckoutOut(BaseModel):
    message: str
    order_id: int
    payment_id: str


class OrderItemOut(BaseModel):
    id: int
    variant_id: Optional[int] = None
    product_name: str
    variant_sku: str
    quantity: int
    price: Decimal

    model_config = ConfigDict(from_attributes=True)


class OrderOut(BaseModel):
    id: int
    user_id: int
    cart_id: Optional[int] = None
    payment_id: str
    amount: Decimal
    currency: str
    status: str
    payment_status: str
    shipping_address: Optional[dict] = None
    created_at: datetime
    items: List[OrderItemOut] = []

    model_config = ConfigDict(from_attributes=True)


class OrderHistoryOut(BaseModel):
    orders: List[OrderOut]


class WebhookAck(BaseModel):
    received: bool = True
    outcome: str
