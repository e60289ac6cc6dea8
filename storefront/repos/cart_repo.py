# storefront/repos/cart_repo.py
from datetime import datetime

from sqlalchemy import select, update, delete
from sqlalchemy.orm import Session

from storefront.data.models.cart import CartModel
from storefront.data.models.cart_item import CartItemModel
from storefront.domain.statuses import CartStatus


class CartRepo:
    def __init__(self, db: Session):
        self.db = db

    # carts

    def get_cart(self, cart_id: int) -> CartModel | None:
        return self.db.get(CartModel, cart_id)

    def get_active_cart_by_user(self, user_id: int) -> CartModel | None:
        return self.db.execute(
            select(CartModel).where(
                CartModel.user_id == user_id,
                CartModel.status == CartStatus.ACTIVE,
            )
        ).scalar_one_or_none()

    def create_cart(self, cart: CartModel) -> CartModel:
        self.db.add(cart)
        self.db.flush()
        return cart

    def get_status(self, cart_id: int) -> str | None:
        return self.db.scalar(select(CartModel.status).where(CartModel.id == cart_id))

    def transition(self, cart_id: int, from_status: str, to_status: str, *conditions) -> bool:
        """
        Compare-and-swap on the persisted status.
        UPDATE carts SET status = :to WHERE id = :id AND status = :from [AND ...]
        True only for the single caller whose update hit the row.
        """
        result = self.db.execute(
            update(CartModel)
            .where(CartModel.id == cart_id, CartModel.status == from_status, *conditions)
            .values(status=to_status)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def touch_active_cart(self, cart_id: int, expires_at: datetime) -> bool:
        """Push expires_at forward, only while the cart is still active."""
        result = self.db.execute(
            update(CartModel)
            .where(CartModel.id == cart_id, CartModel.status == CartStatus.ACTIVE)
            .values(expires_at=expires_at)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def get_claimed_cart(self, user_id: int, now: datetime) -> CartModel | None:
        """Cart held by a checkout: processing and not yet past expires_at."""
        return self.db.execute(
            select(CartModel).where(
                CartModel.user_id == user_id,
                CartModel.status == CartStatus.PROCESSING,
                CartModel.expires_at >= now,
            )
        ).scalars().first()

    def find_expired_cart_ids(self, now: datetime) -> list[int]:
        return list(
            self.db.execute(
                select(CartModel.id)
                .where(
                    CartModel.status == CartStatus.ACTIVE,
                    CartModel.expires_at < now,
                )
                .order_by(CartModel.id)
            ).scalars()
        )

    # items

    def get_cart_items(self, cart_id: int) -> list[CartItemModel]:
        return list(
            self.db.execute(
                select(CartItemModel)
                .where(CartItemModel.cart_id == cart_id)
                .order_by(CartItemModel.id)
            ).scalars()
        )

    def get_item(self, item_id: int) -> CartItemModel | None:
        return self.db.get(CartItemModel, item_id)

    def get_cart_item(self, cart_id: int, variant_id: int) -> CartItemModel | None:
        return self.db.execute(
            select(CartItemModel).where(
                CartItemModel.cart_id == cart_id,
                CartItemModel.variant_id == variant_id,
            )
        ).scalar_one_or_none()

    def get_item_quantity(self, item_id: int) -> int | None:
        return self.db.scalar(select(CartItemModel.quantity).where(CartItemModel.id == item_id))

    def add_cart_item(self, item: CartItemModel) -> CartItemModel:
        self.db.add(item)
        self.db.flush()
        return item

    def increment_item(self, item_id: int, quantity: int) -> None:
        self.db.execute(
            update(CartItemModel)
            .where(CartItemModel.id == item_id)
            .values(quantity=CartItemModel.quantity + quantity)
            .execution_options(synchronize_session=False)
        )

    def delete_item(self, item_id: int) -> None:
        self.db.execute(
            delete(CartItemModel)
            .where(CartItemModel.id == item_id)
            .execution_options(synchronize_session=False)
        )

    # transaction

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
