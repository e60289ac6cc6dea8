# storefront/services/cart_service.py
from datetime import datetime
from decimal import Decimal
from typing import Dict, Any, List, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.data.models.cart import CartModel
from storefront.data.models.cart_item import CartItemModel
from storefront.domain.errors import NotFound, Forbidden, Expired, Conflict
from storefront.domain.statuses import CartStatus
from storefront.repos.cart_repo import CartRepo
from storefront.repos.catalog_repo import CatalogRepo
from storefront.repos.stock_repo import StockLedger
from storefront.utils.clock import utcnow, as_utc, cart_expiry
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

EMPTY_CART_MESSAGE = "Cart is empty"


def cart_total(items) -> Decimal:
    return sum((i.price * i.quantity for i in items), Decimal("0.00"))


def load_checkout_cart(
    repo: CartRepo,
    user_id: int,
    now: datetime,
) -> Tuple[CartModel, List[CartItemModel], Decimal]:
    """Active, non-empty, unexpired cart with its items and payable amount."""
    cart = repo.get_active_cart_by_user(user_id)
    if not cart:
        raise NotFound("No active cart found to checkout.")

    items = repo.get_cart_items(cart.id)
    if not items:
        raise NotFound(EMPTY_CART_MESSAGE)

    if as_utc(cart.expires_at) < now:
        raise Expired("Cart session expired. Please refresh transaction.")

    return cart, items, cart_total(items)


def release_claim(repo: CartRepo, ledger: StockLedger, cart_id: int, user_id: int) -> str | None:
    """
    Hands a cart claimed by checkout back to its owner. Caller commits.
    processing -> active, stock stays reserved
    processing -> expired with stock restored, when the user already holds another active cart
    Returns the new status, None if the cart had left processing.
    """
    other = repo.get_active_cart_by_user(user_id)
    if other is None:
        return CartStatus.ACTIVE if repo.transition(cart_id, CartStatus.PROCESSING, CartStatus.ACTIVE) else None

    if not repo.transition(cart_id, CartStatus.PROCESSING, CartStatus.EXPIRED):
        return None
    for item in repo.get_cart_items(cart_id):
        ledger.restore(item.variant_id, item.quantity)
    logger.info(f"Cart {cart_id} retired, user {user_id} already has active cart {other.id}")
    return CartStatus.EXPIRED


def _variant_dict(variant) -> Dict[str, Any] | None:
    if variant is None:
        return None
    product = variant.product
    return {
        "id": variant.id,
        "sku": variant.sku,
        "color": variant.color,
        "quantity": variant.quantity,
        "price": variant.price,
        "product": (
            {"id": product.id, "name": product.name, "price": product.price}
            if product is not None
            else None
        ),
    }


class CartService:
    """
    Cart aggregate: one active cart per user, stock reserved at add time.
    commands (add, remove) change the ledger and the cart in one transaction
    queries (view, checkout_summary) only read
    """

    #a lost race on the one-active-cart index is retried once
    CREATE_ATTEMPTS = 2

    def __init__(self, db: Session):
        self.db = db
        self.repo = CartRepo(db)
        self.catalog = CatalogRepo(db)
        self.ledger = StockLedger(db)

    #query
    def view(self, user_id: int) -> Dict[str, Any]:
        cart = self.repo.get_active_cart_by_user(user_id)

        if not cart:
            return {"message": EMPTY_CART_MESSAGE, "cart": None, "items": []}

        items = self.repo.get_cart_items(cart.id)
        variants = self.catalog.get_variants(i.variant_id for i in items)

        lines = [
            {
                "id": i.id,
                "variant_id": i.variant_id,
                "quantity": i.quantity,
                "price": i.price,
                "subtotal": i.price * i.quantity,
                "variant": _variant_dict(variants.get(i.variant_id)),
            }
            for i in items
        ]

        return {
            "cart": {
                "id": cart.id,
                "user_id": cart.user_id,
                "status": cart.status,
                "expires_at": as_utc(cart.expires_at),
                "items": lines,
                "total": cart_total(items),
            },
            "items": lines,
        }

    def checkout_summary(self, user_id: int) -> Dict[str, Any]:
        cart, items, amount = load_checkout_cart(self.repo, user_id, utcnow())

        return {
            "total_amount": amount,
            "item_count": len(items),
            "items": [
                {
                    "item_id": i.id,
                    "variant_id": i.variant_id,
                    "quantity": i.quantity,
                    "price": i.price,
                    "subtotal": i.price * i.quantity,
                }
                for i in items
            ],
        }

    #commands
    def add_item(self, user_id: int, variant_id: int, quantity: int) -> Dict[str, Any]:
        if quantity <= 0:
            raise ValueError("Quantity must be greater than 0")

        for attempt in range(1, self.CREATE_ATTEMPTS + 1):
            try:
                return self._add_item(user_id, variant_id, quantity)
            except IntegrityError:
                self.repo.rollback()
                if attempt == self.CREATE_ATTEMPTS:
                    raise Conflict("Cart is being modified by another request")
                logger.info(f"Concurrent cart creation for user {user_id}, retrying")
            except Exception:
                self.repo.rollback()
                raise

    def _add_item(self, user_id: int, variant_id: int, quantity: int) -> Dict[str, Any]:
        variant = self.catalog.get_variant(variant_id)
        if not variant:
            raise NotFound(f"Product variant {variant_id} not found")

        expires = cart_expiry()
        cart = self._touch_or_create_cart(user_id, expires)

        #reservation happens now, not at checkout
        remaining = self.ledger.reserve(variant_id, quantity)

        existing_item = self.repo.get_cart_item(cart.id, variant_id)
        if existing_item:
            #keep the price already captured for this line
            logger.info(
                f"Variant {variant_id} already in cart {cart.id}, "
                f"quantity {existing_item.quantity} -> {existing_item.quantity + quantity}"
            )
            self.repo.increment_item(existing_item.id, quantity)
            item_id = existing_item.id
        else:
            item = self.repo.add_cart_item(
                CartItemModel(
                    cart_id=cart.id,
                    variant_id=variant_id,
                    quantity=quantity,
                    price=variant.effective_price,
                )
            )
            item_id = item.id

        self.repo.commit()

        logger.info(f"Added {quantity} x variant {variant_id} to cart {cart.id} for user {user_id}")

        return {
            "message": "Item added to cart",
            "cart_id": cart.id,
            "item_id": item_id,
            "available_quantity": remaining,
        }

    def _touch_or_create_cart(self, user_id: int, expires: datetime) -> CartModel:
        cart = self.repo.get_active_cart_by_user(user_id)

        #touch fails if a sweeper claimed the cart after we read it
        if cart and self.repo.touch_active_cart(cart.id, expires):
            return cart

        #a second active cart would block the checkout from handing this one back
        if self.repo.get_claimed_cart(user_id, utcnow()):
            raise Conflict("Checkout in progress for this cart. Please try again shortly.")

        created = self.repo.create_cart(
            CartModel(user_id=user_id, status=CartStatus.ACTIVE, expires_at=expires)
        )
        logger.info(f"Created cart {created.id} for user {user_id}")
        return created

    def remove_item(self, item_id: int, requester_id: int) -> Dict[str, Any]:
        item = self.repo.get_item(item_id)
        if not item:
            raise NotFound(f"Cart item {item_id} not found")

        cart = self.repo.get_cart(item.cart_id)
        if cart.user_id != requester_id:
            raise Forbidden("Cart does not belong to the requester")

        try:
            restored = 0
            #only an active cart still owns its reservation
            if self.repo.touch_active_cart(cart.id, cart_expiry()):
                quantity = self.repo.get_item_quantity(item_id)
                if quantity is None:
                    raise NotFound(f"Cart item {item_id} not found")
                self.ledger.restore(item.variant_id, quantity)
                restored = quantity
            elif self.repo.get_status(cart.id) == CartStatus.PROCESSING:
                #claimed by checkout or the sweeper, the line is part of what they settle
                raise Conflict("Cart is being processed. Please try again shortly.")
            else:
                logger.info(
                    f"Cart {cart.id} is no longer active, "
                    f"item {item_id} removed without restoring stock"
                )

            self.repo.delete_item(item_id)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        logger.info(f"Removed item {item_id} from cart {cart.id}, restored {restored}")

        return {"message": "Item removed from cart", "restored_quantity": restored}
