# storefront/services/checkout_service.py
from decimal import Decimal
from typing import Dict, Any, List

from sqlalchemy.orm import Session

from storefront.data.models.cart import CartModel
from storefront.data.models.order import OrderModel, OrderItemModel
from storefront.domain.errors import (
    NotFound,
    Forbidden,
    Expired,
    Conflict,
    PaymentFailed,
    FinalizationFailed,
)
from storefront.domain.statuses import CartStatus, CheckoutState, OrderStatus, PaymentStatus
from storefront.repos.cart_repo import CartRepo
from storefront.repos.catalog_repo import CatalogRepo
from storefront.repos.customer_repo import CustomerRepo
from storefront.repos.order_repo import OrderRepo
from storefront.repos.stock_repo import StockLedger
from storefront.services.cart_service import load_checkout_cart, release_claim
from storefront.services.payment_gateway import PaymentGateway, PaymentResult, SUCCEEDED
from storefront.utils.clock import utcnow, as_utc
from storefront.utils.settings import PAYMENT_CURRENCY
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class CheckoutService:
    """
    validating -> paying -> finalizing -> settled | payment_failed | finalization_failed

    Stock was reserved at add-to-cart time, so checkout never reserves.
    Before the card is charged the cart is claimed (processing) and a pending
    order carrying the payment id is committed, so every charge the processor
    may report has a local order the webhook can settle or recover.
    The charge itself runs outside any transaction.
    """

    def __init__(self, db: Session, gateway: PaymentGateway, currency: str = PAYMENT_CURRENCY):
        self.db = db
        self.carts = CartRepo(db)
        self.orders = OrderRepo(db)
        self.catalog = CatalogRepo(db)
        self.customers = CustomerRepo(db)
        self.ledger = StockLedger(db)
        self.gateway = gateway
        self.currency = currency
        self.state = None

    def _enter(self, state: str, cart_id: int | None = None):
        self.state = state
        logger.info(f"Checkout cart {cart_id}: {state}")

    def checkout(self, user_id: int, payment_method_id: str, address_id: int) -> Dict[str, Any]:
        cart_id, lines, amount, shipping = self._validate(user_id, address_id)
        order_id, intent = self._open_order(cart_id, lines, amount, shipping, user_id, payment_method_id)
        payment = self._pay(order_id, cart_id, user_id, intent)
        order = self._finalize(order_id, cart_id, amount, payment, user_id)

        self._enter(CheckoutState.SETTLED, cart_id)
        return {
            "message": "Order placed successfully",
            "order_id": order.id,
            "payment_id": payment.id,
        }

    # validating

    def _validate(self, user_id: int, address_id: int):
        self._enter(CheckoutState.VALIDATING)
        now = utcnow()

        cart, items, amount = load_checkout_cart(self.carts, user_id, now)

        address = self.customers.get_address(address_id)
        if not address:
            raise NotFound("Invalid address ID provided.")
        if address.user_id != user_id:
            raise Forbidden("Address does not belong to the user.")
        shipping = address.snapshot()

        #snapshot of the lines we are about to charge for
        lines = [
            {"variant_id": i.variant_id, "quantity": i.quantity, "price": i.price}
            for i in items
        ]
        cart_id = cart.id
        expires_at = as_utc(cart.expires_at)

        #claim: active -> processing, single winner against the sweeper and other checkouts
        claimed = self.carts.transition(
            cart_id,
            CartStatus.ACTIVE,
            CartStatus.PROCESSING,
            CartModel.expires_at >= now,
        )
        self.carts.commit()

        if not claimed:
            if expires_at < now:
                raise Expired("Cart session expired. Please refresh transaction.")
            raise Conflict("Cart is already being processed.")

        return cart_id, lines, amount, shipping

    # paying

    def _open_order(
        self,
        cart_id: int,
        lines: List[Dict[str, Any]],
        amount: Decimal,
        shipping: dict,
        user_id: int,
        payment_method_id: str,
    ):
        """Registers the payment intent and commits the pending order. No money moves yet."""
        self._enter(CheckoutState.PAYING, cart_id)

        try:
            customer_ref = self._customer_ref(user_id)
            intent = self.gateway.create_intent(
                amount=amount,
                currency=self.currency,
                customer_ref=customer_ref,
                payment_method_ref=payment_method_id,
                metadata={"cart_id": cart_id, "user_id": user_id},
            )
        except Exception as e:
            self.db.rollback()
            self._enter(CheckoutState.PAYMENT_FAILED, cart_id)
            self._release_claim(cart_id, user_id)
            if isinstance(e, PaymentFailed):
                raise
            raise PaymentFailed(f"Payment initialization failed: {e}") from e

        try:
            order = self.orders.add_order(
                OrderModel(
                    user_id=user_id,
                    cart_id=cart_id,
                    payment_id=intent.id,
                    amount=amount,
                    currency=self.currency,
                    shipping_address=shipping,
                    status=OrderStatus.PENDING,
                    payment_status=PaymentStatus.PENDING,
                ),
                self._order_items(lines),
            )
            order_id = order.id
            self.orders.commit()
        except Exception as e:
            #the intent was never confirmed, nothing was charged
            self.orders.rollback()
            logger.error(f"Failed to create pending order for cart {cart_id}, payment {intent.id}: {e}")
            self._release_claim(cart_id, user_id)
            raise

        logger.info(f"Pending order {order_id} created for cart {cart_id}, payment {intent.id}")
        return order_id, intent

    def _order_items(self, lines: List[Dict[str, Any]]) -> List[OrderItemModel]:
        variants = self.catalog.get_variants(line["variant_id"] for line in lines)
        items = []
        for line in lines:
            name, sku = self.catalog.snapshot(variants.get(line["variant_id"]))
            items.append(
                OrderItemModel(
                    variant_id=line["variant_id"],
                    product_name=name,
                    variant_sku=sku,
                    quantity=line["quantity"],
                    price=line["price"],
                )
            )
        return items

    def _pay(self, order_id: int, cart_id: int, user_id: int, intent: PaymentResult) -> PaymentResult:
        try:
            payment = self.gateway.confirm(intent.id)
            if not payment.succeeded:
                if payment.unsettled:
                    #may still be captured after we give the cart back
                    logger.critical(
                        f"UNSETTLED PAYMENT: payment {payment.id} for order {order_id} "
                        f"is {payment.status}, treated as failed, reconcile manually if it succeeds"
                    )
                raise PaymentFailed(f"Payment status: {payment.status}")
        except Exception as e:
            self.db.rollback()
            self._enter(CheckoutState.PAYMENT_FAILED, cart_id)
            if self._abandon(order_id, cart_id, user_id, intent.id):
                return PaymentResult(id=intent.id, status=SUCCEEDED)
            if isinstance(e, PaymentFailed):
                raise
            raise PaymentFailed(f"Payment failed: {e}") from e

        return payment

    def _abandon(self, order_id: int, cart_id: int, user_id: int, payment_id: str) -> bool:
        """
        Cancels the pending order and gives the cart back in one transaction.
        True when the webhook already settled the order, the charge went through after all.
        """
        try:
            cancelled = self.orders.cancel_pending(order_id)
            if cancelled and release_claim(self.carts, self.ledger, cart_id, user_id) is None:
                logger.warning(f"Cart {cart_id} left processing before its claim was released")
            self.orders.commit()
        except Exception as e:
            self.orders.rollback()
            logger.error(f"Could not cancel order {order_id} for failed payment {payment_id}: {e}")
            return False

        if cancelled:
            logger.info(f"Order {order_id} cancelled, payment {payment_id} failed")
            return False

        order = self.orders.get_order(order_id)
        if order is not None and order.payment_status == PaymentStatus.PAID:
            logger.warning(f"Order {order_id} was settled by the webhook, payment {payment_id} captured")
            return True
        return False

    def _customer_ref(self, user_id: int) -> str | None:
        user = self.customers.get_user(user_id)
        if user is None:
            return None
        if not user.stripe_customer_id:
            customer_id = self.gateway.create_customer(user.email, user.full_name)
            self.customers.set_stripe_customer(user, customer_id)
            logger.info(f"Created stripe customer {customer_id} for user {user_id}")
        return user.stripe_customer_id

    def _release_claim(self, cart_id: int, user_id: int):
        """
        Stock stays reserved and the cart goes back to active,
        the shopper may retry or the sweeper reclaims it after expires_at.
        """
        try:
            released = release_claim(self.carts, self.ledger, cart_id, user_id)
            self.carts.commit()
        except Exception as e:
            self.carts.rollback()
            logger.error(f"Could not release checkout claim on cart {cart_id}: {e}")
            return
        if released is None:
            logger.warning(f"Cart {cart_id} left processing before its claim was released")

    # finalizing

    def _finalize(
        self,
        order_id: int,
        cart_id: int,
        amount: Decimal,
        payment: PaymentResult,
        user_id: int,
    ) -> OrderModel:
        self._enter(CheckoutState.FINALIZING, cart_id)

        try:
            settled = self.orders.settle(order_id)
            if settled:
                if not self.carts.transition(cart_id, CartStatus.PROCESSING, CartStatus.COMPLETED):
                    raise RuntimeError(f"Cart {cart_id} is no longer processing")
                self.orders.commit()
            else:
                self.orders.rollback()
                order = self.orders.get_order(order_id)
                if order is None or order.payment_status != PaymentStatus.PAID:
                    raise RuntimeError(f"Order {order_id} is no longer pending")
                logger.info(f"Order {order_id} already settled by the webhook")
        except Exception as e:
            self.orders.rollback()
            self._enter(CheckoutState.FINALIZATION_FAILED, cart_id)
            #money captured, order still pending: the success webhook settles it
            logger.critical(
                f"LOST WRITE: payment {payment.id} succeeded ({amount} {self.currency}) "
                f"but order {order_id} could not be finalized for cart {cart_id}, user {user_id}: {e}"
            )
            raise FinalizationFailed(payment.id, cart_id) from e

        logger.info(f"Order {order_id} settled for cart {cart_id}, payment {payment.id}")
        return self.orders.get_order(order_id)
