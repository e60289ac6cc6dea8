# storefront/services/reconciler.py
from sqlalchemy.orm import Session

from storefront.domain.errors import InsufficientStock, NotFound
from storefront.domain.statuses import CartStatus, OrderStatus, PaymentStatus
from storefront.repos.cart_repo import CartRepo
from storefront.repos.order_repo import OrderRepo
from storefront.repos.stock_repo import StockLedger
from storefront.services.cart_service import release_claim
from storefront.services.payment_gateway import PaymentGateway
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

PAYMENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_FAILED = "payment_intent.payment_failed"


class Outcome:
    ALREADY_PAID = "already_paid"
    RECOVERED = "recovered"
    LOST_WRITE = "lost_write"
    CANCELLED = "cancelled"
    ALREADY_CANCELLED = "already_cancelled"
    UNKNOWN_PAYMENT = "unknown_payment"
    IGNORED = "ignored"


class SettlementReconciler:
    """
    Brings local orders in line with the processor's outcome.
    Every handler is safe to run more than once for the same payment.
    """

    def __init__(self, db: Session, gateway: PaymentGateway):
        self.db = db
        self.orders = OrderRepo(db)
        self.carts = CartRepo(db)
        self.ledger = StockLedger(db)
        self.gateway = gateway

    def handle(self, payload: bytes, signature: str | None) -> str:
        event = self.gateway.parse_event(payload, signature)
        logger.info(f"Webhook {event['id']} {event['type']} for payment {event['payment_id']}")

        if event["type"] == PAYMENT_SUCCEEDED:
            return self.on_success(event["payment_id"])
        if event["type"] == PAYMENT_FAILED:
            return self.on_failure(event["payment_id"])
        return Outcome.IGNORED

    def on_success(self, payment_id: str) -> str:
        order = self.orders.get_by_payment_id(payment_id)

        if order is None:
            # TODO: rebuild the order from the payment intent metadata (cart_id, user_id)
            logger.critical(
                f"LOST WRITE: payment {payment_id} succeeded at the processor "
                f"but no local order exists, manual reconciliation required"
            )
            return Outcome.LOST_WRITE

        if order.payment_status == PaymentStatus.PAID:
            logger.info(f"Payment succeeded for order {order.id}, already paid")
            return Outcome.ALREADY_PAID

        order_id, status, cart_id = order.id, order.status, order.cart_id
        try:
            if not self.orders.mark_paid(order_id, status):
                #checkout moved the order meanwhile, decide again on the fresh row
                self.orders.rollback()
                return self.on_success(payment_id)

            if status == OrderStatus.PENDING:
                self._complete_cart(order_id, cart_id)
            else:
                self._reclaim_stock(order_id, cart_id)

            self.orders.commit()
        except Exception as e:
            self.orders.rollback()
            logger.error(f"Could not mark order {order_id} paid for payment {payment_id}: {e}")
            raise

        logger.warning(
            f"Order {order_id} was {status} locally but payment {payment_id} was captured, "
            f"recovered and marked as paid"
        )
        return Outcome.RECOVERED

    def _complete_cart(self, order_id: int, cart_id: int | None):
        """Pending order: its claimed cart still holds the reservation."""
        if cart_id is None or not self.carts.transition(cart_id, CartStatus.PROCESSING, CartStatus.COMPLETED):
            logger.warning(f"Cart {cart_id} of order {order_id} was not processing, left as is")

    def _reclaim_stock(self, order_id: int, cart_id: int | None):
        """
        Cancelled order: its cart was handed back, so the order reserves its own units.
        A cart still active is taken over, its reservation returned first.
        """
        if cart_id is not None and self.carts.transition(cart_id, CartStatus.ACTIVE, CartStatus.COMPLETED):
            for item in self.carts.get_cart_items(cart_id):
                self.ledger.restore(item.variant_id, item.quantity)

        for item in self.orders.get_items(order_id):
            if item.variant_id is None:
                continue
            try:
                self.ledger.reserve(item.variant_id, item.quantity)
            except (InsufficientStock, NotFound) as e:
                logger.critical(
                    f"OVERSOLD: order {order_id} was paid but variant {item.variant_id} "
                    f"x{item.quantity} could not be reserved again: {e}"
                )

    def on_failure(self, payment_id: str) -> str:
        order = self.orders.get_by_payment_id(payment_id)

        if order is None:
            logger.info(f"Payment {payment_id} failed, no local order to cancel")
            return Outcome.UNKNOWN_PAYMENT

        if order.status == OrderStatus.CANCELLED:
            return Outcome.ALREADY_CANCELLED

        order_id, status, cart_id, user_id = order.id, order.status, order.cart_id, order.user_id
        try:
            #the cancel CAS makes a redelivered event a no-op
            if status == OrderStatus.PENDING:
                cancelled = self.orders.cancel_pending(order_id)
            else:
                cancelled = self.orders.cancel(order_id)
            if not cancelled:
                self.orders.rollback()
                return Outcome.ALREADY_CANCELLED

            if status == OrderStatus.PENDING:
                #the reservation still sits in the claimed cart
                if cart_id is not None:
                    release_claim(self.carts, self.ledger, cart_id, user_id)
            else:
                for item in self.orders.get_items(order_id):
                    if item.variant_id is None:
                        logger.warning(f"Order item {item.id} has no variant, nothing to restore")
                        continue
                    self.ledger.restore(item.variant_id, item.quantity)

            self.orders.commit()
        except Exception as e:
            self.orders.rollback()
            logger.error(
                f"Failed to cancel order {order_id} and restore stock for payment {payment_id}: {e}"
            )
            raise

        logger.info(f"Order {order_id} failed and stock restored")
        return Outcome.CANCELLED
