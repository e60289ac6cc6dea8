# storefront/services/order_service.py
from typing import Dict, Any

from sqlalchemy.orm import Session

from storefront.domain.errors import NotFound, Forbidden
from storefront.repos.order_repo import OrderRepo


def _order_dict(order) -> Dict[str, Any]:
    return {
        "id": order.id,
        "user_id": order.user_id,
        "cart_id": order.cart_id,
        "payment_id": order.payment_id,
        "amount": order.amount,
        "currency": order.currency,
        "status": order.status,
        "payment_status": order.payment_status,
        "shipping_address": order.shipping_address,
        "created_at": order.created_at,
        "items": [
            {
                "id": i.id,
                "variant_id": i.variant_id,
                "product_name": i.product_name,
                "variant_sku": i.variant_sku,
                "quantity": i.quantity,
                "price": i.price,
            }
            for i in order.items
        ],
    }


class OrderService:
    """Read side of orders; orders are written only by checkout and the reconciler."""

    def __init__(self, db: Session):
        self.repo = OrderRepo(db)

    def history(self, user_id: int) -> Dict[str, Any]:
        return {"orders": [_order_dict(o) for o in self.repo.list_for_user(user_id)]}

    def get_order(self, order_id: int, user_id: int) -> Dict[str, Any]:
        order = self.repo.get_order(order_id)

        if not order:
            raise NotFound("Order not found")

        if order.user_id != user_id:
            raise Forbidden("Order does not belong to the requester")

        return _order_dict(order)
