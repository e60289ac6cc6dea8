# storefront/repos/order_repo.py
from sqlalchemy import select, update
from sqlalchemy.orm import Session, selectinload

from storefront.data.models.order import OrderModel, OrderItemModel
from storefront.domain.statuses import OrderStatus, PaymentStatus
from storefront.utils.clock import utcnow


class OrderRepo:
    def __init__(self, db: Session):
        self.db = db

    def add_order(self, order: OrderModel, items: list[OrderItemModel]) -> OrderModel:
        """Stages the order with its items; caller commits."""
        self.db.add(order)
        self.db.flush()
        for item in items:
            item.order_id = order.id
            self.db.add(item)
        self.db.flush()
        return order

    def get_order(self, order_id: int) -> OrderModel | None:
        return self.db.execute(
            select(OrderModel)
            .options(selectinload(OrderModel.items))
            .where(OrderModel.id == order_id)
        ).scalar_one_or_none()

    def get_by_payment_id(self, payment_id: str) -> OrderModel | None:
        return self.db.execute(
            select(OrderModel).where(OrderModel.payment_id == payment_id)
        ).scalar_one_or_none()

    def list_for_user(self, user_id: int) -> list[OrderModel]:
        return list(
            self.db.execute(
                select(OrderModel)
                .options(selectinload(OrderModel.items))
                .where(OrderModel.user_id == user_id)
                .order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
            ).scalars()
        )

    def get_items(self, order_id: int) -> list[OrderItemModel]:
        return list(
            self.db.execute(
                select(OrderItemModel)
                .where(OrderItemModel.order_id == order_id)
                .order_by(OrderItemModel.id)
            ).scalars()
        )

    def mark_paid(self, order_id: int, from_status: str) -> bool:
        """CAS on the order status read by the caller, an unpaid order is promoted once."""
        result = self.db.execute(
            update(OrderModel)
            .where(
                OrderModel.id == order_id,
                OrderModel.status == from_status,
                OrderModel.payment_status != PaymentStatus.PAID,
            )
            .values(
                status=OrderStatus.PROCESSING,
                payment_status=PaymentStatus.PAID,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def settle(self, order_id: int) -> bool:
        """CAS: pending -> paid, lost if a webhook or a local failure got there first."""
        result = self.db.execute(
            update(OrderModel)
            .where(OrderModel.id == order_id, OrderModel.status == OrderStatus.PENDING)
            .values(
                status=OrderStatus.PROCESSING,
                payment_status=PaymentStatus.PAID,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def cancel_pending(self, order_id: int) -> bool:
        """CAS: pending -> cancelled, never touches an order already paid."""
        result = self.db.execute(
            update(OrderModel)
            .where(OrderModel.id == order_id, OrderModel.status == OrderStatus.PENDING)
            .values(
                status=OrderStatus.CANCELLED,
                payment_status=PaymentStatus.FAILED,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def cancel(self, order_id: int) -> bool:
        """CAS: only the first caller cancels, so stock is restored once."""
        result = self.db.execute(
            update(OrderModel)
            .where(OrderModel.id == order_id, OrderModel.status != OrderStatus.CANCELLED)
            .values(
                status=OrderStatus.CANCELLED,
                payment_status=PaymentStatus.FAILED,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
