# storefront/repos/stock_repo.py
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from storefront.data.models.product import ProductVariantModel
from storefront.domain.errors import InsufficientStock, NotFound
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class StockLedger:
    """
    Available quantity per product variant.
    Every change is one predicate-guarded UPDATE, never read-then-write.
    The caller owns the transaction (no commit here).
    """

    def __init__(self, db: Session):
        self.db = db

    def available(self, variant_id: int) -> int | None:
        return self.db.scalar(
            select(ProductVariantModel.quantity).where(ProductVariantModel.id == variant_id)
        )

    def reserve(self, variant_id: int, quantity: int) -> int:
        if quantity <= 0:
            raise ValueError("Quantity must be greater than 0")

        #UPDATE ... SET quantity = quantity - :q WHERE id = :id AND quantity >= :q
        result = self.db.execute(
            update(ProductVariantModel)
            .where(
                ProductVariantModel.id == variant_id,
                ProductVariantModel.quantity >= quantity,
            )
            .values(quantity=ProductVariantModel.quantity - quantity)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            available = self.available(variant_id)
            if available is None:
                raise NotFound(f"Product variant {variant_id} not found")
            raise InsufficientStock(variant_id, quantity, available)

        remaining = self.available(variant_id)
        logger.info(f"Reserved {quantity} of variant {variant_id}, {remaining} left")
        return remaining

    def restore(self, variant_id: int, quantity: int) -> int | None:
        """Not idempotent: callers must hold the claim on the reservation."""
        if quantity <= 0:
            raise ValueError("Quantity must be greater than 0")

        result = self.db.execute(
            update(ProductVariantModel)
            .where(ProductVariantModel.id == variant_id)
            .values(quantity=ProductVariantModel.quantity + quantity)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            logger.warning(f"Variant {variant_id} no longer exists, {quantity} units not restored")
            return None

        restored = self.available(variant_id)
        logger.info(f"Restored {quantity} of variant {variant_id}, {restored} available")
        return restored
