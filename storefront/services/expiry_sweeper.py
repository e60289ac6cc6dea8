# storefront/services/expiry_sweeper.py
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List

from sqlalchemy.orm import Session

from storefront.data.models.cart import CartModel
from storefront.domain.statuses import CartStatus
from storefront.repos.cart_repo import CartRepo
from storefront.repos.stock_repo import StockLedger
from storefront.utils.clock import utcnow
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class SweepReport:
    found: int = 0
    expired: List[int] = field(default_factory=list)
    skipped: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "found": self.found,
            "expired": self.expired,
            "skipped": self.skipped,
            "failed": self.failed,
        }


class ExpirySweeper:
    """
    Reclaims stock from abandoned carts.

    claim (active -> processing, CAS) -> restore items -> expired
    A failure after the claim parks the cart in `failed`, never back in `active`.
    Safe to run from several workers at once: the claim has a single winner.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def run(self, now: datetime | None = None) -> SweepReport:
        now = now or utcnow()
        report = SweepReport()

        db = self.session_factory()
        try:
            repo = CartRepo(db)
            cart_ids = repo.find_expired_cart_ids(now)
            db.rollback()

            report.found = len(cart_ids)
            if cart_ids:
                logger.info(f"Found {len(cart_ids)} potentially expired active carts")

            for cart_id in cart_ids:
                self._sweep_cart(db, cart_id, now, report)
        finally:
            db.close()

        return report

    def _sweep_cart(self, db: Session, cart_id: int, now: datetime, report: SweepReport):
        repo = CartRepo(db)
        ledger = StockLedger(db)

        #claim against the persisted row: a concurrent add may have pushed expires_at
        claimed = repo.transition(
            cart_id,
            CartStatus.ACTIVE,
            CartStatus.PROCESSING,
            CartModel.expires_at < now,
        )
        repo.commit()

        if not claimed:
            logger.debug(f"Cart {cart_id} was already modified, skipping")
            report.skipped.append(cart_id)
            return

        try:
            #fresh read, items removed before the claim must not be restored
            for item in repo.get_cart_items(cart_id):
                ledger.restore(item.variant_id, item.quantity)

            if not repo.transition(cart_id, CartStatus.PROCESSING, CartStatus.EXPIRED):
                raise RuntimeError(f"Cart {cart_id} left processing during sweep")

            repo.commit()
        except Exception as e:
            repo.rollback()
            logger.error(f"Failed to process expired cart {cart_id}: {e}")
            report.failed.append(cart_id)
            self._mark_failed(repo, cart_id)
            return

        logger.info(f"Cart {cart_id} processed and marked as expired")
        report.expired.append(cart_id)

    @staticmethod
    def _mark_failed(repo: CartRepo, cart_id: int):
        try:
            repo.transition(cart_id, CartStatus.PROCESSING, CartStatus.FAILED)
            repo.commit()
        except Exception as e:
            #processing and failed are both left alone by every automatic path
            repo.rollback()
            logger.warning(f"Could not mark cart {cart_id} as failed: {e}")
