from datetime import timedelta

from storefront.data.database import SessionLocal
from storefront.domain.statuses import CartStatus
from storefront.repos.cart_repo import CartRepo
from storefront.repos.stock_repo import StockLedger
from storefront.services.cart_service import CartService
from storefront.services.expiry_sweeper import ExpirySweeper
from storefront.tasks.expire import expire_carts_task
from storefront.utils.clock import utcnow


def test_sweeper_expires_cart_and_restores_stock(db, shop, stock, cart_status, expire_cart):
    svc = CartService(db)
    added = svc.add_item(shop.alice, shop.variant_id, 3)
    svc.add_item(shop.alice, shop.other_variant_id, 2)
    expire_cart(added["cart_id"])

    report = ExpirySweeper(SessionLocal).run()

    assert report.found == 1
    assert report.expired == [added["cart_id"]]
    assert cart_status(added["cart_id"]) == CartStatus.EXPIRED
    assert stock(shop.variant_id) == 5
    assert stock(shop.other_variant_id) == 2


def test_unexpired_carts_are_left_alone(db, shop, stock, cart_status):
    added = CartService(db).add_item(shop.alice, shop.variant_id, 3)

    report = ExpirySweeper(SessionLocal).run()

    assert report.found == 0
    assert cart_status(added["cart_id"]) == CartStatus.ACTIVE
    assert stock(shop.variant_id) == 2


def test_second_run_restores_nothing(db, shop, stock, expire_cart):
    added = CartService(db).add_item(shop.alice, shop.variant_id, 3)
    expire_cart(added["cart_id"])

    sweeper = ExpirySweeper(SessionLocal)
    sweeper.run()
    report = sweeper.run()

    assert report.found == 0
    assert stock(shop.variant_id) == 5


def _race_after_listing(monkeypatch, rival_action):
    """Run rival_action(repo) right after the sweeper has listed its candidates."""
    import storefront.services.expiry_sweeper as module

    class RacingRepo(CartRepo):
        def find_expired_cart_ids(self, now):
            ids = super().find_expired_cart_ids(now)
            rival_action(CartRepo(self.db))
            self.db.commit()
            return ids

    monkeypatch.setattr(module, "CartRepo", RacingRepo)


def test_claim_skips_cart_extended_after_listing(db, shop, stock, cart_status, expire_cart, monkeypatch):
    added = CartService(db).add_item(shop.alice, shop.variant_id, 3)
    expire_cart(added["cart_id"])

    #the user adds something between the listing and the claim
    _race_after_listing(
        monkeypatch,
        lambda repo: repo.touch_active_cart(added["cart_id"], utcnow() + timedelta(minutes=10)),
    )

    report = ExpirySweeper(SessionLocal).run()

    assert report.found == 1
    assert report.skipped == [added["cart_id"]]
    assert cart_status(added["cart_id"]) == CartStatus.ACTIVE
    assert stock(shop.variant_id) == 2


def test_claim_is_single_winner(db, shop, stock, cart_status, expire_cart, monkeypatch):
    added = CartService(db).add_item(shop.alice, shop.variant_id, 3)
    expire_cart(added["cart_id"])

    #another sweeper instance claims the cart first
    _race_after_listing(
        monkeypatch,
        lambda repo: repo.transition(added["cart_id"], CartStatus.ACTIVE, CartStatus.PROCESSING),
    )

    report = ExpirySweeper(SessionLocal).run()

    assert report.skipped == [added["cart_id"]]
    assert report.expired == []
    assert cart_status(added["cart_id"]) == CartStatus.PROCESSING
    assert stock(shop.variant_id) == 2


def test_items_removed_before_claim_are_not_restored(db, shop, stock, expire_cart):
    svc = CartService(db)
    added = svc.add_item(shop.alice, shop.variant_id, 3)
    svc.add_item(shop.alice, shop.other_variant_id, 1)
    svc.remove_item(added["item_id"], shop.alice)
    assert stock(shop.variant_id) == 5

    expire_cart(added["cart_id"])
    ExpirySweeper(SessionLocal).run()

    assert stock(shop.variant_id) == 5
    assert stock(shop.other_variant_id) == 2


def test_failure_after_claim_marks_cart_failed(db, shop, stock, cart_status, expire_cart, monkeypatch):
    added = CartService(db).add_item(shop.alice, shop.variant_id, 3)
    expire_cart(added["cart_id"])

    def boom(self, variant_id, quantity):
        raise RuntimeError("ledger unavailable")

    monkeypatch.setattr(StockLedger, "restore", boom)

    report = ExpirySweeper(SessionLocal).run()

    assert report.failed == [added["cart_id"]]
    assert cart_status(added["cart_id"]) == CartStatus.FAILED
    assert stock(shop.variant_id) == 2


def test_one_bad_cart_does_not_stop_the_sweep(db, shop, stock, cart_status, expire_cart, monkeypatch):
    svc = CartService(db)
    first = svc.add_item(shop.alice, shop.variant_id, 1)
    second = svc.add_item(shop.bob, shop.other_variant_id, 1)
    expire_cart(first["cart_id"])
    expire_cart(second["cart_id"])

    original_restore = StockLedger.restore

    def flaky(self, variant_id, quantity):
        if variant_id == shop.variant_id:
            raise RuntimeError("ledger unavailable")
        return original_restore(self, variant_id, quantity)

    monkeypatch.setattr(StockLedger, "restore", flaky)

    report = ExpirySweeper(SessionLocal).run()

    assert report.failed == [first["cart_id"]]
    assert report.expired == [second["cart_id"]]
    assert stock(shop.other_variant_id) == 2


def test_celery_task_runs_the_sweeper(db, shop, stock, expire_cart):
    added = CartService(db).add_item(shop.alice, shop.variant_id, 4)
    expire_cart(added["cart_id"])

    result = expire_carts_task()

    assert result["expired"] == [added["cart_id"]]
    assert stock(shop.variant_id) == 5
