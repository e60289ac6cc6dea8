import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test"
os.environ["CART_TTL_SECONDS"] = "600"

from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy import select, update

import storefront.data.models  # noqa: F401
from storefront.data.database import Base, SessionLocal, engine
from storefront.data.models import (
    CartModel,
    ProductModel,
    ProductVariantModel,
    UserAddressModel,
    UserModel,
)
from storefront.domain.errors import PaymentFailed
from storefront.services.payment_gateway import PaymentResult
from storefront.utils.clock import utcnow


class FakeGateway:
    """
    Stands in for the processor; parse_event is not used by checkout.
    `error` is raised by confirm (the charge), `intent_error` by create_intent.
    `during_confirm` runs before the charge answers, to interleave other requests.
    """

    def __init__(self, status="succeeded", payment_id="pi_test_1", error=None, intent_error=None, during_confirm=None):
        self.status = status
        self.payment_id = payment_id
        self.error = error
        self.intent_error = intent_error
        self.during_confirm = during_confirm
        self.payments = []
        self.confirmed = []
        self.customers = []

    def create_customer(self, email, name):
        self.customers.append((email, name))
        return f"cus_{len(self.customers)}"

    def create_intent(self, amount, currency, customer_ref, payment_method_ref, metadata=None):
        self.payments.append(
            {
                "amount": amount,
                "currency": currency,
                "customer_ref": customer_ref,
                "payment_method_ref": payment_method_ref,
                "metadata": metadata,
            }
        )
        if self.intent_error is not None:
            raise self.intent_error
        return PaymentResult(id=self.payment_id, status="requires_confirmation")

    def confirm(self, payment_id):
        self.confirmed.append(payment_id)
        if self.during_confirm is not None:
            self.during_confirm()
        if self.error is not None:
            raise self.error
        return PaymentResult(id=payment_id, status=self.status)


@pytest.fixture(autouse=True)
def schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def shop():
    """One product with two variants (stock 5 and 2), two users with an address each."""
    session = SessionLocal()
    try:
        product = ProductModel(name="Hoodie", price=Decimal("40.00"))
        session.add(product)
        session.flush()

        v = ProductVariantModel(product_id=product.id, sku="HOOD-BLU", color="blue", quantity=5)
        w = ProductVariantModel(
            product_id=product.id, sku="HOOD-GRN", color="green", quantity=2, price=Decimal("45.50")
        )
        alice = UserModel(email="alice@example.com", first_name="Alice", last_name="A")
        bob = UserModel(email="bob@example.com", first_name="Bob", last_name="B", stripe_customer_id="cus_bob")
        session.add_all([v, w, alice, bob])
        session.flush()

        alice_addr = UserAddressModel(
            user_id=alice.id, full_name="Alice A", line1="1 Main St", city="Town", postal_code="111", country="US"
        )
        bob_addr = UserAddressModel(
            user_id=bob.id, full_name="Bob B", line1="2 Side St", city="Town", postal_code="222", country="US"
        )
        session.add_all([alice_addr, bob_addr])
        session.commit()

        return SimpleNamespace(
            product_id=product.id,
            variant_id=v.id,
            other_variant_id=w.id,
            alice=alice.id,
            bob=bob.id,
            alice_address=alice_addr.id,
            bob_address=bob_addr.id,
        )
    finally:
        session.close()


@pytest.fixture
def stock():
    def read(variant_id):
        with SessionLocal() as session:
            return session.scalar(
                select(ProductVariantModel.quantity).where(ProductVariantModel.id == variant_id)
            )

    return read


@pytest.fixture
def cart_status():
    def read(cart_id):
        with SessionLocal() as session:
            return session.scalar(select(CartModel.status).where(CartModel.id == cart_id))

    return read


@pytest.fixture
def expire_cart():
    def expire(cart_id, seconds=60):
        with SessionLocal() as session:
            session.execute(
                update(CartModel)
                .where(CartModel.id == cart_id)
                .values(expires_at=utcnow() - timedelta(seconds=seconds))
            )
            session.commit()

    return expire


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def failing_gateway():
    return FakeGateway(error=PaymentFailed("Payment failed: card declined"))
