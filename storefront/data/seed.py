# storefront/data/seed.py
from decimal import Decimal

from storefront.data.database import Base, SessionLocal, engine
from storefront.data.models import ProductModel, ProductVariantModel, UserModel, UserAddressModel


def seed():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        #only seed an empty catalog
        if db.query(ProductModel).first():
            return

        shirt = ProductModel(name="Basic T-Shirt", description="Cotton tee", price=Decimal("19.99"))
        db.add(shirt)
        db.flush()
        db.add_all([
            ProductVariantModel(product_id=shirt.id, sku="TEE-BLK", color="black", quantity=25),
            ProductVariantModel(product_id=shirt.id, sku="TEE-WHT", color="white", quantity=10),
            ProductVariantModel(product_id=shirt.id, sku="TEE-RED", color="red", quantity=5, price=Decimal("24.99")),
        ])

        user = UserModel(email="shopper@example.com", first_name="Sam", last_name="Shopper")
        db.add(user)
        db.flush()
        db.add(UserAddressModel(
            user_id=user.id,
            full_name="Sam Shopper",
            line1="1 Market Street",
            city="Springfield",
            postal_code="12345",
            country="US",
            is_default=True,
        ))
        db.commit()
    finally:
        db.close()


if __name__ == "__main__":
    seed()
