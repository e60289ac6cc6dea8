# storefront/repos/customer_repo.py
from sqlalchemy.orm import Session

from storefront.data.models.user import UserModel, UserAddressModel


class CustomerRepo:
    """Identity and address book records the checkout needs."""

    def __init__(self, db: Session):
        self.db = db

    def get_user(self, user_id: int) -> UserModel | None:
        return self.db.get(UserModel, user_id)

    def get_address(self, address_id: int) -> UserAddressModel | None:
        return self.db.get(UserAddressModel, address_id)

    def set_stripe_customer(self, user: UserModel, customer_id: str) -> None:
        user.stripe_customer_id = customer_id
        self.db.commit()
