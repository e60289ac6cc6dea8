# storefront/domain/errors.py


class ShopError(Exception):
    """Base for every error the cart/checkout core raises on purpose."""

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class NotFound(ShopError):
    pass


class Forbidden(ShopError):
    pass


class InsufficientStock(ShopError):
    def __init__(self, variant_id: int, requested: int, available: int):
        super().__init__(f"Only {available} items left in stock.")
        self.variant_id = variant_id
        self.requested = requested
        self.available = available


class Expired(ShopError):
    pass


class Conflict(ShopError):
    """The cart is owned by another in-flight operation."""


class PaymentFailed(ShopError):
    pass


class FinalizationFailed(ShopError):
    """
    Payment was captured but the local order could not be written.
    Never shown to the shopper as actionable, needs manual reconciliation.
    """

    def __init__(self, payment_id: str, cart_id: int, message: str = ""):
        super().__init__(
            message
            or f"Payment {payment_id} succeeded but order finalization for cart {cart_id} failed"
        )
        self.payment_id = payment_id
        self.cart_id = cart_id


class InvalidSignature(ShopError):
    pass
