# storefront/domain/statuses.py


class CartStatus:
    ACTIVE = "active"
    #claimed by an in-flight operation (checkout or sweeper), not terminal
    PROCESSING = "processing"
    COMPLETED = "completed"
    EXPIRED = "expired"
    FAILED = "failed"


class OrderStatus:
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus:
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class CheckoutState:
    VALIDATING = "validating"
    PAYING = "paying"
    FINALIZING = "finalizing"
    SETTLED = "settled"
    PAYMENT_FAILED = "payment_failed"
    FINALIZATION_FAILED = "finalization_failed"
