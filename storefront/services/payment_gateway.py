# storefront/services/payment_gateway.py
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

import stripe

from storefront.domain.errors import PaymentFailed, InvalidSignature
from storefront.utils.settings import STRIPE_SECRET_KEY, STRIPE_WEBHOOK_SECRET
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

SUCCEEDED = "succeeded"
#the processor has not decided yet, the intent may still succeed later
UNSETTLED = ("processing", "requires_action", "requires_capture")


@dataclass(frozen=True)
class PaymentResult:
    id: str
    status: str

    @property
    def succeeded(self) -> bool:
        return self.status == SUCCEEDED

    @property
    def unsettled(self) -> bool:
        return self.status in UNSETTLED


def to_minor_units(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class PaymentGateway:
    """
    Thin wrapper over the stripe SDK.
    -create customer
    -create a payment intent, then confirm it (the charge)
    -verify signed webhook payloads
    No retries anywhere: a charge must never be sent twice.
    """

    def __init__(self, api_key: str | None = None, webhook_secret: str | None = None):
        self.api_key = api_key if api_key is not None else STRIPE_SECRET_KEY
        self.webhook_secret = webhook_secret if webhook_secret is not None else STRIPE_WEBHOOK_SECRET
        stripe.max_network_retries = 0

    def create_customer(self, email: str, name: str) -> str:
        try:
            customer = stripe.Customer.create(api_key=self.api_key, email=email, name=name)
        except stripe.StripeError as e:
            logger.error(f"Stripe customer creation failed for {email}: {e}")
            raise PaymentFailed(f"Payment initialization failed: {e}") from e
        return customer.id

    def create_intent(
        self,
        amount: Decimal,
        currency: str,
        customer_ref: str | None,
        payment_method_ref: str,
        metadata: dict | None = None,
    ) -> PaymentResult:
        """Registers the charge without moving money, the id can be recorded before confirm."""
        logger.info(f"Creating payment intent for {amount} {currency} (customer {customer_ref})")
        try:
            intent = stripe.PaymentIntent.create(
                api_key=self.api_key,
                amount=to_minor_units(amount),
                currency=currency,
                customer=customer_ref,
                payment_method=payment_method_ref,
                confirm=False,
                automatic_payment_methods={"enabled": True, "allow_redirects": "never"},
                metadata={k: str(v) for k, v in (metadata or {}).items()},
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe payment intent creation failed: {e}")
            raise PaymentFailed(f"Payment initialization failed: {e.user_message or e}") from e

        return PaymentResult(id=intent.id, status=intent.status)

    def confirm(self, payment_id: str) -> PaymentResult:
        """Charges the card. Sent exactly once per intent."""
        try:
            intent = stripe.PaymentIntent.confirm(payment_id, api_key=self.api_key)
        except stripe.StripeError as e:
            #card declines, network errors and timeouts all land here
            logger.error(f"Stripe payment confirmation failed for {payment_id}: {e}")
            raise PaymentFailed(f"Payment failed: {e.user_message or e}") from e

        return PaymentResult(id=intent.id, status=intent.status)

    def parse_event(self, payload: bytes, signature: str | None) -> dict:
        if not self.webhook_secret:
            logger.error("Stripe webhook secret is not configured, rejecting callback")
            raise InvalidSignature("Webhook secret not configured")
        if not signature:
            raise InvalidSignature("Missing signature header")

        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Webhook signature verification failed: {e}")
            raise InvalidSignature(str(e)) from e
        except ValueError as e:
            logger.warning(f"Webhook payload is not valid JSON: {e}")
            raise InvalidSignature("Invalid payload") from e

        return {
            "id": event["id"],
            "type": event["type"],
            "payment_id": event["data"]["object"]["id"],
        }
