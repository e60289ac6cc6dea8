# storefront/api/deps.py
from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException

from storefront.services.payment_gateway import PaymentGateway
from storefront.services.rate_limiter import RateLimiter


@dataclass(frozen=True)
class Requester:
    user_id: int
    role: str = "customer"


def get_requester(
    x_user_id: int | None = Header(default=None),
    x_user_role: str = Header(default="customer"),
) -> Requester:
    """Identity is authenticated upstream, the gateway forwards it in headers."""
    if x_user_id is None:
        raise HTTPException(status_code=401, detail="Missing requester identity")
    return Requester(user_id=x_user_id, role=x_user_role)


def get_payment_gateway() -> PaymentGateway:
    return PaymentGateway()


_rate_limiter: RateLimiter | None = None


def get_rate_limiter() -> RateLimiter:
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = RateLimiter()
    return _rate_limiter


def rate_limited(scope: str):
    def dependency(
        requester: Requester = Depends(get_requester),
        limiter: RateLimiter = Depends(get_rate_limiter),
    ):
        if not limiter.allow(scope, str(requester.user_id)):
            raise HTTPException(status_code=429, detail="Too many attempts. Please try again later.")

    return dependency
