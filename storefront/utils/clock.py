# storefront/utils/clock.py
from datetime import datetime, timezone, timedelta

from storefront.utils.settings import CART_TTL_SECONDS


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    # sqlite hands back naive datetimes even for timezone=True columns
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def cart_expiry(now: datetime | None = None) -> datetime:
    return (now or utcnow()) + timedelta(seconds=CART_TTL_SECONDS)
