# storefront/api/routers/orders.py
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from storefront.api.deps import Requester, get_requester, get_payment_gateway, rate_limited
from storefront.data.database import get_db
from storefront.domain.errors import (
    NotFound,
    Forbidden,
    Expired,
    Conflict,
    PaymentFailed,
    FinalizationFailed,
)
from storefront.domain.schemas import CheckoutIn, CheckoutOut, OrderOut, OrderHistoryOut
from storefront.services.checkout_service import CheckoutService
from storefront.services.order_service import OrderService
from storefront.services.payment_gateway import PaymentGateway

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post(
    "",
    response_model=CheckoutOut,
    status_code=201,
    dependencies=[Depends(rate_limited("checkout"))],
)
def create_order(
    payload: CheckoutIn,
    requester: Requester = Depends(get_requester),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    db: Session = Depends(get_db),
):
    """
    Checkout: charges the active cart and records the order.
    A failed payment leaves the cart active with its stock still reserved.
    """
    svc = CheckoutService(db, gateway)
    try:
        return svc.checkout(requester.user_id, payload.payment_method_id, payload.address_id)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Forbidden as e:
        raise HTTPException(status_code=403, detail=str(e))
    except Expired as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Conflict as e:
        raise HTTPException(status_code=409, detail=str(e))
    except PaymentFailed as e:
        raise HTTPException(status_code=402, detail=str(e))
    except FinalizationFailed:
        raise HTTPException(
            status_code=500,
            detail="Payment succeeded but order finalization encountered an error. Our team has been notified.",
        )


@router.get("", response_model=OrderHistoryOut)
def order_history(
    requester: Requester = Depends(get_requester),
    db: Session = Depends(get_db),
):
    return OrderService(db).history(requester.user_id)


@router.get("/{order_id}", response_model=OrderOut)
def get_order(
    order_id: int,
    requester: Requester = Depends(get_requester),
    db: Session = Depends(get_db),
):
    svc = OrderService(db)
    try:
        return svc.get_order(order_id, requester.user_id)
    except Forbidden as e:
        raise HTTPException(status_code=403, detail=str(e))
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
