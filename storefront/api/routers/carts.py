# storefront/api/routers/carts.py
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from storefront.api.deps import Requester, get_requester, rate_limited
from storefront.data.database import get_db
from storefront.domain.errors import NotFound, Forbidden, InsufficientStock, Expired, Conflict
from storefront.domain.schemas import (
    AddItemIn,
    AddItemOut,
    CartViewOut,
    CheckoutSummaryOut,
)
from storefront.services.cart_service import CartService

router = APIRouter(prefix="/cart", tags=["cart"])


def get_service(db: Session):
    return CartService(db)


@router.get("", response_model=CartViewOut)
def view_cart(
    requester: Requester = Depends(get_requester),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    return svc.view(requester.user_id)


@router.post(
    "/items",
    response_model=AddItemOut,
    dependencies=[Depends(rate_limited("cart:add"))],
)
def add_item(
    payload: AddItemIn,
    requester: Requester = Depends(get_requester),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        return svc.add_item(
            user_id=requester.user_id,
            variant_id=payload.variant_id,
            quantity=payload.quantity,
        )
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InsufficientStock as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Conflict as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.delete("/items/{item_id}")
def remove_item(
    item_id: int,
    requester: Requester = Depends(get_requester),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        return svc.remove_item(item_id, requester.user_id)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Forbidden as e:
        raise HTTPException(status_code=403, detail=str(e))
    except Conflict as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.get("/checkout", response_model=CheckoutSummaryOut)
def checkout_summary(
    requester: Requester = Depends(get_requester),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        return svc.checkout_summary(requester.user_id)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Expired as e:
        raise HTTPException(status_code=400, detail=str(e))
