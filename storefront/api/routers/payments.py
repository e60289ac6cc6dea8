# storefront/api/routers/payments.py
from fastapi import APIRouter, Depends, HTTPException, Request, Header
from starlette.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from storefront.api.deps import get_payment_gateway
from storefront.data.database import get_db
from storefront.domain.errors import InvalidSignature
from storefront.domain.schemas import WebhookAck
from storefront.services.payment_gateway import PaymentGateway
from storefront.services.reconciler import SettlementReconciler

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/webhook", response_model=WebhookAck)
async def payment_webhook(
    request: Request,
    stripe_signature: str | None = Header(default=None),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    db: Session = Depends(get_db),
):
    """
    Processor callback. The signature is checked against the raw body,
    so the payload is read as bytes before any JSON parsing.
    Any other error is a 500 and the processor redelivers the event.
    """
    payload = await request.body()
    try:
        reconciler = SettlementReconciler(db, gateway)
        outcome = await run_in_threadpool(reconciler.handle, payload, stripe_signature)
    except InvalidSignature as e:
        raise HTTPException(status_code=400, detail=f"Webhook Error: {e}")
    return {"received": True, "outcome": outcome}
