import json
import logging
from fastapi import APIRouter, Depends, Header, Request
from fastapi.concurrency import run_in_threadpool
from sqlmodel import Session

from ..config import STRIPE_WEBHOOK_SECRET
from ..db import get_session
from ..deps import get_gateways
from ..errors import ValidationError
from ..services import investments
from ..services.payments import PaymentGateways, verify_stripe_signature

logger = logging.getLogger(__name__)

router = APIRouter()

STRIPE_FAILURE_EVENTS = ("checkout.session.expired", "checkout.session.async_payment_failed")


@router.post("/stripe/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(default=None, alias="Stripe-Signature"),
    session: Session = Depends(get_session),
):
    payload = await request.body()
    verify_stripe_signature(payload, stripe_signature, STRIPE_WEBHOOK_SECRET)
    try:
        event = json.loads(payload)
    except json.JSONDecodeError:
        raise ValidationError("webhook body is not JSON")
    event_type = event.get("type")
    obj = (event.get("data") or {}).get("object") or {}
    reference = obj.get("id")
    if not reference:
        raise ValidationError("webhook event carries no session id")
    if event_type == "checkout.session.completed" and obj.get("payment_status") == "paid":
        investment = await run_in_threadpool(investments.confirm_payment, session, "stripe", reference)
    elif event_type in STRIPE_FAILURE_EVENTS:
        investment = await run_in_threadpool(investments.fail_payment, session, "stripe", reference)
    else:
        logger.debug("ignoring stripe event %s", event_type)
        return {"received": True}
    return {"received": True, "investment_id": investment.id, "payment_status": investment.payment_status}


@router.get("/budpay/callback")
def budpay_callback(
    reference: str,
    session: Session = Depends(get_session),
    gateways: PaymentGateways = Depends(get_gateways),
):
    investment = investments.investment_for_reference(session, "budpay", reference)
    # the callback itself is unauthenticated; trust only the processor's verify endpoint
    state = gateways.budpay.retrieve_status(reference)
    if state == "completed":
        investment = investments.confirm_payment(session, "budpay", reference)
    elif state == "failed":
        investment = investments.fail_payment(session, "budpay", reference)
    return {"investment_id": investment.id, "payment_status": investment.payment_status}
