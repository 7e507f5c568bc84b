from decimal import Decimal
from fastapi import APIRouter, Depends, Request, Response
from sqlmodel import Session

from ..auth import AccessContext, require_user
from ..db import get_session
from ..deps import client_ip, get_converter, get_gateways
from ..schemas import (
    CommitRequest,
    Countersign,
    PaymentStart,
    PaymentVerify,
    PledgeRequest,
    SignatureSubmit,
    TermsAcceptance,
)
from ..services import investments
from ..services.currency import CurrencyConverter
from ..services.payments import PaymentGateways

router = APIRouter()


def _serialize(session: Session, investment):
    return investments.serialize_investment(investment, investments.agreement_for(session, investment))


@router.get("/quote")
def quote(campaign_id: int, amount: Decimal, session: Session = Depends(get_session)):
    return investments.quote(session, campaign_id, amount)


@router.post("", status_code=201)
def start_investment(
    payload: PledgeRequest,
    ctx: AccessContext = Depends(require_user),
    session: Session = Depends(get_session),
):
    investment = investments.start_investment(session, ctx, payload.campaign_id, payload.amount)
    return _serialize(session, investment)


@router.get("")
def list_investments(ctx: AccessContext = Depends(require_user), session: Session = Depends(get_session)):
    return [_serialize(session, i) for i in investments.list_investments(session, ctx)]


@router.get("/pending")
def pending_commitments(ctx: AccessContext = Depends(require_user), session: Session = Depends(get_session)):
    return [_serialize(session, i) for i in investments.list_pending_commitments(session, ctx)]


@router.post("/commit", status_code=201)
def commit_investment(
    payload: CommitRequest,
    request: Request,
    ctx: AccessContext = Depends(require_user),
    session: Session = Depends(get_session),
):
    investment = investments.commit_investment(session, ctx, payload, ip_address=client_ip(request))
    return _serialize(session, investment)


@router.get("/{investment_id}")
def get_investment(
    investment_id: int,
    ctx: AccessContext = Depends(require_user),
    session: Session = Depends(get_session),
):
    return _serialize(session, investments.get_investment(session, investment_id, ctx))


@router.get("/{investment_id}/agreement")
def preview_agreement(
    investment_id: int,
    ctx: AccessContext = Depends(require_user),
    session: Session = Depends(get_session),
):
    return investments.preview_agreement(session, investment_id, ctx)


@router.post("/{investment_id}/terms")
def accept_terms(
    investment_id: int,
    payload: TermsAcceptance,
    ctx: AccessContext = Depends(require_user),
    session: Session = Depends(get_session),
):
    investment = investments.accept_terms(
        session, investment_id, ctx, payload.agree_to_terms, payload.accredited_investor
    )
    return _serialize(session, investment)


@router.post("/{investment_id}/sign")
def sign(
    investment_id: int,
    payload: SignatureSubmit,
    request: Request,
    ctx: AccessContext = Depends(require_user),
    session: Session = Depends(get_session),
):
    investment = investments.sign_investment(
        session, investment_id, ctx, payload.full_name, ip_address=client_ip(request)
    )
    return _serialize(session, investment)


@router.post("/{investment_id}/payment")
def start_payment(
    investment_id: int,
    payload: PaymentStart,
    ctx: AccessContext = Depends(require_user),
    session: Session = Depends(get_session),
    gateways: PaymentGateways = Depends(get_gateways),
    converter: CurrencyConverter = Depends(get_converter),
):
    attempt = investments.begin_payment(session, investment_id, ctx, payload.currency, gateways, converter)
    return investments.serialize_attempt(attempt)


@router.post("/{investment_id}/payment/verify")
def verify_payment(
    investment_id: int,
    payload: PaymentVerify,
    ctx: AccessContext = Depends(require_user),
    session: Session = Depends(get_session),
    gateways: PaymentGateways = Depends(get_gateways),
):
    investment = investments.verify_payment(session, investment_id, ctx, payload.reference, gateways)
    return _serialize(session, investment)


@router.post("/{investment_id}/cancel")
def cancel(
    investment_id: int,
    ctx: AccessContext = Depends(require_user),
    session: Session = Depends(get_session),
):
    return _serialize(session, investments.cancel_investment(session, investment_id, ctx))


@router.get("/{investment_id}/agreement/pdf")
def download_agreement(
    investment_id: int,
    ctx: AccessContext = Depends(require_user),
    session: Session = Depends(get_session),
):
    filename, pdf = investments.agreement_pdf(session, investment_id, ctx)
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/{investment_id}/agreement/countersign")
def countersign(
    investment_id: int,
    payload: Countersign,
    ctx: AccessContext = Depends(require_user),
    session: Session = Depends(get_session),
):
    agreement = investments.countersign(session, investment_id, ctx, payload.full_name)
    return {
        "agreement_id": agreement.agreement_id,
        "status": agreement.status,
        "countersigned_at": agreement.countersigned_at,
    }
