"""Investment workflow: pledge -> terms -> signature -> payment -> confirmation.

The workflow is resumable: every step persists its result on the Investment
row and the current step is derived from that state, so an investor who
abandons the flow picks up where they left off. Payment completion is only
ever applied from a processor confirmation keyed by the processor reference,
and applying it twice is a no-op.
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from html import escape
from typing import List, Optional, Tuple

from sqlalchemy import update
from sqlmodel import Session, select

from .. import storage
from ..auth import AccessContext
from ..config import PENDING_INVESTMENT_TTL_HOURS, PLATFORM_FEE_RATE
from ..email import send_email
from ..errors import ForbiddenError, InvalidStateError, NotFoundError, ValidationError
from ..models import Campaign, FileUpload, Investment, PaymentAttempt, SafeAgreement, User
from ..utils import canonical_json, format_usd, load_json, new_agreement_id, new_payment_reference, to_money
from . import notifications
from .campaigns import get_campaign, stats_for
from .currency import CurrencyConverter
from .payments import PaymentGateways
from .safe_agreement import build_terms, generate_agreement, render_agreement, render_agreement_pdf

logger = logging.getLogger(__name__)

PAYMENT_TRANSITIONS = {
    "pending": ("processing",),
    "processing": ("processing", "completed", "failed"),
    # a retry starts a new attempt; a late success for the lapsed attempt still counts
    "failed": ("processing", "completed"),
    "completed": (),
}


def calculate_fees(amount) -> Tuple[Decimal, Decimal, Decimal]:
    amount = to_money(amount)
    fee = to_money(amount * PLATFORM_FEE_RATE)
    return amount, fee, amount + fee


def validate_pledge(campaign: Campaign, amount, now: Optional[datetime] = None) -> Decimal:
    if campaign.status != "active":
        raise ValidationError("campaign is not accepting investments")
    now = now or datetime.utcnow()
    if campaign.deadline and campaign.deadline < now:
        raise ValidationError("campaign deadline has passed")
    if amount is None:
        raise ValidationError("investment amount is required")
    amount = to_money(amount)
    if amount < to_money(campaign.minimum_investment):
        raise ValidationError(f"minimum investment is {format_usd(campaign.minimum_investment)}")
    return amount


def quote(session: Session, campaign_id: int, amount) -> dict:
    campaign = get_campaign(session, campaign_id)
    amount, fee, total = calculate_fees(validate_pledge(campaign, amount))
    return {
        "campaign_id": campaign.id,
        "amount": str(amount),
        "platform_fee": str(fee),
        "total_amount": str(total),
        "minimum_investment": str(to_money(campaign.minimum_investment)),
    }


def workflow_step(investment: Investment) -> str:
    if investment.status == "cancelled":
        return "cancelled"
    if investment.payment_status == "completed":
        return "confirmation"
    if investment.agreement_signed:
        return "payment"
    if investment.terms_accepted_at:
        return "signature"
    if investment.id is not None:
        return "safe-review"
    return "amount"


def _check_payment_transition(investment: Investment, target: str):
    if target not in PAYMENT_TRANSITIONS.get(investment.payment_status, ()):
        raise InvalidStateError(f"payment cannot move from {investment.payment_status} to {target}")


def _investor(session: Session, ctx: AccessContext) -> User:
    user = session.get(User, ctx.user_id) if ctx.user_id else None
    if not user:
        raise ForbiddenError("an investor session is required")
    return user


def get_investment(session: Session, investment_id: int, ctx: AccessContext) -> Investment:
    """Readable by the investor, the campaign's founder and admins."""
    investment = session.get(Investment, investment_id)
    if not investment:
        raise NotFoundError("investment not found")
    if ctx.is_admin or investment.investor_id == ctx.user_id:
        return investment
    campaign = session.get(Campaign, investment.campaign_id)
    if campaign and campaign.founder_id == ctx.user_id:
        return investment
    raise ForbiddenError("investment belongs to another investor")


def _own_investment(session: Session, investment_id: int, ctx: AccessContext) -> Investment:
    investment = session.get(Investment, investment_id)
    if not investment:
        raise NotFoundError("investment not found")
    if investment.investor_id != ctx.user_id:
        raise ForbiddenError("investment belongs to another investor")
    return investment


def agreement_for(session: Session, investment: Investment) -> Optional[SafeAgreement]:
    return session.exec(select(SafeAgreement).where(SafeAgreement.investment_id == investment.id)).first()


def _open_investment(session: Session, investor_id: int, campaign_id: int) -> Optional[Investment]:
    return session.exec(
        select(Investment).where(
            Investment.investor_id == investor_id,
            Investment.campaign_id == campaign_id,
            Investment.status == "pending",
            Investment.agreement_signed == False,  # noqa: E712
        )
    ).first()


def start_investment(session: Session, ctx: AccessContext, campaign_id: int, amount,
                     now: Optional[datetime] = None) -> Investment:
    investor = _investor(session, ctx)
    campaign = get_campaign(session, campaign_id)
    if campaign.founder_id == investor.id:
        raise ValidationError("founders cannot invest in their own campaign")
    amount, fee, total = calculate_fees(validate_pledge(campaign, amount, now))
    investment = _open_investment(session, investor.id, campaign.id)
    if investment is None:
        investment = Investment(campaign_id=campaign.id, investor_id=investor.id, amount=amount,
                                platform_fee=fee, total_amount=total)
    elif investment.amount != amount:
        # attestations were given for the previous amount
        investment.amount, investment.platform_fee, investment.total_amount = amount, fee, total
        investment.terms_accepted_at = None
        investment.accredited_attested = False
    investment.updated_at = datetime.utcnow()
    session.add(investment)
    session.commit()
    session.refresh(investment)
    return investment


def preview_agreement(session: Session, investment_id: int, ctx: AccessContext) -> dict:
    investment = get_investment(session, investment_id, ctx)
    campaign = get_campaign(session, investment.campaign_id)
    agreement = agreement_for(session, investment)
    if agreement:
        terms = load_json(agreement.terms_json, {})
        text = render_agreement(terms, agreement.agreement_id, agreement.investor_signature,
                                agreement.signed_at, agreement.founder_signature)
        return {"agreement_id": agreement.agreement_id, "status": agreement.status, "terms": terms, "text": text}
    investor = session.get(User, investment.investor_id)
    terms = build_terms(campaign, investment, investor.full_name)
    return {"agreement_id": None, "status": "draft", "terms": terms,
            "text": generate_agreement(investment, campaign, investor.full_name)}


def _require_unsigned(investment: Investment):
    if investment.status != "pending" or investment.agreement_signed:
        raise InvalidStateError("investment has already been signed")


def _apply_terms(investment: Investment, agree_to_terms: bool, accredited_investor: bool, now: datetime):
    if not agree_to_terms or not accredited_investor:
        raise ValidationError("both the agreement consent and the accredited investor attestation are required")
    investment.terms_accepted_at = now
    investment.accredited_attested = True


def accept_terms(session: Session, investment_id: int, ctx: AccessContext,
                 agree_to_terms: bool, accredited_investor: bool) -> Investment:
    investment = _own_investment(session, investment_id, ctx)
    _require_unsigned(investment)
    _apply_terms(investment, agree_to_terms, accredited_investor, datetime.utcnow())
    session.add(investment)
    session.commit()
    session.refresh(investment)
    return investment


def _record_signature(session: Session, investment: Investment, campaign: Campaign, full_name: str,
                      ip_address: Optional[str], now: datetime) -> SafeAgreement:
    full_name = (full_name or "").strip()
    if not full_name:
        raise ValidationError("full legal name is required to sign")
    terms = build_terms(campaign, investment, full_name, now)
    agreement_id = new_agreement_id()
    while session.exec(select(SafeAgreement.id).where(SafeAgreement.agreement_id == agreement_id)).first():
        agreement_id = new_agreement_id()
    terms["agreement_id"] = agreement_id
    agreement = SafeAgreement(
        investment_id=investment.id,
        agreement_id=agreement_id,
        investor_signature=full_name,
        signed_at=now,
        terms_json=canonical_json(terms),
        status="signed",
    )
    investment.status = "committed"
    investment.agreement_signed = True
    investment.signed_at = now
    investment.ip_address = ip_address
    investment.updated_at = now
    session.add(investment)
    session.add(agreement)
    return agreement


def sign_investment(session: Session, investment_id: int, ctx: AccessContext, full_name: str,
                    ip_address: Optional[str] = None, now: Optional[datetime] = None) -> Investment:
    now = now or datetime.utcnow()
    investment = _own_investment(session, investment_id, ctx)
    _require_unsigned(investment)
    if not investment.terms_accepted_at:
        raise InvalidStateError("terms must be accepted before signing")
    campaign = get_campaign(session, investment.campaign_id)
    validate_pledge(campaign, investment.amount, now)
    agreement = _record_signature(session, investment, campaign, full_name, ip_address, now)
    session.commit()
    session.refresh(investment)
    logger.info("investment %s committed with agreement %s", investment.id, agreement.agreement_id)
    return investment


def commit_investment(session: Session, ctx: AccessContext, request, ip_address: Optional[str] = None,
                      now: Optional[datetime] = None) -> Investment:
    """Amount, terms and signature in one request."""
    now = now or datetime.utcnow()
    investor = _investor(session, ctx)
    campaign = get_campaign(session, request.campaign_id)
    if campaign.founder_id == investor.id:
        raise ValidationError("founders cannot invest in their own campaign")
    amount, fee, total = calculate_fees(validate_pledge(campaign, request.amount, now))
    investment = _open_investment(session, investor.id, campaign.id)
    if investment is None:
        investment = Investment(campaign_id=campaign.id, investor_id=investor.id, amount=amount,
                                platform_fee=fee, total_amount=total)
    else:
        investment.amount, investment.platform_fee, investment.total_amount = amount, fee, total
    _apply_terms(investment, request.agree_to_terms, request.accredited_investor, now)
    if not (request.full_name or "").strip():
        raise ValidationError("full legal name is required to sign")
    session.add(investment)
    session.flush()
    agreement = _record_signature(session, investment, campaign, request.full_name, ip_address, now)
    session.commit()
    session.refresh(investment)
    logger.info("investment %s committed with agreement %s", investment.id, agreement.agreement_id)
    return investment


# ---------- payment ----------

def begin_payment(session: Session, investment_id: int, ctx: AccessContext, currency: str,
                  gateways: PaymentGateways, converter: CurrencyConverter) -> PaymentAttempt:
    investment = _own_investment(session, investment_id, ctx)
    if investment.status == "cancelled":
        raise InvalidStateError("investment was cancelled")
    if not investment.agreement_signed:
        raise InvalidStateError("sign the SAFE agreement before paying")
    _check_payment_transition(investment, "processing")
    currency = (currency or "USD").upper()
    gateway = gateways.for_currency(currency)
    investor = session.get(User, investment.investor_id)
    campaign = get_campaign(session, investment.campaign_id)

    charge, exchange_rate = to_money(investment.total_amount), None
    if currency == "NGN":
        charge, rate = converter.convert_usd_to_ngn(investment.total_amount)
        exchange_rate = rate.rate
    checkout = gateway.create_checkout(
        investment_id=investment.id,
        amount=charge,
        description=f"Investment in {campaign.title}",
        customer_email=investor.email,
        reference=new_payment_reference(investment.id),
    )
    attempt = PaymentAttempt(
        investment_id=investment.id,
        provider=checkout.provider,
        reference=checkout.reference,
        currency=currency,
        amount=charge,
        exchange_rate=exchange_rate,
        redirect_url=checkout.redirect_url,
    )
    investment.payment_status = "processing"
    investment.updated_at = datetime.utcnow()
    session.add(attempt)
    session.add(investment)
    session.commit()
    session.refresh(attempt)
    logger.info("payment attempt %s (%s %s %s) created for investment %s",
                attempt.reference, checkout.provider, charge, currency, investment.id)
    return attempt


def _attempt(session: Session, provider: str, reference: str) -> PaymentAttempt:
    attempt = session.exec(
        select(PaymentAttempt).where(PaymentAttempt.reference == reference, PaymentAttempt.provider == provider)
    ).first()
    if not attempt:
        raise NotFoundError("payment reference not found")
    return attempt


def investment_for_reference(session: Session, provider: str, reference: str) -> Investment:
    return session.get(Investment, _attempt(session, provider, reference).investment_id)


def _claim_completion(session: Session, investment: Investment, now: datetime) -> bool:
    """Move the investment to completed unless another confirmation already did."""
    result = session.exec(
        update(Investment)
        .where(
            Investment.id == investment.id,
            Investment.payment_status != "completed",
            Investment.status != "cancelled",
            Investment.agreement_signed == True,  # noqa: E712
        )
        .values(payment_status="completed", status="completed", paid_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    session.refresh(investment)
    return result.rowcount == 1


def _settle_unclaimed(session: Session, attempt: PaymentAttempt, investment: Investment, now: datetime) -> Investment:
    session.refresh(attempt)
    if attempt.status == "completed":
        logger.info("duplicate confirmation for %s ignored; investment %s already paid", attempt.reference, investment.id)
        session.commit()
        return investment
    # money was taken for an attempt that can no longer apply
    attempt.status = "completed"
    attempt.completed_at = now
    session.add(attempt)
    session.commit()
    if investment.status == "cancelled":
        logger.warning("payment %s confirmed for cancelled investment %s; needs manual refund",
                       attempt.reference, investment.id)
    else:
        logger.warning("payment %s arrived after investment %s was already paid; needs manual refund",
                       attempt.reference, investment.id)
    return investment


def confirm_payment(session: Session, provider: str, reference: str, now: Optional[datetime] = None) -> Investment:
    now = now or datetime.utcnow()
    attempt = _attempt(session, provider, reference)
    investment = session.get(Investment, attempt.investment_id)
    if investment.payment_status != "completed" and investment.status != "cancelled":
        if not investment.agreement_signed:
            raise InvalidStateError("payment cannot complete before the agreement is signed")
        _check_payment_transition(investment, "completed")
    if not _claim_completion(session, investment, now):
        return _settle_unclaimed(session, attempt, investment, now)

    attempt.status = "completed"
    attempt.completed_at = now
    session.add(attempt)

    campaign = get_campaign(session, investment.campaign_id)
    agreement = agreement_for(session, investment)
    notifications.notify_investment_confirmed(session, investment, campaign)
    notifications.notify_founder_new_investment(session, investment, campaign)
    notifications.notify_document_ready(session, investment, agreement.agreement_id)
    session.flush()
    stats = stats_for(session, campaign)
    notifications.notify_campaign_milestone(session, campaign, stats["total_raised"], stats["progress_percent"])
    session.commit()
    session.refresh(investment)
    logger.info("payment %s confirmed; investment %s completed", reference, investment.id)

    _deliver_agreement(session, investment, campaign, agreement)
    return investment


def fail_payment(session: Session, provider: str, reference: str, now: Optional[datetime] = None) -> Investment:
    now = now or datetime.utcnow()
    attempt = _attempt(session, provider, reference)
    investment = session.get(Investment, attempt.investment_id)
    if attempt.status == "completed" or investment.payment_status == "completed":
        return investment
    attempt.status = "failed"
    attempt.completed_at = now
    session.add(attempt)
    session.flush()
    live = session.exec(
        select(PaymentAttempt.id).where(
            PaymentAttempt.investment_id == investment.id,
            PaymentAttempt.status == "processing",
        )
    ).first()
    if investment.payment_status == "processing" and live is None:
        _check_payment_transition(investment, "failed")
        investment.payment_status = "failed"
        investment.updated_at = now
        session.add(investment)
    session.commit()
    session.refresh(investment)
    if live is None:
        logger.warning("payment %s failed for investment %s", reference, investment.id)
    else:
        logger.info("superseded payment %s lapsed; investment %s still has a live checkout", reference, investment.id)
    return investment


def verify_payment(session: Session, investment_id: int, ctx: AccessContext, reference: str,
                   gateways: PaymentGateways) -> Investment:
    """Server-side check after the hosted checkout closes."""
    investment = _own_investment(session, investment_id, ctx)
    attempt = session.exec(
        select(PaymentAttempt).where(PaymentAttempt.reference == reference,
                                     PaymentAttempt.investment_id == investment.id)
    ).first()
    if not attempt:
        raise NotFoundError("payment reference not found")
    state = gateways.for_provider(attempt.provider).retrieve_status(reference)
    if state == "completed":
        return confirm_payment(session, attempt.provider, reference)
    if state == "failed":
        return fail_payment(session, attempt.provider, reference)
    return investment


def _agreement_document(agreement: SafeAgreement, investment: Investment) -> bytes:
    terms = load_json(agreement.terms_json, {})
    text = render_agreement(terms, agreement.agreement_id, agreement.investor_signature,
                            agreement.signed_at, agreement.founder_signature)
    audit = {
        "agreement_id": agreement.agreement_id,
        "signer": agreement.investor_signature,
        "signed_at": agreement.signed_at.isoformat() + "Z" if agreement.signed_at else "",
        "ip_address": investment.ip_address or "unknown",
    }
    if agreement.countersigned_at:
        audit["founder_signature"] = agreement.founder_signature
        audit["countersigned_at"] = agreement.countersigned_at.isoformat() + "Z"
    return render_agreement_pdf(text, audit)


def _deliver_agreement(session: Session, investment: Investment, campaign: Campaign, agreement: SafeAgreement):
    """Archive and email the executed PDF. Failures are logged; payment stays confirmed."""
    investor = session.get(User, investment.investor_id)
    pdf = _agreement_document(agreement, investment)
    filename = f"{agreement.agreement_id}.pdf"
    try:
        key = storage.archive_agreement(investment.investor_id, agreement.agreement_id, pdf)
    except Exception:
        logger.exception("archiving agreement %s failed", agreement.agreement_id)
    else:
        session.add(FileUpload(user_id=investor.id, filename=key, original_name=filename,
                               mime_type="application/pdf", size=len(pdf),
                               url=f"/api/investments/{investment.id}/agreement/pdf", type="safe_agreement"))
        agreement.document_url = key
        agreement.updated_at = datetime.utcnow()
        session.add(agreement)
        session.commit()

    plain = (
        f"Hi {investor.first_name},\n\n"
        f"Your {format_usd(investment.amount)} investment in {campaign.title} is confirmed.\n"
        f"Your executed SAFE agreement ({agreement.agreement_id}) is attached.\n\n- Fundry"
    )
    html_body = (
        f"<p>Hi {escape(investor.first_name)},</p>"
        f"<p>Your <strong>{escape(format_usd(investment.amount))}</strong> investment in "
        f"<strong>{escape(campaign.title)}</strong> is confirmed.</p>"
        f"<p>Your executed SAFE agreement ({escape(agreement.agreement_id)}) is attached.</p>"
    )
    try:
        send_email(
            investor.email,
            f"Investment confirmed: {campaign.title}",
            plain,
            html_body=html_body,
            attachments=[{"filename": filename, "content": pdf, "maintype": "application", "subtype": "pdf"}],
        )
    except Exception:
        logger.exception("emailing agreement %s to investor %s failed", agreement.agreement_id, investor.id)


def agreement_pdf(session: Session, investment_id: int, ctx: AccessContext) -> Tuple[str, bytes]:
    investment = get_investment(session, investment_id, ctx)
    if investment.payment_status != "completed":
        raise InvalidStateError("the agreement is available once payment completes")
    agreement = agreement_for(session, investment)
    if not agreement:
        raise NotFoundError("agreement not found")
    filename = f"{agreement.agreement_id}.pdf"
    # the archived copy predates any countersignature
    if agreement.document_url and not agreement.countersigned_at:
        archived = storage.load_agreement(agreement.document_url)
        if archived is not None:
            return filename, archived
    return filename, _agreement_document(agreement, investment)


# ---------- lifecycle ----------

def cancel_investment(session: Session, investment_id: int, ctx: AccessContext) -> Investment:
    investment = _own_investment(session, investment_id, ctx)
    if investment.status == "cancelled":
        return investment
    if investment.payment_status not in ("pending", "failed"):
        raise InvalidStateError("only unpaid commitments can be cancelled")
    investment.status = "cancelled"
    investment.updated_at = datetime.utcnow()
    session.add(investment)
    session.commit()
    session.refresh(investment)
    logger.info("investment %s cancelled by investor", investment.id)
    return investment


def expire_stale_investments(session: Session, now: Optional[datetime] = None,
                             ttl_hours: int = PENDING_INVESTMENT_TTL_HOURS) -> int:
    if ttl_hours <= 0:
        return 0
    now = now or datetime.utcnow()
    cutoff = now - timedelta(hours=ttl_hours)
    stale = session.exec(
        select(Investment).where(
            Investment.status.in_(("pending", "committed")),
            Investment.payment_status.in_(("pending", "failed")),
            Investment.created_at < cutoff,
        )
    ).all()
    for investment in stale:
        investment.status = "cancelled"
        investment.notes = f"expired unpaid after {ttl_hours}h"
        investment.updated_at = now
        session.add(investment)
        notifications.notify_commitment_expired(session, investment, session.get(Campaign, investment.campaign_id))
    session.commit()
    if stale:
        logger.info("expired %d stale commitments", len(stale))
    return len(stale)


def countersign(session: Session, investment_id: int, ctx: AccessContext, full_name: str,
                now: Optional[datetime] = None) -> SafeAgreement:
    investment = session.get(Investment, investment_id)
    if not investment:
        raise NotFoundError("investment not found")
    campaign = get_campaign(session, investment.campaign_id)
    if campaign.founder_id != ctx.user_id:
        raise ForbiddenError("only the campaign founder can countersign")
    agreement = agreement_for(session, investment)
    if not agreement:
        raise NotFoundError("agreement not found")
    if agreement.status != "signed":
        raise InvalidStateError(f"agreement is {agreement.status}")
    if not (full_name or "").strip():
        raise ValidationError("full legal name is required to sign")
    now = now or datetime.utcnow()
    agreement.founder_signature = full_name.strip()
    agreement.countersigned_at = now
    agreement.status = "completed"
    agreement.updated_at = now
    session.add(agreement)
    session.commit()
    session.refresh(agreement)
    return agreement


def list_investments(session: Session, ctx: AccessContext) -> List[Investment]:
    return session.exec(
        select(Investment).where(Investment.investor_id == ctx.user_id)
        .order_by(Investment.created_at.desc(), Investment.id.desc())
    ).all()


def list_pending_commitments(session: Session, ctx: AccessContext) -> List[Investment]:
    return session.exec(
        select(Investment).where(
            Investment.investor_id == ctx.user_id,
            Investment.status == "committed",
            Investment.payment_status != "completed",
        ).order_by(Investment.created_at.desc())
    ).all()


def list_campaign_investments(session: Session, campaign_id: int, ctx: AccessContext) -> List[Investment]:
    campaign = get_campaign(session, campaign_id)
    if not ctx.is_admin and campaign.founder_id != ctx.user_id:
        raise ForbiddenError("campaign belongs to another founder")
    return session.exec(
        select(Investment).where(Investment.campaign_id == campaign.id, Investment.status != "cancelled")
        .order_by(Investment.created_at.desc())
    ).all()


def serialize_investment(investment: Investment, agreement: Optional[SafeAgreement] = None) -> dict:
    data = {
        "id": investment.id,
        "campaign_id": investment.campaign_id,
        "investor_id": investment.investor_id,
        "amount": str(to_money(investment.amount)),
        "platform_fee": str(to_money(investment.platform_fee)),
        "total_amount": str(to_money(investment.total_amount)),
        "status": investment.status,
        "payment_status": investment.payment_status,
        "agreement_signed": investment.agreement_signed,
        "terms_accepted_at": investment.terms_accepted_at,
        "signed_at": investment.signed_at,
        "paid_at": investment.paid_at,
        "workflow_step": workflow_step(investment),
        "created_at": investment.created_at,
    }
    if agreement is not None:
        data["agreement"] = {
            "agreement_id": agreement.agreement_id,
            "status": agreement.status,
            "signed_at": agreement.signed_at,
            "countersigned_at": agreement.countersigned_at,
            "terms": load_json(agreement.terms_json, {}),
        }
    return data


def serialize_attempt(attempt: PaymentAttempt) -> dict:
    return {
        "provider": attempt.provider,
        "reference": attempt.reference,
        "currency": attempt.currency,
        "amount": str(to_money(attempt.amount)),
        "exchange_rate": str(attempt.exchange_rate) if attempt.exchange_rate is not None else None,
        "redirect_url": attempt.redirect_url,
        "status": attempt.status,
    }
