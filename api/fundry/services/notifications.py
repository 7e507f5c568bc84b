"""Per-user notification rows.

Notifications are plain inserts read by polling; there is no push channel.
The ``notify_*`` helpers build the messages for platform events and never
commit on their own so they join the caller's transaction.
"""

import logging
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy import update
from sqlmodel import Session, func, select

from ..errors import ForbiddenError, NotFoundError
from ..models import Campaign, CampaignUpdate, Investment, Notification
from ..utils import canonical_json, format_usd, load_json

logger = logging.getLogger(__name__)

MILESTONES = (25, 50, 75, 100)


def notify(
    session: Session,
    user_id: int,
    type_: str,
    title: str,
    message: str,
    metadata: Optional[dict] = None,
    commit: bool = True,
) -> Notification:
    notification = Notification(
        user_id=user_id,
        type=type_,
        title=title,
        message=message,
        is_read=False,
        metadata_json=canonical_json(metadata) if metadata is not None else None,
    )
    session.add(notification)
    logger.debug("notification type=%s user=%s", type_, user_id)
    if commit:
        session.commit()
        session.refresh(notification)
    else:
        session.flush()
    return notification


def list_notifications(session: Session, user_id: int) -> List[Notification]:
    return session.exec(
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
    ).all()


def unread_count(session: Session, user_id: int) -> int:
    return session.exec(
        select(func.count(Notification.id)).where(
            Notification.user_id == user_id, Notification.is_read == False  # noqa: E712
        )
    ).one()


def mark_read(session: Session, notification_id: int, user_id: int) -> Notification:
    notification = session.get(Notification, notification_id)
    if not notification:
        raise NotFoundError("notification not found")
    if notification.user_id != user_id:
        raise ForbiddenError("notification belongs to another user")
    if not notification.is_read:
        notification.is_read = True
        session.add(notification)
        session.commit()
        session.refresh(notification)
    return notification


def mark_all_read(session: Session, user_id: int) -> int:
    result = session.exec(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.is_read == False)  # noqa: E712
        .values(is_read=True)
    )
    session.commit()
    return result.rowcount or 0


def serialize_notification(n: Notification) -> dict:
    return {
        "id": n.id,
        "type": n.type,
        "title": n.title,
        "message": n.message,
        "is_read": n.is_read,
        "metadata": load_json(n.metadata_json),
        "created_at": n.created_at,
    }


# ---------- platform events ----------

def notify_investment_confirmed(session: Session, investment: Investment, campaign: Campaign):
    notify(
        session,
        investment.investor_id,
        "investment",
        "Investment Confirmed",
        f"Your {format_usd(investment.amount)} investment in {campaign.title} is confirmed. "
        "Thank you for backing this venture!",
        {"investment_id": investment.id, "campaign_id": campaign.id, "amount": investment.amount},
        commit=False,
    )


def notify_document_ready(session: Session, investment: Investment, agreement_id: str):
    notify(
        session,
        investment.investor_id,
        "document",
        "Investment Document Ready",
        "Your SAFE Agreement is ready for download. You can access it from your Documents section.",
        {"investment_id": investment.id, "agreement_id": agreement_id, "document_type": "safe_agreement"},
        commit=False,
    )


def notify_founder_new_investment(session: Session, investment: Investment, campaign: Campaign):
    notify(
        session,
        campaign.founder_id,
        "investment",
        "New Investment Received",
        f"{campaign.title} received a new {format_usd(investment.amount)} investment.",
        {"investment_id": investment.id, "campaign_id": campaign.id, "amount": investment.amount},
        commit=False,
    )


def notify_campaign_launched(session: Session, campaign: Campaign):
    notify(
        session,
        campaign.founder_id,
        "campaign",
        "Campaign Successfully Launched",
        f'Your campaign "{campaign.title}" is now live and accepting investments. '
        f"Funding goal: {format_usd(campaign.funding_goal)}",
        {"campaign_id": campaign.id, "funding_goal": campaign.funding_goal, "launched": True},
        commit=False,
    )


def notify_campaign_milestone(session: Session, campaign: Campaign, total_raised: Decimal, progress: Decimal):
    """Announce the highest newly crossed milestone, once per milestone."""
    reached = [m for m in MILESTONES if progress >= m and m > campaign.milestones_notified]
    if not reached:
        return None
    milestone = max(reached)
    pct = f"{progress:.0f}%"
    if milestone >= 100:
        message = f"Campaign fully funded! {campaign.title} has reached {format_usd(total_raised)} ({pct} of goal)."
    elif milestone >= 75:
        message = f"Almost there! {campaign.title} is at {pct} funded with {format_usd(total_raised)} raised."
    elif milestone >= 50:
        message = f"Halfway milestone! {campaign.title} has reached {pct} of funding goal."
    else:
        message = f"Great progress! {campaign.title} is now {pct} funded."
    campaign.milestones_notified = milestone
    session.add(campaign)
    return notify(
        session,
        campaign.founder_id,
        "campaign",
        "Campaign Milestone Reached",
        message,
        {
            "campaign_id": campaign.id,
            "milestone": milestone,
            "total_raised": total_raised,
            "funding_goal": campaign.funding_goal,
        },
        commit=False,
    )


def notify_campaign_update(session: Session, campaign: Campaign, post: CampaignUpdate, investor_ids: Iterable[int]):
    count = 0
    for investor_id in investor_ids:
        notify(
            session,
            investor_id,
            "update",
            f"New update from {campaign.title}",
            post.title,
            {"campaign_id": campaign.id, "update_id": post.id},
            commit=False,
        )
        count += 1
    return count


def notify_commitment_expired(session: Session, investment: Investment, campaign: Campaign):
    notify(
        session,
        investment.investor_id,
        "investment",
        "Pending Commitment Expired",
        f"Your unpaid {format_usd(investment.amount)} commitment to {campaign.title} expired and was cancelled.",
        {"investment_id": investment.id, "campaign_id": campaign.id},
        commit=False,
    )


def notify_campaign_closed(session: Session, campaign: Campaign):
    notify(
        session,
        campaign.founder_id,
        "campaign",
        "Campaign Closed",
        f'Your campaign "{campaign.title}" passed its deadline and is now closed.',
        {"campaign_id": campaign.id},
        commit=False,
    )
