"""Campaign CRUD, status transitions and read-time funding stats."""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from sqlmodel import Session, func, select

from ..auth import AccessContext
from ..config import (
    DEFAULT_DISCOUNT_RATE,
    DEFAULT_MINIMUM_INVESTMENT,
    MAX_FUNDING_GOAL,
)
from ..errors import ForbiddenError, InvalidStateError, NotFoundError, ValidationError
from ..models import CAMPAIGN_STATUSES, BusinessProfile, Campaign, CampaignUpdate, Investment, User
from ..utils import canonical_json, format_usd, load_json, new_private_link, to_money
from . import notifications

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = ("closed", "funded", "cancelled")
VIEWABLE_STATUSES = ("active", "paused", "funded", "closed")
TRANSITIONS = {
    "draft": ("active", "cancelled"),
    "active": ("paused", "closed", "funded", "cancelled"),
    "paused": ("active", "closed", "funded", "cancelled"),
}
TEAM_STRUCTURES = ("solo", "team")
# columns an edit may change but never clear
REQUIRED_FIELDS = (
    "title",
    "short_pitch",
    "full_pitch",
    "funding_goal",
    "minimum_investment",
    "discount_rate",
    "team_structure",
)


def _validate_terms(funding_goal, minimum_investment, discount_rate=None, valuation_cap=None):
    if funding_goal is None or to_money(funding_goal) <= 0:
        raise ValidationError("funding goal must be positive")
    if to_money(funding_goal) > MAX_FUNDING_GOAL:
        raise ValidationError(f"funding goal cannot exceed {format_usd(MAX_FUNDING_GOAL)}")
    if minimum_investment is None or to_money(minimum_investment) <= 0:
        raise ValidationError("minimum investment must be positive")
    if to_money(minimum_investment) > to_money(funding_goal):
        raise ValidationError("minimum investment cannot exceed the funding goal")
    if discount_rate is not None and not (0 <= Decimal(discount_rate) < 100):
        raise ValidationError("discount rate must be between 0 and 100")
    if valuation_cap is not None and to_money(valuation_cap) <= 0:
        raise ValidationError("valuation cap must be positive")


def _require_founder(session: Session, ctx: AccessContext) -> User:
    user = session.get(User, ctx.user_id) if ctx.user_id else None
    if not user or user.user_type != "founder":
        raise ForbiddenError("only founders can manage campaigns")
    return user


def _require_owner(campaign: Campaign, ctx: AccessContext):
    if ctx.is_admin:
        return
    if campaign.founder_id != ctx.user_id:
        raise ForbiddenError("campaign belongs to another founder")


def create_campaign(session: Session, ctx: AccessContext, fields) -> Campaign:
    founder = _require_founder(session, ctx)
    if not (fields.title or "").strip():
        raise ValidationError("title is required")
    if not (fields.short_pitch or "").strip():
        raise ValidationError("pitch is required")
    minimum = fields.minimum_investment if fields.minimum_investment is not None else DEFAULT_MINIMUM_INVESTMENT
    discount = fields.discount_rate if fields.discount_rate is not None else DEFAULT_DISCOUNT_RATE
    _validate_terms(fields.funding_goal, minimum, discount, fields.valuation_cap)
    if fields.business_profile_id is not None:
        profile = session.get(BusinessProfile, fields.business_profile_id)
        if not profile or profile.user_id != founder.id:
            raise ValidationError("business profile not found for this founder")

    private_link = new_private_link()
    while session.exec(select(Campaign.id).where(Campaign.private_link == private_link)).first():
        private_link = new_private_link()

    campaign = Campaign(
        founder_id=founder.id,
        business_profile_id=fields.business_profile_id,
        title=fields.title.strip(),
        short_pitch=fields.short_pitch.strip(),
        full_pitch=fields.full_pitch or "",
        company_name=fields.company_name,
        business_sector=fields.business_sector,
        logo_url=fields.logo_url,
        pitch_deck_url=fields.pitch_deck_url,
        funding_goal=to_money(fields.funding_goal),
        minimum_investment=to_money(minimum),
        deadline=fields.deadline,
        discount_rate=Decimal(discount),
        valuation_cap=to_money(fields.valuation_cap) if fields.valuation_cap is not None else None,
        private_link=private_link,
        team_structure=fields.team_structure or "solo",
        team_members_json=canonical_json(fields.team_members or []),
        use_of_funds_json=canonical_json(fields.use_of_funds or []),
        status="draft",
    )
    session.add(campaign)
    session.commit()
    session.refresh(campaign)
    logger.info("campaign %s created by founder %s", campaign.id, founder.id)
    return campaign


def update_campaign(session: Session, campaign_id: int, ctx: AccessContext, fields) -> Campaign:
    campaign = get_campaign(session, campaign_id)
    _require_owner(campaign, ctx)
    if campaign.status in TERMINAL_STATUSES and not ctx.is_admin:
        raise InvalidStateError(f"campaign is {campaign.status} and can no longer be edited")
    changes = fields.model_dump(exclude_unset=True)
    team_members = changes.pop("team_members", None)
    use_of_funds = changes.pop("use_of_funds", None)
    for key in REQUIRED_FIELDS:
        if key in changes and changes[key] is None:
            raise ValidationError(f"{key.replace('_', ' ')} cannot be empty")
    for key in ("title", "short_pitch"):
        if key in changes:
            changes[key] = changes[key].strip()
            if not changes[key]:
                raise ValidationError(f"{key.replace('_', ' ')} cannot be blank")
    if "team_structure" in changes and changes["team_structure"] not in TEAM_STRUCTURES:
        raise ValidationError("team structure must be solo or team")
    _validate_terms(
        changes.get("funding_goal", campaign.funding_goal),
        changes.get("minimum_investment", campaign.minimum_investment),
        changes.get("discount_rate", campaign.discount_rate),
        changes.get("valuation_cap", campaign.valuation_cap),
    )
    for key, value in changes.items():
        if key in ("funding_goal", "minimum_investment", "valuation_cap") and value is not None:
            value = to_money(value)
        setattr(campaign, key, value)
    if team_members is not None:
        campaign.team_members_json = canonical_json(team_members)
    if use_of_funds is not None:
        campaign.use_of_funds_json = canonical_json(use_of_funds)
    campaign.updated_at = datetime.utcnow()
    session.add(campaign)
    session.commit()
    session.refresh(campaign)
    return campaign


def get_campaign(session: Session, campaign_id: int) -> Campaign:
    campaign = session.get(Campaign, campaign_id)
    if not campaign:
        raise NotFoundError("campaign not found")
    return campaign


def get_campaign_by_private_link(session: Session, private_link: str) -> Campaign:
    campaign = session.exec(select(Campaign).where(Campaign.private_link == private_link)).first()
    if not campaign or campaign.status not in VIEWABLE_STATUSES:
        raise NotFoundError("campaign not found")
    return campaign


def list_campaigns(
    session: Session,
    status: Optional[str] = "active",
    sector: Optional[str] = None,
    founder_id: Optional[int] = None,
) -> List[Campaign]:
    query = select(Campaign)
    if status:
        query = query.where(Campaign.status == status)
    if sector:
        query = query.where(Campaign.business_sector == sector)
    if founder_id is not None:
        query = query.where(Campaign.founder_id == founder_id)
    return session.exec(query.order_by(Campaign.created_at.desc(), Campaign.id.desc())).all()


def update_campaign_status(session: Session, campaign_id: int, new_status: str, ctx: AccessContext) -> Campaign:
    campaign = get_campaign(session, campaign_id)
    _require_owner(campaign, ctx)
    if new_status not in CAMPAIGN_STATUSES:
        raise ValidationError(f"unknown campaign status {new_status}")
    if new_status == campaign.status:
        return campaign
    if new_status not in TRANSITIONS.get(campaign.status, ()) and not ctx.is_admin:
        raise InvalidStateError(f"cannot move campaign from {campaign.status} to {new_status}")
    previous = campaign.status
    campaign.status = new_status
    campaign.updated_at = datetime.utcnow()
    session.add(campaign)
    if new_status == "active" and previous == "draft":
        notifications.notify_campaign_launched(session, campaign)
    session.commit()
    session.refresh(campaign)
    logger.info("campaign %s status %s -> %s", campaign.id, previous, new_status)
    return campaign


def campaign_stats(session: Session, campaigns: Iterable[Campaign]) -> Dict[int, dict]:
    """Funding totals from completed payments only, one query for the batch."""
    campaigns = list(campaigns)
    ids = [c.id for c in campaigns]
    totals = {}
    if ids:
        rows = session.exec(
            select(
                Investment.campaign_id,
                func.coalesce(func.sum(Investment.amount), 0),
                func.count(func.distinct(Investment.investor_id)),
            )
            .where(Investment.campaign_id.in_(ids), Investment.payment_status == "completed")
            .group_by(Investment.campaign_id)
        ).all()
        totals = {cid: (to_money(total), count) for cid, total, count in rows}
    stats = {}
    for c in campaigns:
        total_raised, investor_count = totals.get(c.id, (Decimal("0.00"), 0))
        progress = (total_raised / c.funding_goal * 100) if c.funding_goal else Decimal("0")
        progress = progress.quantize(Decimal("0.01"))
        stats[c.id] = {
            "total_raised": total_raised,
            "investor_count": investor_count,
            "progress_percent": progress,
            "progress_display": min(progress, Decimal("100.00")),
            "goal_reached": total_raised >= c.funding_goal,
        }
    return stats


def stats_for(session: Session, campaign: Campaign) -> dict:
    return campaign_stats(session, [campaign])[campaign.id]


def serialize_campaign(campaign: Campaign, stats: Optional[dict] = None, include_private: bool = False) -> dict:
    data = {
        "id": campaign.id,
        "founder_id": campaign.founder_id,
        "business_profile_id": campaign.business_profile_id,
        "title": campaign.title,
        "short_pitch": campaign.short_pitch,
        "full_pitch": campaign.full_pitch,
        "company_name": campaign.company_name,
        "business_sector": campaign.business_sector,
        "logo_url": campaign.logo_url,
        "pitch_deck_url": campaign.pitch_deck_url,
        "funding_goal": str(to_money(campaign.funding_goal)),
        "minimum_investment": str(to_money(campaign.minimum_investment)),
        "deadline": campaign.deadline,
        "status": campaign.status,
        "discount_rate": str(to_money(campaign.discount_rate)),
        "valuation_cap": str(to_money(campaign.valuation_cap)) if campaign.valuation_cap is not None else None,
        "team_structure": campaign.team_structure,
        "team_members": load_json(campaign.team_members_json, []),
        "use_of_funds": load_json(campaign.use_of_funds_json, []),
        "created_at": campaign.created_at,
        "updated_at": campaign.updated_at,
    }
    if include_private:
        data["private_link"] = campaign.private_link
    if stats is not None:
        data.update({
            "total_raised": str(stats["total_raised"]),
            "investor_count": stats["investor_count"],
            "progress_percent": str(stats["progress_percent"]),
            "progress_display": str(stats["progress_display"]),
            "goal_reached": stats["goal_reached"],
        })
    return data


def close_expired_campaigns(session: Session, now: Optional[datetime] = None) -> int:
    now = now or datetime.utcnow()
    expired = session.exec(
        select(Campaign).where(
            Campaign.status.in_(("active", "paused")),
            Campaign.deadline != None,  # noqa: E711
            Campaign.deadline < now,
        )
    ).all()
    for campaign in expired:
        campaign.status = "closed"
        campaign.updated_at = now
        session.add(campaign)
        notifications.notify_campaign_closed(session, campaign)
    session.commit()
    if expired:
        logger.info("closed %d campaigns past their deadline", len(expired))
    return len(expired)


# ---------- updates ----------

def completed_investor_ids(session: Session, campaign_id: int) -> List[int]:
    return session.exec(
        select(Investment.investor_id)
        .where(Investment.campaign_id == campaign_id, Investment.payment_status == "completed")
        .distinct()
    ).all()


def _announced(post: CampaignUpdate, now: datetime) -> bool:
    return post.is_public and (post.scheduled_for is None or post.scheduled_for <= now)


def create_campaign_update(session: Session, campaign_id: int, ctx: AccessContext, fields) -> CampaignUpdate:
    campaign = get_campaign(session, campaign_id)
    _require_owner(campaign, ctx)
    if not fields.title.strip() or not fields.content.strip():
        raise ValidationError("update title and content are required")
    post = CampaignUpdate(
        campaign_id=campaign.id,
        title=fields.title.strip(),
        content=fields.content,
        attachment_urls_json=canonical_json(fields.attachment_urls or []),
        is_public=fields.is_public,
        scheduled_for=fields.scheduled_for,
    )
    session.add(post)
    session.flush()
    notified = 0
    # private and scheduled posts are not announced
    if _announced(post, datetime.utcnow()):
        notified = notifications.notify_campaign_update(session, campaign, post, completed_investor_ids(session, campaign.id))
    session.commit()
    session.refresh(post)
    logger.info("campaign %s update %s published to %d investors", campaign.id, post.id, notified)
    return post


def update_campaign_update(session: Session, campaign_id: int, update_id: int, ctx: AccessContext,
                           fields) -> CampaignUpdate:
    campaign = get_campaign(session, campaign_id)
    _require_owner(campaign, ctx)
    post = session.get(CampaignUpdate, update_id)
    if not post or post.campaign_id != campaign.id:
        raise NotFoundError("campaign update not found")
    now = datetime.utcnow()
    was_announced = _announced(post, now)
    changes = fields.model_dump(exclude_unset=True)
    for key in ("title", "content"):
        if key in changes:
            if not (changes[key] or "").strip():
                raise ValidationError("update title and content are required")
            post_value = changes[key].strip() if key == "title" else changes[key]
            setattr(post, key, post_value)
    if "attachment_urls" in changes:
        post.attachment_urls_json = canonical_json(changes["attachment_urls"] or [])
    if "is_public" in changes:
        if changes["is_public"] is None:
            raise ValidationError("is public cannot be empty")
        post.is_public = changes["is_public"]
    if "scheduled_for" in changes:
        post.scheduled_for = changes["scheduled_for"]
    post.updated_at = now
    session.add(post)
    session.flush()
    # a post that only now becomes visible is announced once
    if not was_announced and _announced(post, now):
        notifications.notify_campaign_update(session, campaign, post, completed_investor_ids(session, campaign.id))
    session.commit()
    session.refresh(post)
    logger.info("campaign %s update %s edited", campaign.id, post.id)
    return post


def list_campaign_updates(session: Session, campaign_id: int, ctx: Optional[AccessContext],
                          now: Optional[datetime] = None) -> List[CampaignUpdate]:
    campaign = get_campaign(session, campaign_id)
    query = select(CampaignUpdate).where(CampaignUpdate.campaign_id == campaign.id)
    is_owner = ctx is not None and (ctx.is_admin or ctx.user_id == campaign.founder_id)
    if not is_owner:
        now = now or datetime.utcnow()
        query = query.where(
            CampaignUpdate.is_public == True,  # noqa: E712
            (CampaignUpdate.scheduled_for == None) | (CampaignUpdate.scheduled_for <= now),  # noqa: E711
        )
    return session.exec(query.order_by(CampaignUpdate.created_at.desc(), CampaignUpdate.id.desc())).all()


def serialize_update(post: CampaignUpdate) -> dict:
    return {
        "id": post.id,
        "campaign_id": post.campaign_id,
        "title": post.title,
        "content": post.content,
        "attachment_urls": load_json(post.attachment_urls_json, []),
        "is_public": post.is_public,
        "scheduled_for": post.scheduled_for,
        "created_at": post.created_at,
        "updated_at": post.updated_at,
    }


# ---------- dashboards ----------

def founder_stats(session: Session, founder_id: int) -> dict:
    campaigns = list_campaigns(session, status=None, founder_id=founder_id)
    stats = campaign_stats(session, campaigns)
    ids = [c.id for c in campaigns]
    investors = 0
    if ids:
        investors = session.exec(
            select(func.count(func.distinct(Investment.investor_id))).where(
                Investment.campaign_id.in_(ids), Investment.payment_status == "completed"
            )
        ).one()
    total = sum((s["total_raised"] for s in stats.values()), Decimal("0.00"))
    return {
        "total_raised": str(to_money(total)),
        "active_campaigns": sum(1 for c in campaigns if c.status == "active"),
        "total_campaigns": len(campaigns),
        "total_investors": investors,
    }


def investor_stats(session: Session, investor_id: int) -> dict:
    investments = session.exec(select(Investment).where(Investment.investor_id == investor_id)).all()
    live = [i for i in investments if i.status != "cancelled"]
    committed = sum((to_money(i.amount) for i in live if i.status in ("committed", "paid", "completed")), Decimal("0.00"))
    return {
        "total_committed": str(to_money(committed)),
        "total_paid": str(to_money(sum((to_money(i.amount) for i in live if i.payment_status == "completed"),
                                       Decimal("0.00")))),
        "active_investments": sum(1 for i in live if i.status == "completed"),
        "pending_commitments": sum(1 for i in live if i.status == "committed" and i.payment_status != "completed"),
    }
