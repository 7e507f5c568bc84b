from typing import Optional
from fastapi import APIRouter, Depends
from sqlmodel import Session

from ..auth import AccessContext, require_user, resolve_optional_context
from ..db import get_session
from ..errors import NotFoundError
from ..schemas import CampaignCreate, CampaignEdit, CampaignStatusChange, CampaignUpdateEdit, CampaignUpdatePost
from ..services import campaigns, investments

router = APIRouter()


def _with_stats(session: Session, items, include_private: bool = False):
    stats = campaigns.campaign_stats(session, items)
    return [campaigns.serialize_campaign(c, stats[c.id], include_private) for c in items]


def _is_owner(ctx: Optional[AccessContext], campaign) -> bool:
    return ctx is not None and (ctx.is_admin or ctx.user_id == campaign.founder_id)


@router.post("", status_code=201)
def create_campaign(
    payload: CampaignCreate,
    ctx: AccessContext = Depends(require_user),
    session: Session = Depends(get_session),
):
    campaign = campaigns.create_campaign(session, ctx, payload)
    return campaigns.serialize_campaign(campaign, campaigns.stats_for(session, campaign), include_private=True)


@router.get("")
def list_campaigns(
    status: str = "active",
    sector: Optional[str] = None,
    founder_id: Optional[int] = None,
    session: Session = Depends(get_session),
):
    # drafts and cancelled campaigns are never listed publicly
    if status not in campaigns.VIEWABLE_STATUSES:
        return []
    return _with_stats(session, campaigns.list_campaigns(session, status=status, sector=sector, founder_id=founder_id))


@router.get("/mine")
def my_campaigns(ctx: AccessContext = Depends(require_user), session: Session = Depends(get_session)):
    return _with_stats(session, campaigns.list_campaigns(session, status=None, founder_id=ctx.user_id),
                       include_private=True)


@router.get("/link/{private_link}")
def get_by_private_link(private_link: str, session: Session = Depends(get_session)):
    campaign = campaigns.get_campaign_by_private_link(session, private_link)
    return campaigns.serialize_campaign(campaign, campaigns.stats_for(session, campaign))


@router.get("/{campaign_id}")
def get_campaign(
    campaign_id: int,
    ctx: Optional[AccessContext] = Depends(resolve_optional_context),
    session: Session = Depends(get_session),
):
    campaign = campaigns.get_campaign(session, campaign_id)
    owner = _is_owner(ctx, campaign)
    if campaign.status not in campaigns.VIEWABLE_STATUSES and not owner:
        raise NotFoundError("campaign not found")
    return campaigns.serialize_campaign(campaign, campaigns.stats_for(session, campaign), include_private=owner)


@router.put("/{campaign_id}")
def edit_campaign(
    campaign_id: int,
    payload: CampaignEdit,
    ctx: AccessContext = Depends(require_user),
    session: Session = Depends(get_session),
):
    campaign = campaigns.update_campaign(session, campaign_id, ctx, payload)
    return campaigns.serialize_campaign(campaign, campaigns.stats_for(session, campaign), include_private=True)


@router.post("/{campaign_id}/status")
def change_status(
    campaign_id: int,
    payload: CampaignStatusChange,
    ctx: AccessContext = Depends(require_user),
    session: Session = Depends(get_session),
):
    campaign = campaigns.update_campaign_status(session, campaign_id, payload.status, ctx)
    return campaigns.serialize_campaign(campaign, campaigns.stats_for(session, campaign), include_private=True)


@router.get("/{campaign_id}/updates")
def list_updates(
    campaign_id: int,
    ctx: Optional[AccessContext] = Depends(resolve_optional_context),
    session: Session = Depends(get_session),
):
    return [campaigns.serialize_update(u) for u in campaigns.list_campaign_updates(session, campaign_id, ctx)]


@router.post("/{campaign_id}/updates", status_code=201)
def post_update(
    campaign_id: int,
    payload: CampaignUpdatePost,
    ctx: AccessContext = Depends(require_user),
    session: Session = Depends(get_session),
):
    return campaigns.serialize_update(campaigns.create_campaign_update(session, campaign_id, ctx, payload))


@router.put("/{campaign_id}/updates/{update_id}")
def edit_update(
    campaign_id: int,
    update_id: int,
    payload: CampaignUpdateEdit,
    ctx: AccessContext = Depends(require_user),
    session: Session = Depends(get_session),
):
    return campaigns.serialize_update(campaigns.update_campaign_update(session, campaign_id, update_id, ctx, payload))


@router.get("/{campaign_id}/investments")
def campaign_investments(
    campaign_id: int,
    ctx: AccessContext = Depends(require_user),
    session: Session = Depends(get_session),
):
    return [
        investments.serialize_investment(i, investments.agreement_for(session, i))
        for i in investments.list_campaign_investments(session, campaign_id, ctx)
    ]
