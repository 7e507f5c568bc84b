from fastapi import APIRouter, Depends
from sqlmodel import Session

from ..auth import AccessContext, require_user
from ..db import get_session
from ..errors import NotFoundError
from ..schemas import BusinessProfileCreate, BusinessProfileUpdate, ProfileUpdate
from ..services import campaigns, users

router = APIRouter()


@router.put("/user/profile")
def update_profile(
    payload: ProfileUpdate,
    ctx: AccessContext = Depends(require_user),
    session: Session = Depends(get_session),
):
    return users.serialize_user(users.update_profile(session, ctx.user_id, payload))


@router.get("/business-profile")
def get_business_profile(ctx: AccessContext = Depends(require_user), session: Session = Depends(get_session)):
    profile = users.get_business_profile(session, ctx.user_id)
    if not profile:
        raise NotFoundError("business profile not found")
    return profile


@router.post("/business-profile", status_code=201)
def create_business_profile(
    payload: BusinessProfileCreate,
    ctx: AccessContext = Depends(require_user),
    session: Session = Depends(get_session),
):
    return users.create_business_profile(session, ctx.user_id, payload)


@router.put("/business-profile")
def update_business_profile(
    payload: BusinessProfileUpdate,
    ctx: AccessContext = Depends(require_user),
    session: Session = Depends(get_session),
):
    return users.update_business_profile(session, ctx.user_id, payload)


@router.get("/analytics/founder")
def founder_analytics(ctx: AccessContext = Depends(require_user), session: Session = Depends(get_session)):
    return campaigns.founder_stats(session, ctx.user_id)


@router.get("/analytics/investor")
def investor_analytics(ctx: AccessContext = Depends(require_user), session: Session = Depends(get_session)):
    return campaigns.investor_stats(session, ctx.user_id)
