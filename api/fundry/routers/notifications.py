from fastapi import APIRouter, Depends
from sqlmodel import Session

from ..auth import AccessContext, require_user
from ..db import get_session
from ..services import notifications

router = APIRouter()


@router.get("")
def list_notifications(ctx: AccessContext = Depends(require_user), session: Session = Depends(get_session)):
    return [notifications.serialize_notification(n) for n in notifications.list_notifications(session, ctx.user_id)]


@router.get("/unread-count")
def unread_count(ctx: AccessContext = Depends(require_user), session: Session = Depends(get_session)):
    return {"count": notifications.unread_count(session, ctx.user_id)}


@router.post("/read-all")
def mark_all_read(ctx: AccessContext = Depends(require_user), session: Session = Depends(get_session)):
    return {"updated": notifications.mark_all_read(session, ctx.user_id)}


@router.post("/{notification_id}/read")
def mark_read(
    notification_id: int,
    ctx: AccessContext = Depends(require_user),
    session: Session = Depends(get_session),
):
    return notifications.serialize_notification(notifications.mark_read(session, notification_id, ctx.user_id))
