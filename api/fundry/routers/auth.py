from fastapi import APIRouter, Depends, Response
from sqlmodel import Session

from ..auth import AccessContext, issue_session_token, require_user
from ..config import SESSION_COOKIE_NAME, SESSION_MAX_AGE_SECONDS
from ..db import get_session
from ..schemas import LoginRequest, RegisterRequest
from ..services import users

router = APIRouter()


def _session_response(response: Response, user):
    token = issue_session_token(user)
    response.set_cookie(
        SESSION_COOKIE_NAME,
        token,
        max_age=SESSION_MAX_AGE_SECONDS,
        httponly=True,
        samesite="lax",
    )
    return {"token": token, "user": users.serialize_user(user)}


@router.post("/auth/register", status_code=201)
def register(payload: RegisterRequest, response: Response, session: Session = Depends(get_session)):
    user = users.register(session, payload)
    return _session_response(response, user)


@router.post("/auth/login")
def login(payload: LoginRequest, response: Response, session: Session = Depends(get_session)):
    user = users.authenticate(session, payload.email, payload.password)
    return _session_response(response, user)


@router.post("/auth/logout")
def logout(response: Response):
    response.delete_cookie(SESSION_COOKIE_NAME)
    return {"ok": True}


@router.get("/auth/me")
def me(ctx: AccessContext = Depends(require_user), session: Session = Depends(get_session)):
    return users.serialize_user(users.get_user(session, ctx.user_id))


@router.post("/admin/login")
def admin_login(payload: LoginRequest, response: Response, session: Session = Depends(get_session)):
    user = users.authenticate(session, payload.email, payload.password, admin=True)
    return _session_response(response, user)
