from typing import Optional
from fastapi import Cookie, Depends, Header, HTTPException, Query, status
from passlib.context import CryptContext
from pydantic import BaseModel
from sqlmodel import Session

from .config import ADMIN_ACCESS_TOKEN, SESSION_COOKIE_NAME
from .db import get_session
from .models import User
from .utils import make_token, read_token

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


class AccessContext(BaseModel):
    role: str  # admin|founder|investor
    user_id: Optional[int] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def issue_session_token(user: User) -> str:
    return make_token({"user_id": user.id, "role": user.user_type})


def _context_for(candidate: str, session: Session) -> Optional[AccessContext]:
    if ADMIN_ACCESS_TOKEN and candidate == ADMIN_ACCESS_TOKEN:
        return AccessContext(role="admin")
    data = read_token(candidate)
    if not data:
        return None
    user = session.get(User, data.get("user_id"))
    if not user or user.status == "suspended":
        return None
    return AccessContext(role=user.user_type, user_id=user.id)


def resolve_optional_context(
    x_access_token: Optional[str] = Header(default=None, alias="X-Access-Token"),
    access_token: Optional[str] = Query(default=None, alias="token"),
    session_cookie: Optional[str] = Cookie(default=None, alias=SESSION_COOKIE_NAME),
    session: Session = Depends(get_session),
) -> Optional[AccessContext]:
    candidate = x_access_token or access_token or session_cookie
    if not candidate:
        return None
    # a lapsed cookie on a public page reads as anonymous
    return _context_for(candidate, session)


def resolve_access_context(
    x_access_token: Optional[str] = Header(default=None, alias="X-Access-Token"),
    access_token: Optional[str] = Query(default=None, alias="token"),
    session_cookie: Optional[str] = Cookie(default=None, alias=SESSION_COOKIE_NAME),
    session: Session = Depends(get_session),
) -> AccessContext:
    candidate = x_access_token or access_token or session_cookie
    if not candidate:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    context = _context_for(candidate, session)
    if context is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired session")
    return context


def require_user(context: AccessContext = Depends(resolve_access_context)) -> AccessContext:
    if context.user_id is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="A user session is required")
    return context
