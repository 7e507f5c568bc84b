import logging
from datetime import datetime
from typing import Optional

from sqlmodel import Session, select

from ..auth import hash_password, verify_password
from ..errors import AuthenticationError, ForbiddenError, NotFoundError, ValidationError
from ..models import BusinessProfile, User

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8
SELF_SERVICE_TYPES = ("founder", "investor")


def _normalize_email(email: str) -> str:
    email = (email or "").strip().lower()
    if "@" not in email or email.startswith("@") or email.endswith("@"):
        raise ValidationError("a valid email address is required")
    return email


def register(session: Session, payload) -> User:
    email = _normalize_email(payload.email)
    if payload.user_type not in SELF_SERVICE_TYPES:
        raise ValidationError("user type must be founder or investor")
    if len(payload.password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"password must be at least {MIN_PASSWORD_LENGTH} characters")
    if not payload.first_name.strip() or not payload.last_name.strip():
        raise ValidationError("first and last name are required")
    if session.exec(select(User).where(User.email == email)).first():
        raise ValidationError("an account with this email already exists")
    user = User(
        email=email,
        password_hash=hash_password(payload.password),
        first_name=payload.first_name.strip(),
        last_name=payload.last_name.strip(),
        user_type=payload.user_type,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info("registered %s user %s", user.user_type, user.id)
    return user


def authenticate(session: Session, email: str, password: str, admin: bool = False) -> User:
    user = session.exec(select(User).where(User.email == (email or "").strip().lower())).first()
    if not user or not verify_password(password or "", user.password_hash):
        raise AuthenticationError("invalid email or password")
    if user.status == "suspended":
        raise ForbiddenError("account suspended")
    if admin and user.user_type != "admin":
        raise ForbiddenError("admin access required")
    return user


def get_user(session: Session, user_id: Optional[int]) -> User:
    user = session.get(User, user_id) if user_id else None
    if not user:
        raise NotFoundError("user not found")
    return user


def update_profile(session: Session, user_id: int, payload) -> User:
    user = get_user(session, user_id)
    for key, value in payload.model_dump(exclude_unset=True).items():
        if key in ("first_name", "last_name") and not (value or "").strip():
            raise ValidationError(f"{key.replace('_', ' ')} cannot be empty")
        setattr(user, key, value)
    user.updated_at = datetime.utcnow()
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def serialize_user(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "user_type": user.user_type,
        "phone": user.phone,
        "country": user.country,
        "state": user.state,
        "bio": user.bio,
        "occupation": user.occupation,
        "annual_income": user.annual_income,
        "investment_experience": user.investment_experience,
        "is_email_verified": user.is_email_verified,
        "onboarding_completed": user.onboarding_completed,
        "status": user.status,
        "created_at": user.created_at,
    }


# ---------- business profile ----------

def get_business_profile(session: Session, user_id: int) -> Optional[BusinessProfile]:
    return session.exec(select(BusinessProfile).where(BusinessProfile.user_id == user_id)).first()


def create_business_profile(session: Session, user_id: int, payload) -> BusinessProfile:
    user = get_user(session, user_id)
    if user.user_type != "founder":
        raise ForbiddenError("only founders have a business profile")
    if get_business_profile(session, user.id):
        raise ValidationError("business profile already exists")
    profile = BusinessProfile(user_id=user.id, **payload.model_dump())
    session.add(profile)
    session.commit()
    session.refresh(profile)
    return profile


def update_business_profile(session: Session, user_id: int, payload) -> BusinessProfile:
    profile = get_business_profile(session, user_id)
    if not profile:
        raise NotFoundError("business profile not found")
    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(profile, key, value)
    profile.updated_at = datetime.utcnow()
    session.add(profile)
    session.commit()
    session.refresh(profile)
    return profile
