
import logging
from sqlmodel import SQLModel, create_engine, Session
from sqlalchemy import text, inspect
from .config import DATABASE_URL

logger = logging.getLogger(__name__)

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, echo=False, pool_pre_ping=True, connect_args=_connect_args)

def init_db():
    from .models import (  # noqa: F401
        User, BusinessProfile, Campaign, Investment, SafeAgreement,
        PaymentAttempt, CampaignUpdate, FileUpload, Notification,
    )
    SQLModel.metadata.create_all(engine)
    _ensure_notification_inbox_index()

def get_session():
    with Session(engine) as session:
        yield session

def _ensure_notification_inbox_index():
    # Inbox queries filter by user and sort newest-first.
    inspector = inspect(engine)
    try:
        indexes = inspector.get_indexes("notification")
    except Exception:
        return
    if any(idx.get("name") == "ix_notification_inbox" for idx in indexes):
        return
    with engine.begin() as conn:
        conn.execute(text("CREATE INDEX IF NOT EXISTS ix_notification_inbox ON notification(user_id, created_at)"))
    logger.info("created index ix_notification_inbox")
