
from typing import Optional
from datetime import datetime
from decimal import Decimal
from sqlmodel import SQLModel, Field as ORMField

CAMPAIGN_STATUSES = ("draft", "active", "paused", "closed", "funded", "cancelled")


class User(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    email: str = ORMField(index=True, unique=True)
    password_hash: str
    first_name: str
    last_name: str
    user_type: str = "investor"  # founder|investor|admin
    phone: Optional[str] = None
    country: Optional[str] = None
    state: Optional[str] = None
    bio: Optional[str] = None
    occupation: Optional[str] = None
    annual_income: Optional[str] = None
    investment_experience: Optional[str] = None
    is_email_verified: bool = False
    onboarding_completed: bool = False
    status: str = "active"  # active|suspended|pending
    created_at: datetime = ORMField(default_factory=datetime.utcnow)
    updated_at: datetime = ORMField(default_factory=datetime.utcnow)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class BusinessProfile(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    user_id: int = ORMField(foreign_key="user.id", index=True)
    business_name: str
    business_sector: str
    country_of_incorporation: str
    year_of_formation: Optional[int] = None
    business_address: Optional[str] = None
    created_at: datetime = ORMField(default_factory=datetime.utcnow)
    updated_at: datetime = ORMField(default_factory=datetime.utcnow)


class Campaign(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    founder_id: int = ORMField(foreign_key="user.id", index=True)
    business_profile_id: Optional[int] = ORMField(default=None, foreign_key="businessprofile.id")
    title: str
    short_pitch: str
    full_pitch: str = ""
    company_name: Optional[str] = None
    business_sector: Optional[str] = None
    logo_url: Optional[str] = None
    pitch_deck_url: Optional[str] = None
    funding_goal: Decimal = ORMField(max_digits=12, decimal_places=2)
    minimum_investment: Decimal = ORMField(default=Decimal("25"), max_digits=12, decimal_places=2)
    deadline: Optional[datetime] = None
    status: str = "draft"
    discount_rate: Decimal = ORMField(default=Decimal("20"), max_digits=5, decimal_places=2)
    valuation_cap: Optional[Decimal] = ORMField(default=None, max_digits=15, decimal_places=2)
    private_link: str = ORMField(unique=True, index=True)
    team_structure: str = "solo"  # solo|team
    team_members_json: str = "[]"
    use_of_funds_json: str = "[]"
    milestones_notified: int = 0  # highest progress milestone already announced
    created_at: datetime = ORMField(default_factory=datetime.utcnow)
    updated_at: datetime = ORMField(default_factory=datetime.utcnow)


class Investment(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    campaign_id: int = ORMField(foreign_key="campaign.id", index=True)
    investor_id: int = ORMField(foreign_key="user.id", index=True)
    amount: Decimal = ORMField(max_digits=12, decimal_places=2)
    platform_fee: Decimal = ORMField(max_digits=12, decimal_places=2)
    total_amount: Decimal = ORMField(max_digits=12, decimal_places=2)
    status: str = "pending"
    payment_status: str = "pending"
    terms_accepted_at: Optional[datetime] = None
    accredited_attested: bool = False
    agreement_signed: bool = False
    signed_at: Optional[datetime] = None
    ip_address: Optional[str] = None
    paid_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: datetime = ORMField(default_factory=datetime.utcnow)
    updated_at: datetime = ORMField(default_factory=datetime.utcnow)


class SafeAgreement(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    investment_id: int = ORMField(foreign_key="investment.id", unique=True)
    agreement_id: str = ORMField(unique=True, index=True)
    document_url: Optional[str] = None
    investor_signature: Optional[str] = None
    founder_signature: Optional[str] = None
    signed_at: Optional[datetime] = None
    countersigned_at: Optional[datetime] = None
    terms_json: str = "{}"
    status: str = "draft"
    created_at: datetime = ORMField(default_factory=datetime.utcnow)
    updated_at: datetime = ORMField(default_factory=datetime.utcnow)


class PaymentAttempt(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    investment_id: int = ORMField(foreign_key="investment.id", index=True)
    provider: str  # stripe|budpay
    reference: str = ORMField(unique=True, index=True)
    currency: str = "USD"
    amount: Decimal = ORMField(max_digits=15, decimal_places=2)
    exchange_rate: Optional[Decimal] = ORMField(default=None, max_digits=12, decimal_places=4)
    redirect_url: Optional[str] = None
    status: str = "processing"  # processing|completed|failed
    created_at: datetime = ORMField(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None


class CampaignUpdate(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    campaign_id: int = ORMField(foreign_key="campaign.id", index=True)
    title: str
    content: str
    attachment_urls_json: str = "[]"
    is_public: bool = True
    scheduled_for: Optional[datetime] = None
    created_at: datetime = ORMField(default_factory=datetime.utcnow)
    updated_at: datetime = ORMField(default_factory=datetime.utcnow)


class FileUpload(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    user_id: int = ORMField(foreign_key="user.id", index=True)
    filename: str
    original_name: str
    mime_type: str
    size: int
    url: str
    type: str  # pitch_deck|logo|profile_photo|safe_agreement
    created_at: datetime = ORMField(default_factory=datetime.utcnow)


class Notification(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    user_id: int = ORMField(foreign_key="user.id")
    type: str  # investment|campaign|update|document|security|general
    title: str
    message: str
    is_read: bool = False
    metadata_json: Optional[str] = None
    created_at: datetime = ORMField(default_factory=datetime.utcnow)
