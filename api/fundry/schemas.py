
from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel
from typing import List, Optional

class RegisterRequest(BaseModel):
    email: str
    password: str
    first_name: str
    last_name: str
    user_type: str = "investor"

class LoginRequest(BaseModel):
    email: str
    password: str

class ProfileUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    country: Optional[str] = None
    state: Optional[str] = None
    bio: Optional[str] = None
    occupation: Optional[str] = None
    annual_income: Optional[str] = None
    investment_experience: Optional[str] = None
    onboarding_completed: Optional[bool] = None

class BusinessProfileCreate(BaseModel):
    business_name: str
    business_sector: str
    country_of_incorporation: str
    year_of_formation: Optional[int] = None
    business_address: Optional[str] = None

class BusinessProfileUpdate(BaseModel):
    business_name: Optional[str] = None
    business_sector: Optional[str] = None
    country_of_incorporation: Optional[str] = None
    year_of_formation: Optional[int] = None
    business_address: Optional[str] = None

class CampaignCreate(BaseModel):
    title: str
    short_pitch: str
    full_pitch: str = ""
    funding_goal: Decimal
    minimum_investment: Optional[Decimal] = None
    deadline: Optional[datetime] = None
    discount_rate: Optional[Decimal] = None
    valuation_cap: Optional[Decimal] = None
    company_name: Optional[str] = None
    business_sector: Optional[str] = None
    business_profile_id: Optional[int] = None
    logo_url: Optional[str] = None
    pitch_deck_url: Optional[str] = None
    team_structure: str = "solo"
    team_members: List[dict] = []
    use_of_funds: List[dict] = []

class CampaignEdit(BaseModel):
    title: Optional[str] = None
    short_pitch: Optional[str] = None
    full_pitch: Optional[str] = None
    funding_goal: Optional[Decimal] = None
    minimum_investment: Optional[Decimal] = None
    deadline: Optional[datetime] = None
    discount_rate: Optional[Decimal] = None
    valuation_cap: Optional[Decimal] = None
    company_name: Optional[str] = None
    business_sector: Optional[str] = None
    logo_url: Optional[str] = None
    pitch_deck_url: Optional[str] = None
    team_structure: Optional[str] = None
    team_members: Optional[List[dict]] = None
    use_of_funds: Optional[List[dict]] = None

class CampaignStatusChange(BaseModel):
    status: str

class CampaignUpdatePost(BaseModel):
    title: str
    content: str
    attachment_urls: List[str] = []
    is_public: bool = True
    scheduled_for: Optional[datetime] = None

class CampaignUpdateEdit(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    attachment_urls: Optional[List[str]] = None
    is_public: Optional[bool] = None
    scheduled_for: Optional[datetime] = None

class PledgeRequest(BaseModel):
    campaign_id: int
    amount: Decimal

class TermsAcceptance(BaseModel):
    agree_to_terms: bool = False
    accredited_investor: bool = False

class SignatureSubmit(BaseModel):
    full_name: str

class CommitRequest(BaseModel):
    campaign_id: int
    amount: Decimal
    agree_to_terms: bool = False
    accredited_investor: bool = False
    full_name: str

class PaymentStart(BaseModel):
    currency: str = "USD"

class PaymentVerify(BaseModel):
    reference: str

class Countersign(BaseModel):
    full_name: str
