from datetime import datetime
from decimal import Decimal
from io import BytesIO

import pytest
from pypdf import PdfReader

from fundry.errors import ValidationError
from fundry.models import Campaign, Investment
from fundry.services.safe_agreement import build_terms, generate_agreement, render_agreement, render_agreement_pdf


def _campaign(**overrides):
    fields = dict(
        id=7,
        founder_id=1,
        title="Solar Kiosks",
        short_pitch="solar",
        company_name="Solar Kiosks Ltd",
        funding_goal=Decimal("10000"),
        discount_rate=Decimal("20"),
        valuation_cap=None,
        private_link="abc",
    )
    fields.update(overrides)
    return Campaign(**fields)


def _investment():
    return Investment(id=3, campaign_id=7, investor_id=2, amount=Decimal("100"),
                      platform_fee=Decimal("2.50"), total_amount=Decimal("102.50"))


def test_template_is_filled_from_campaign_and_investment():
    text = generate_agreement(_investment(), _campaign(), "Ada Lovelace")
    assert "Company: Solar Kiosks Ltd" in text
    assert "Investor: Ada Lovelace" in text
    assert "Investment Amount: $100.00" in text
    assert "Discount Rate: 20%" in text
    assert "Valuation Cap: $1,000,000.00" in text
    assert "laws of the State of Delaware" in text


def test_company_name_defaults_from_title():
    terms = build_terms(_campaign(company_name=None), _investment(), "Ada Lovelace", datetime(2024, 3, 1))
    assert terms["company_name"] == "Solar Kiosks Inc."
    assert terms["agreement_date"] == "2024-03-01"


def test_missing_investor_name_is_rejected():
    with pytest.raises(ValidationError) as exc:
        build_terms(_campaign(), _investment(), "  ")
    assert "investor_name" in exc.value.message


def test_rendering_is_deterministic_for_a_snapshot():
    terms = build_terms(_campaign(valuation_cap=Decimal("2500000")), _investment(), "Ada Lovelace", datetime(2024, 3, 1))
    signed_at = datetime(2024, 3, 1, 12, 30)
    first = render_agreement(terms, "SAFE-1A2B3C4D", "Ada Lovelace", signed_at)
    assert first == render_agreement(dict(terms), "SAFE-1A2B3C4D", "Ada Lovelace", signed_at)
    assert "Agreement #SAFE-1A2B3C4D" in first
    assert "Valuation Cap: $2,500,000.00" in first
    assert "Date Signed: 2024-03-01T12:30:00Z" in first


def test_pdf_has_certificate_page():
    text = generate_agreement(_investment(), _campaign(), "Ada Lovelace")
    pdf = render_agreement_pdf(text, {"agreement_id": "SAFE-1A2B3C4D", "signer": "Ada Lovelace"})
    reader = PdfReader(BytesIO(pdf))
    assert len(reader.pages) >= 2
    last = reader.pages[-1].extract_text()
    assert "SAFE Execution Certificate" in last
    assert "Agreement text SHA-256" in last
    assert "SAFE-1A2B3C4D" in last
