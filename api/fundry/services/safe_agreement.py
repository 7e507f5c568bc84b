# SAFE document generation: fixed template filled from a terms snapshot,
# rendered to PDF with reportlab, audit page appended with pypdf.

from datetime import datetime
from io import BytesIO
from typing import Optional

from pypdf import PdfReader, PdfWriter
from reportlab.lib.pagesizes import letter
from reportlab.lib.utils import simpleSplit
from reportlab.pdfgen import canvas

from ..config import DEFAULT_VALUATION_CAP
from ..errors import ValidationError
from ..models import Campaign, Investment
from ..utils import format_percent, format_usd, sha256_bytes, to_money

GOVERNING_LAW = "the State of Delaware"

REQUIRED_TERMS = (
    "company_name",
    "investor_name",
    "amount",
    "agreement_date",
    "discount_rate",
    "valuation_cap",
)

SAFE_TEMPLATE = """SIMPLE AGREEMENT FOR FUTURE EQUITY (SAFE)
Fundry Platform - Agreement #{agreement_id}

AGREEMENT DETAILS
Company: {company_name}
Investor: {investor_name}
Investment Amount: {amount}
Agreement Date: {agreement_date}
Discount Rate: {discount_rate}
Valuation Cap: {valuation_cap}

1. INVESTMENT
The Investor agrees to invest the Investment Amount in the Company upon the execution of this Agreement.

2. CONVERSION EVENTS
This SAFE will automatically convert into shares of the Company's preferred stock upon the occurrence of an Equity Financing or Liquidity Event, subject to the terms and conditions set forth herein.

3. DISCOUNT RATE
If this SAFE converts in connection with an Equity Financing, the Investor will receive a {discount_rate} discount on the price per share paid by new investors in such financing round.

4. VALUATION CAP
The conversion will be based on a pre-money valuation not to exceed {valuation_cap}, providing downside protection for the Investor.

5. GOVERNING LAW
This Agreement shall be governed by and construed in accordance with the laws of {governing_law}.

INVESTOR SIGNATURE
Signed: {investor_signature}
Date Signed: {signed_at}

COMPANY SIGNATURE
Signed: {founder_signature}
"""


def build_terms(
    campaign: Campaign,
    investment: Investment,
    investor_name: str,
    agreement_date: Optional[datetime] = None,
) -> dict:
    """Snapshot of everything the document needs, frozen at signing time."""
    valuation_cap = campaign.valuation_cap if campaign.valuation_cap is not None else DEFAULT_VALUATION_CAP
    company_name = (campaign.company_name or "").strip() or (f"{campaign.title} Inc." if campaign.title else "")
    terms = {
        "campaign_id": campaign.id,
        "campaign_title": campaign.title,
        "company_name": company_name,
        "investor_name": (investor_name or "").strip(),
        "amount": str(to_money(investment.amount)) if investment.amount is not None else None,
        "platform_fee": str(to_money(investment.platform_fee)),
        "discount_rate": str(to_money(campaign.discount_rate)) if campaign.discount_rate is not None else None,
        "valuation_cap": str(to_money(valuation_cap)),
        "agreement_date": (agreement_date or datetime.utcnow()).date().isoformat(),
        "governing_law": GOVERNING_LAW,
    }
    _require_terms(terms)
    return terms


def _require_terms(terms: dict):
    missing = [key for key in REQUIRED_TERMS if terms.get(key) in (None, "")]
    if missing:
        raise ValidationError(f"SAFE agreement is missing required fields: {', '.join(missing)}")


def render_agreement(
    terms: dict,
    agreement_id: str = "DRAFT",
    investor_signature: Optional[str] = None,
    signed_at: Optional[datetime] = None,
    founder_signature: Optional[str] = None,
) -> str:
    _require_terms(terms)
    return SAFE_TEMPLATE.format(
        agreement_id=agreement_id,
        company_name=terms["company_name"],
        investor_name=terms["investor_name"],
        amount=format_usd(terms["amount"]),
        agreement_date=terms["agreement_date"],
        discount_rate=format_percent(terms["discount_rate"]),
        valuation_cap=format_usd(terms["valuation_cap"]),
        governing_law=terms.get("governing_law") or GOVERNING_LAW,
        investor_signature=investor_signature or "(unsigned)",
        signed_at=signed_at.isoformat(timespec="seconds") + "Z" if signed_at else "(pending)",
        founder_signature=founder_signature or "(pending)",
    )


def generate_agreement(investment: Investment, campaign: Campaign, investor_name: str) -> str:
    """Fill the template from live campaign terms (used for the review step)."""
    return render_agreement(build_terms(campaign, investment, investor_name))


CERTIFICATE_LABELS = {
    "agreement_id": "Agreement",
    "signer": "Investor signature",
    "signed_at": "Signed at (UTC)",
    "ip_address": "Signer IP address",
    "founder_signature": "Company signature",
    "countersigned_at": "Countersigned at (UTC)",
    "document_sha256": "Agreement text SHA-256",
}


def _execution_certificate(audit: dict) -> PdfReader:
    """One page recording who executed the SAFE, when, and what text they signed."""
    width, height = letter
    buf = BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    c.setFont("Helvetica-Bold", 14)
    c.drawString(72, height - 72, "SAFE Execution Certificate")
    c.setFont("Helvetica", 9)
    c.drawString(72, height - 88, "Issued by the Fundry platform for the agreement that precedes this page.")
    y = height - 120
    for key, value in audit.items():
        c.setFont("Helvetica-Bold", 10)
        c.drawString(72, y, CERTIFICATE_LABELS.get(key, key.replace("_", " ").capitalize()))
        c.setFont("Helvetica", 10)
        # hashes and long names wrap instead of running off the page
        for line in simpleSplit(str(value), "Helvetica", 10, width - 272) or [""]:
            c.drawString(230, y, line)
            y -= 14
        y -= 4
    c.showPage()
    c.save()
    buf.seek(0)
    return PdfReader(buf)


def render_agreement_pdf(text: str, audit: dict) -> bytes:
    width, height = letter
    buf = BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    y = height - 72
    for paragraph in text.splitlines():
        heading = paragraph.isupper() or paragraph[:2].rstrip(".").isdigit()
        font = "Helvetica-Bold" if heading else "Helvetica"
        lines = simpleSplit(paragraph, font, 10, width - 144) or [""]
        for line in lines:
            if y < 72:
                c.showPage(); y = height - 72
            c.setFont(font, 10)
            c.drawString(72, y, line)
            y -= 14
    c.showPage(); c.save()
    buf.seek(0)

    writer = PdfWriter()
    writer.append_pages_from_reader(PdfReader(buf))
    writer.append_pages_from_reader(_execution_certificate({**audit, "document_sha256": sha256_bytes(text.encode())}))
    out = BytesIO()
    writer.write(out)
    return out.getvalue()
