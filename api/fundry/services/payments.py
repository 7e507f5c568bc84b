"""Hosted-checkout gateways.

Both processors are driven over plain HTTP with ``httpx``. Creating a session
returns a redirect url plus the processor's reference; completion is learned
later from a webhook or a server-side verify call, keyed by that reference.
"""

import hashlib
import hmac
import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

import httpx

from ..config import (
    BUDPAY_API_BASE,
    BUDPAY_SECRET_KEY,
    STRIPE_API_BASE,
    STRIPE_SECRET_KEY,
    WEB_BASE_URL,
)
from ..errors import PaymentError, ValidationError
from ..utils import to_money

logger = logging.getLogger(__name__)

STRIPE_SIGNATURE_TOLERANCE_SECONDS = 300


@dataclass
class CheckoutSession:
    provider: str
    reference: str
    redirect_url: str


def _client(client: Optional[httpx.Client]) -> httpx.Client:
    return client or httpx.Client(timeout=httpx.Timeout(15.0, connect=5.0))


class StripeGateway:
    provider = "stripe"

    def __init__(self, secret_key: Optional[str] = STRIPE_SECRET_KEY, client: Optional[httpx.Client] = None,
                 api_base: str = STRIPE_API_BASE):
        self.secret_key = secret_key
        self.client = _client(client)
        self.api_base = api_base.rstrip("/")

    def _headers(self):
        if not self.secret_key:
            raise PaymentError("card payments are not configured")
        return {"Authorization": f"Bearer {self.secret_key}"}

    def create_checkout(self, *, investment_id: int, amount: Decimal, description: str,
                        customer_email: str, reference: str) -> CheckoutSession:
        cents = int(to_money(amount) * 100)
        form = {
            "mode": "payment",
            "client_reference_id": reference,
            "customer_email": customer_email,
            "line_items[0][quantity]": "1",
            "line_items[0][price_data][currency]": "usd",
            "line_items[0][price_data][unit_amount]": str(cents),
            "line_items[0][price_data][product_data][name]": description,
            "metadata[investment_id]": str(investment_id),
            "metadata[reference]": reference,
            "success_url": f"{WEB_BASE_URL}/investments/{investment_id}?payment=success",
            "cancel_url": f"{WEB_BASE_URL}/investments/{investment_id}?payment=cancelled",
        }
        try:
            resp = self.client.post(f"{self.api_base}/checkout/sessions", data=form, headers=self._headers())
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("stripe checkout creation failed for investment %s: %s", investment_id, exc)
            raise PaymentError("Payment processor unavailable, please try again") from exc
        if not data.get("id") or not data.get("url"):
            raise PaymentError("Payment processor returned an incomplete checkout session")
        return CheckoutSession(provider=self.provider, reference=data["id"], redirect_url=data["url"])

    def retrieve_status(self, reference: str) -> str:
        """Return ``completed``, ``failed`` or ``processing`` for a checkout session."""
        try:
            resp = self.client.get(f"{self.api_base}/checkout/sessions/{reference}", headers=self._headers())
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise PaymentError("Could not verify payment with processor") from exc
        if data.get("payment_status") == "paid":
            return "completed"
        if data.get("status") == "expired":
            return "failed"
        return "processing"


class BudpayGateway:
    provider = "budpay"

    def __init__(self, secret_key: Optional[str] = BUDPAY_SECRET_KEY, client: Optional[httpx.Client] = None,
                 api_base: str = BUDPAY_API_BASE):
        self.secret_key = secret_key
        self.client = _client(client)
        self.api_base = api_base.rstrip("/")

    def _headers(self):
        if not self.secret_key:
            raise PaymentError("Naira payments are not configured")
        return {"Authorization": f"Bearer {self.secret_key}"}

    def create_checkout(self, *, investment_id: int, amount: Decimal, description: str,
                        customer_email: str, reference: str) -> CheckoutSession:
        payload = {
            "email": customer_email,
            "amount": str(to_money(amount)),
            "currency": "NGN",
            "reference": reference,
            "callback": f"{WEB_BASE_URL}/investments/{investment_id}?payment=callback",
        }
        try:
            resp = self.client.post(f"{self.api_base}/transaction/initialize", json=payload, headers=self._headers())
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("budpay initialize failed for investment %s: %s", investment_id, exc)
            raise PaymentError("Payment processor unavailable, please try again") from exc
        url = (data.get("data") or {}).get("authorization_url")
        if not data.get("status") or not url:
            raise PaymentError(data.get("message") or "Payment processor rejected the transaction")
        return CheckoutSession(provider=self.provider, reference=reference, redirect_url=url)

    def retrieve_status(self, reference: str) -> str:
        try:
            resp = self.client.get(f"{self.api_base}/transaction/verify/{reference}", headers=self._headers())
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise PaymentError("Could not verify payment with processor") from exc
        state = ((data.get("data") or {}).get("status") or "").lower()
        if state == "success":
            return "completed"
        if state in ("failed", "abandoned", "reversed"):
            return "failed"
        return "processing"


def verify_stripe_signature(payload: bytes, header: Optional[str], secret: Optional[str],
                            tolerance: int = STRIPE_SIGNATURE_TOLERANCE_SECONDS, now: Optional[float] = None):
    """Check a ``Stripe-Signature`` header (``t=...,v1=...``) against the raw body."""
    if not secret:
        raise ValidationError("webhook secret not configured")
    if not header:
        raise ValidationError("missing Stripe-Signature header")
    parts = {}
    for item in header.split(","):
        key, _, value = item.strip().partition("=")
        parts.setdefault(key, []).append(value)
    try:
        timestamp = int(parts["t"][0])
    except (KeyError, ValueError):
        raise ValidationError("malformed Stripe-Signature header")
    signed = f"{timestamp}.".encode() + payload
    expected = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    if not any(hmac.compare_digest(expected, sig) for sig in parts.get("v1", [])):
        raise ValidationError("invalid webhook signature")
    if abs((now if now is not None else time.time()) - timestamp) > tolerance:
        raise ValidationError("webhook timestamp outside tolerance")


def sign_stripe_payload(payload: bytes, secret: str, timestamp: Optional[int] = None) -> str:
    timestamp = int(time.time()) if timestamp is None else timestamp
    sig = hmac.new(secret.encode(), f"{timestamp}.".encode() + payload, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={sig}"


class PaymentGateways:
    def __init__(self, stripe: StripeGateway, budpay: BudpayGateway):
        self.stripe = stripe
        self.budpay = budpay

    def for_currency(self, currency: str):
        currency = (currency or "USD").upper()
        if currency == "USD":
            return self.stripe
        if currency == "NGN":
            return self.budpay
        raise ValidationError(f"unsupported currency {currency}")

    def for_provider(self, provider: str):
        if provider == "stripe":
            return self.stripe
        if provider == "budpay":
            return self.budpay
        raise ValidationError(f"unknown payment provider {provider}")
