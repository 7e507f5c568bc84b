import json
import os
from typing import Dict

import httpx
import pytest
from fastapi.testclient import TestClient
from minio.error import S3Error
from sqlmodel import SQLModel, Session, create_engine

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("ADMIN_ACCESS_TOKEN", "admin-test-token")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test")

from fundry.main import app  # noqa: E402
from fundry import db as db_module  # noqa: E402
from fundry.db import get_session  # noqa: E402
from fundry import storage as storage_module  # noqa: E402
from fundry.routers import uploads as uploads_router  # noqa: E402
from fundry.services import investments as investments_service  # noqa: E402
from fundry.services.currency import CurrencyConverter, RateCache  # noqa: E402
from fundry.services.payments import (  # noqa: E402
    BudpayGateway,
    PaymentGateways,
    StripeGateway,
    sign_stripe_payload,
)

STRIPE_BASE = "https://stripe.test/v1"
BUDPAY_BASE = "https://budpay.test/api/v2"


@pytest.fixture(scope="session")
def test_engine(tmp_path_factory):
    db_path = tmp_path_factory.mktemp("data") / "test.db"
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
    )
    return engine


@pytest.fixture
def setup_db(test_engine):
    SQLModel.metadata.drop_all(test_engine)
    SQLModel.metadata.create_all(test_engine)
    yield
    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture
def db_session(test_engine, setup_db):
    with Session(test_engine) as session:
        yield session


@pytest.fixture
def mock_storage(monkeypatch) -> Dict[str, bytes]:
    store: Dict[str, bytes] = {}

    def fake_put_bytes(key: str, data: bytes, content_type: str = "application/octet-stream"):
        store[key] = bytes(data)

    def fake_get_bytes(key: str) -> bytes:
        if key not in store:
            raise S3Error(response=None, code="NoSuchKey", message="missing", resource=f"/{key}",
                          request_id="test-request", host_id="test-host")
        return store[key]

    for target in (storage_module, uploads_router):
        if hasattr(target, "put_bytes"):
            monkeypatch.setattr(target, "put_bytes", fake_put_bytes)
        if hasattr(target, "get_bytes"):
            monkeypatch.setattr(target, "get_bytes", fake_get_bytes)
    return store


@pytest.fixture
def sent_emails(monkeypatch):
    messages = []

    def fake_send_email(to, subject, text_body, html_body=None, attachments=None, sender_name=None, reply_to=None):
        messages.append(
            {
                "to": to,
                "subject": subject,
                "text": text_body,
                "html": html_body,
                "attachments": attachments or [],
            }
        )

    monkeypatch.setattr(investments_service, "send_email", fake_send_email)
    return messages


class FakeProcessors:
    """Stripe and Budpay hosted-checkout endpoints served from memory."""

    def __init__(self):
        self.calls = []
        self.status: Dict[str, str] = {}
        self.fail_create = False
        self._seq = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        path = request.url.path
        if self.fail_create and request.method == "POST":
            return httpx.Response(500, json={"error": "processor down"})
        if path.endswith("/checkout/sessions") and request.method == "POST":
            self._seq += 1
            session_id = f"cs_test_{self._seq}"
            self.status[session_id] = "unpaid"
            return httpx.Response(200, json={"id": session_id, "url": f"https://checkout.stripe.test/{session_id}"})
        if "/checkout/sessions/" in path:
            session_id = path.rsplit("/", 1)[-1]
            return httpx.Response(200, json={"id": session_id, "payment_status": self.status.get(session_id, "unpaid"),
                                             "status": "open"})
        if path.endswith("/transaction/initialize"):
            body = json.loads(request.content)
            self.status[body["reference"]] = "pending"
            return httpx.Response(200, json={"status": True, "data": {
                "authorization_url": f"https://pay.budpay.test/{body['reference']}"}})
        if "/transaction/verify/" in path:
            reference = path.rsplit("/", 1)[-1]
            return httpx.Response(200, json={"status": True, "data": {"status": self.status.get(reference, "pending")}})
        return httpx.Response(404, json={"error": "unknown route"})


@pytest.fixture
def processors():
    return FakeProcessors()


@pytest.fixture
def gateways(processors):
    http = httpx.Client(transport=httpx.MockTransport(processors.handler))
    return PaymentGateways(
        StripeGateway(secret_key="sk_test", client=http, api_base=STRIPE_BASE),
        BudpayGateway(secret_key="budpay_test", client=http, api_base=BUDPAY_BASE),
    )


def rate_transport(ngn_rate=1500):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"base": "USD", "rates": {"NGN": ngn_rate}})

    return httpx.MockTransport(handler)


@pytest.fixture
def converter():
    return CurrencyConverter(client=httpx.Client(transport=rate_transport()), cache=RateCache(ttl_seconds=1800))


@pytest.fixture
def client(test_engine, setup_db, mock_storage, sent_emails, gateways, converter):
    db_module.engine = test_engine

    def override_session():
        with Session(test_engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    app.state.gateways = gateways
    app.state.converter = converter
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


ADMIN_HEADERS = {"X-Access-Token": os.getenv("ADMIN_ACCESS_TOKEN", "admin-test-token")}


def register_user(client, email, user_type="investor", first_name="Ada", last_name="Lovelace"):
    resp = client.post(
        "/api/auth/register",
        json={
            "email": email,
            "password": "correct-horse",
            "first_name": first_name,
            "last_name": last_name,
            "user_type": user_type,
        },
    )
    assert resp.status_code == 201, resp.text
    # requests authenticate explicitly through headers
    client.cookies.clear()
    body = resp.json()
    return {"X-Access-Token": body["token"]}, body["user"]


def create_campaign(client, headers, activate=True, **overrides):
    payload = {
        "title": "Solar Kiosks",
        "short_pitch": "Pay-as-you-go solar for market stalls",
        "funding_goal": "10000",
        "minimum_investment": "25",
        "company_name": "Solar Kiosks Ltd",
        "business_sector": "energy",
    }
    payload.update(overrides)
    resp = client.post("/api/campaigns", json=payload, headers=headers)
    assert resp.status_code == 201, resp.text
    campaign = resp.json()
    if activate:
        resp = client.post(f"/api/campaigns/{campaign['id']}/status", json={"status": "active"}, headers=headers)
        assert resp.status_code == 200, resp.text
        campaign = resp.json()
    return campaign


@pytest.fixture
def founder(client):
    return register_user(client, "founder@example.com", "founder", "Grace", "Hopper")


@pytest.fixture
def investor(client):
    return register_user(client, "investor@example.com", "investor", "Ada", "Lovelace")


@pytest.fixture
def campaign(client, founder):
    headers, _ = founder
    return create_campaign(client, headers)


def commit(client, headers, campaign_id, amount="100"):
    resp = client.post(
        "/api/investments/commit",
        json={
            "campaign_id": campaign_id,
            "amount": amount,
            "agree_to_terms": True,
            "accredited_investor": True,
            "full_name": "Ada Lovelace",
        },
        headers=headers,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


def stripe_event(client, event_type, session_id, payment_status="paid", secret="whsec_test"):
    payload = json.dumps({
        "type": event_type,
        "data": {"object": {"id": session_id, "payment_status": payment_status}},
    }).encode()
    return client.post(
        "/api/payments/stripe/webhook",
        content=payload,
        headers={"Stripe-Signature": sign_stripe_payload(payload, secret), "Content-Type": "application/json"},
    )
