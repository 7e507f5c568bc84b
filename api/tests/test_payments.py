import httpx
import pytest

from fundry.errors import PaymentError, ValidationError
from fundry.services.payments import BudpayGateway, StripeGateway, sign_stripe_payload, verify_stripe_signature


def test_signature_round_trip_and_tolerance():
    body = b'{"type":"checkout.session.completed"}'
    header = sign_stripe_payload(body, "whsec_x", timestamp=1_700_000_000)
    verify_stripe_signature(body, header, "whsec_x", now=1_700_000_100)
    with pytest.raises(ValidationError):
        verify_stripe_signature(body, header, "whsec_x", now=1_700_000_000 + 301)
    with pytest.raises(ValidationError):
        verify_stripe_signature(body + b" ", header, "whsec_x", now=1_700_000_100)
    with pytest.raises(ValidationError):
        verify_stripe_signature(body, "v1=deadbeef", "whsec_x")


def test_stripe_checkout_sends_amount_in_cents():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers["Authorization"]
        seen["form"] = dict(httpx.QueryParams(request.content.decode()))
        return httpx.Response(200, json={"id": "cs_1", "url": "https://checkout.test/cs_1"})

    gateway = StripeGateway("sk_live", client=httpx.Client(transport=httpx.MockTransport(handler)),
                            api_base="https://stripe.test/v1")
    session = gateway.create_checkout(investment_id=4, amount="102.50", description="Investment in X",
                                      customer_email="a@example.com", reference="FND-4-abc")
    assert session.reference == "cs_1"
    assert seen["auth"] == "Bearer sk_live"
    assert seen["form"]["line_items[0][price_data][unit_amount]"] == "10250"
    assert seen["form"]["metadata[investment_id]"] == "4"


def test_unconfigured_gateway_raises_payment_error():
    gateway = BudpayGateway(secret_key=None, client=httpx.Client(transport=httpx.MockTransport(
        lambda request: httpx.Response(200, json={}))))
    with pytest.raises(PaymentError):
        gateway.create_checkout(investment_id=1, amount="10", description="x",
                                customer_email="a@example.com", reference="FND-1-x")


def test_budpay_rejection_is_a_payment_error():
    def handler(request):
        return httpx.Response(200, json={"status": False, "message": "Invalid amount"})

    gateway = BudpayGateway("sk_test", client=httpx.Client(transport=httpx.MockTransport(handler)),
                            api_base="https://budpay.test/api/v2")
    with pytest.raises(PaymentError) as exc:
        gateway.create_checkout(investment_id=1, amount="10", description="x",
                                customer_email="a@example.com", reference="FND-1-x")
    assert exc.value.message == "Invalid amount"
