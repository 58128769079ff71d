"""
HTTP contract for the checkout route, with the service wired to fakes via
dependency override.
"""
import pytest
from fastapi.testclient import TestClient

from plancheckout.api.checkout import get_checkout_service
from plancheckout.features.checkout.provider import PaymentProviderError
from plancheckout.main import app
from plancheckout.tests.mocks import FakeProvider

STARTER_PRICE = "price_1RYhAlE92IbV5FBUCtOmXIow"
PATH = "/api/create-checkout-session"


@pytest.fixture
def client_for(make_service):
    def _client(service=None):
        svc = service if service is not None else make_service()
        app.dependency_overrides[get_checkout_service] = lambda: svc
        return TestClient(app)

    yield _client
    app.dependency_overrides.clear()


def test_post_starter_returns_subscription(client_for):
    client = client_for()

    resp = client.post(PATH, json={"customerEmail": "a@b.com", "userId": "u1", "priceId": STARTER_PRICE})

    assert resp.status_code == 200
    assert resp.json() == {
        "id": "cs_test_123",
        "userId": "u1",
        "success": True,
        "plan_type": "Starter",
        "mode": "subscription",
    }
    assert resp.headers["access-control-allow-origin"] == "*"
    assert resp.headers.get("x-request-id")


def test_lifetime_deal_returns_payment_mode(client_for):
    client = client_for()

    resp = client.post(PATH, json={"customerEmail": "a@b.com", "userId": "u1", "isLifetimeDeal": True})

    assert resp.status_code == 200
    assert resp.json()["mode"] == "payment"
    assert resp.json()["plan_type"] == "Lifetime Deal"


def test_unknown_price_is_400_without_provider_call(client_for, fake_provider):
    client = client_for()

    resp = client.post(PATH, json={"customerEmail": "a@b.com", "userId": "u1", "priceId": "price_unknown_xyz"})

    assert resp.status_code == 400
    body = resp.json()
    assert body["code"] == "unknown_price_id"
    assert body["error"]
    assert body["request_id"] == resp.headers["x-request-id"]
    assert fake_provider.calls == []


def test_missing_fields_is_400(client_for):
    client = client_for()

    resp = client.post(PATH, json={"priceId": STARTER_PRICE})

    assert resp.status_code == 400
    assert resp.json()["code"] == "missing_field"


def test_invalid_json_is_400(client_for):
    client = client_for()

    resp = client.post(PATH, content=b"{broken", headers={"Content-Type": "application/json"})

    assert resp.status_code == 400
    assert resp.json()["code"] == "malformed_request"


def test_unknown_user_is_404(client_for):
    client = client_for()

    resp = client.post(PATH, json={"customerEmail": "x@y.com", "userId": "u1", "priceId": STARTER_PRICE})

    assert resp.status_code == 404
    assert resp.json()["error"] == "User not found"


def test_get_is_405(client_for):
    client = client_for()

    resp = client.get(PATH)

    assert resp.status_code == 405
    assert resp.headers["access-control-allow-methods"] == "POST, OPTIONS"


def test_options_returns_cors_headers_and_no_body(client_for):
    client = client_for()

    resp = client.options(PATH)

    assert resp.status_code == 200
    assert resp.content == b""
    assert resp.headers["access-control-allow-origin"] == "*"
    assert resp.headers["access-control-allow-headers"] == "Content-Type"
    assert resp.headers["access-control-allow-methods"] == "POST, OPTIONS"


def test_provider_error_status_passed_through(client_for, make_service):
    provider = FakeProvider(error=PaymentProviderError("Your card was declined.", status_code=402))
    client = client_for(make_service(provider=provider))

    resp = client.post(PATH, json={"customerEmail": "a@b.com", "userId": "u1", "priceId": STARTER_PRICE})

    assert resp.status_code == 402
    assert resp.json()["code"] == "payment_provider_error"


def test_provider_error_without_status_is_500_with_details_in_dev(client_for, make_service):
    provider = FakeProvider(error=PaymentProviderError("stripe down"))
    client = client_for(make_service(provider=provider))

    resp = client.post(PATH, json={"customerEmail": "a@b.com", "userId": "u1", "priceId": STARTER_PRICE})

    assert resp.status_code == 500
    body = resp.json()
    assert body["error"] == "stripe down"
    assert "details" in body


def test_billing_disabled_is_503():
    app.dependency_overrides[get_checkout_service] = lambda: None
    try:
        resp = TestClient(app).post(PATH, json={"customerEmail": "a@b.com", "userId": "u1", "priceId": STARTER_PRICE})
    finally:
        app.dependency_overrides.clear()

    assert resp.status_code == 503
    assert resp.json()["code"] == "billing_disabled"


def test_netlify_function_path_is_mounted(client_for):
    client = client_for()

    resp = client.post(
        "/.netlify/functions/create-checkout-session",
        json={"customerEmail": "a@b.com", "userId": "u1", "priceId": STARTER_PRICE},
    )

    assert resp.status_code == 200


def test_healthz():
    resp = TestClient(app).get("/healthz")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_browser_preflight_answered_by_route(client_for):
    client = client_for()

    resp = client.options(
        PATH,
        headers={
            "Origin": "https://pricing.example.com",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "content-type",
        },
    )

    assert resp.status_code == 200
    assert resp.content == b""
    assert resp.headers["access-control-allow-origin"] == "*"
    assert resp.headers["access-control-allow-headers"] == "Content-Type"
    assert resp.headers["access-control-allow-methods"] == "POST, OPTIONS"
