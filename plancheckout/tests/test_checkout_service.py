"""
Test the checkout orchestrator with a fake provider and fake user store.
"""
import json

import pytest

from plancheckout.core.errors import MethodNotAllowedError, NotFoundError, ValidationError
from plancheckout.features.checkout.provider import PaymentProviderError
from plancheckout.tests.mocks import FakeProvider, FakeUserStore, make_user

STARTER_PRICE = "price_1RYhAlE92IbV5FBUCtOmXIow"


def body(**fields):
    payload = {"customerEmail": "a@b.com", "userId": "u1"}
    payload.update(fields)
    return json.dumps(payload).encode()


def test_starter_checkout_end_to_end(make_service, fake_provider, user_store):
    service = make_service()

    result = service.handle("POST", body(priceId=STARTER_PRICE))

    assert result.model_dump(by_alias=True) == {
        "id": "cs_test_123",
        "userId": "u1",
        "success": True,
        "plan_type": "Starter",
        "mode": "subscription",
    }
    call = fake_provider.calls[0]
    assert call["mode"] == "subscription"
    assert call["line_items"] == [{"price": STARTER_PRICE, "quantity": 1}]
    assert call["customer_email"] == "a@b.com"
    assert call["success_url"] == "https://example.com/success.html?session_id={CHECKOUT_SESSION_ID}&userId=u1"
    assert call["cancel_url"] == "https://example.com?checkout=cancelled"
    assert user_store.rows["u1"]["subscription_status"] == "pending_activation"
    assert user_store.rows["u1"]["stripe_session_id"] == "cs_test_123"


def test_lifetime_deal_checkout(make_service, fake_provider, user_store, catalog):
    service = make_service()

    result = service.handle("POST", body(isLifetimeDeal=True))

    assert result.mode == "payment"
    assert result.plan_type == "Lifetime Deal"
    line_item = fake_provider.calls[0]["line_items"][0]
    assert line_item["price_data"]["unit_amount"] == catalog.lifetime_deal.amount
    assert user_store.rows["u1"]["subscription_status"] == "pending_lifetime"
    assert user_store.rows["u1"]["selected_plan"] == "lifetime_deal"


def test_metadata_matches_response(make_service, fake_provider):
    service = make_service()

    result = service.handle("POST", body(priceId="price_1RSdrmE92IbV5FBUV1zE2VhD"))

    metadata = fake_provider.calls[0]["metadata"]
    assert metadata["userId"] == result.user_id
    assert metadata["planType"] == result.plan_type


def test_unknown_price_never_calls_provider(make_service, fake_provider, user_store):
    service = make_service()

    with pytest.raises(ValidationError) as exc:
        service.handle("POST", body(priceId="price_unknown_xyz"))

    assert exc.value.status_code == 400
    assert len(fake_provider.calls) == 0
    assert user_store.update_calls == []


def test_user_not_found(make_service, fake_provider):
    service = make_service()

    with pytest.raises(NotFoundError) as exc:
        service.handle("POST", body(userId="nobody", priceId=STARTER_PRICE))

    assert exc.value.status_code == 404
    assert exc.value.message == "User not found"
    assert fake_provider.calls == []


def test_email_mismatch_is_indistinguishable_from_missing_user(make_service):
    service = make_service()

    with pytest.raises(NotFoundError) as exc:
        service.handle("POST", body(customerEmail="other@b.com", priceId=STARTER_PRICE))

    assert exc.value.message == "User not found"


def test_lookup_store_error_reported_as_not_found(make_service, user_store):
    user_store.fail_reads = True
    service = make_service()

    with pytest.raises(NotFoundError):
        service.handle("POST", body(priceId=STARTER_PRICE))


def test_missing_fields_before_lookup(make_service, user_store):
    service = make_service()

    with pytest.raises(ValidationError) as exc:
        service.handle("POST", json.dumps({"priceId": STARTER_PRICE}))

    assert exc.value.code == "missing_field"
    assert user_store.find_calls == []


@pytest.mark.parametrize("method", ["GET", "PUT", "DELETE"])
def test_non_post_rejected(make_service, fake_provider, method):
    service = make_service()

    with pytest.raises(MethodNotAllowedError) as exc:
        service.handle(method, body(priceId=STARTER_PRICE))

    assert exc.value.status_code == 405
    assert fake_provider.calls == []


@pytest.mark.parametrize("raw", [b"{not json", b"[]", b"", b'"text"', b'{"customerEmail": "a@b.com", "userId": "u1", "isLifetimeDeal": "yes"}'])
def test_malformed_bodies(make_service, raw):
    service = make_service()

    with pytest.raises(ValidationError) as exc:
        service.handle("POST", raw)

    assert exc.value.code == "malformed_request"


def test_provider_error_surfaces_with_status(make_service, user_store):
    provider = FakeProvider(error=PaymentProviderError("card_declined", status_code=402))
    service = make_service(provider=provider)

    with pytest.raises(PaymentProviderError) as exc:
        service.handle("POST", body(priceId=STARTER_PRICE))

    assert exc.value.status_code == 402
    assert len(provider.calls) == 1
    assert user_store.update_calls == []


def test_success_even_when_every_write_fails(make_service, fake_provider, no_sleep):
    store = FakeUserStore([make_user()], fail_updates=-1)
    service = make_service(reader=store, write_targets=[store])

    result = service.handle("POST", body(priceId=STARTER_PRICE))

    assert result.success is True
    assert result.id == "cs_test_123"
    assert len(store.update_calls) == 3
    assert len(fake_provider.calls) == 1
    assert no_sleep == [0.5, 1.0]


def test_privileged_then_standard_targets(make_service):
    standard = FakeUserStore([make_user()])
    privileged = FakeUserStore(name="privileged", fail_updates=1, shared=standard.rows)
    service = make_service(reader=standard, write_targets=[privileged, standard])

    service.handle("POST", body(priceId=STARTER_PRICE))

    assert len(privileged.update_calls) == 1
    assert len(standard.update_calls) == 1
    assert standard.rows["u1"]["plan_type"] == "Starter"


def test_accepts_decoded_dict_body(make_service):
    service = make_service()
    result = service.handle("POST", {"customerEmail": "a@b.com", "userId": "u1", "priceId": STARTER_PRICE})
    assert result.plan_type == "Starter"


def test_service_requires_write_target(make_service):
    with pytest.raises(ValueError):
        make_service(write_targets=[])


class BrokenReadBack(FakeUserStore):
    """Writes succeed; the read-back blows up with a non-store error."""

    def find_one(self, filters, columns):
        if "id" in filters and "email" not in filters:
            raise AttributeError("'str' object has no attribute 'get'")
        return super().find_one(filters, columns)


def test_unexpected_persistence_error_still_returns_session(make_service, fake_provider):
    store = BrokenReadBack([make_user()])
    service = make_service(reader=store, write_targets=[store])

    result = service.handle("POST", body(priceId=STARTER_PRICE))

    assert result.id == "cs_test_123"
    assert result.success is True
    assert len(fake_provider.calls) == 1
    assert store.rows["u1"]["plan_type"] == "Starter"


def test_unexpected_write_error_still_returns_session(make_service, fake_provider):
    store = FakeUserStore([make_user()])

    def explode(filters, patch):
        raise RuntimeError("driver crashed")

    store.update = explode
    service = make_service(reader=store, write_targets=[store])

    result = service.handle("POST", body(priceId=STARTER_PRICE))

    assert result.plan_type == "Starter"
    assert len(fake_provider.calls) == 1


def test_invalid_utf8_body_is_malformed(make_service, fake_provider):
    service = make_service()
    raw = b'{"customerEmail": "a@b.com", "userId": "u1\xff", "priceId": "' + STARTER_PRICE.encode() + b'"}'

    with pytest.raises(ValidationError) as exc:
        service.handle("POST", raw)

    assert exc.value.code == "malformed_request"
    assert fake_provider.calls == []


def test_user_id_is_escaped_in_success_url(make_service, fake_provider):
    store = FakeUserStore([make_user(user_id="u&1#x")])
    service = make_service(reader=store, write_targets=[store])

    service.handle("POST", json.dumps({"customerEmail": "a@b.com", "userId": "u&1#x", "priceId": STARTER_PRICE}))

    assert fake_provider.calls[0]["success_url"].endswith("&userId=u%261%23x")


def test_close_releases_store_clients(make_service):
    class ClosableStore(FakeUserStore):
        closed = 0

        def close(self):
            self.closed += 1

    standard = ClosableStore([make_user()])
    privileged = ClosableStore(name="privileged", shared=standard.rows)
    service = make_service(reader=standard, write_targets=[privileged, standard])

    service.close()

    assert standard.closed == 1
    assert privileged.closed == 1
