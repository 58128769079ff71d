# plancheckout/conftest.py
import os
import pytest

from plancheckout.tests.mocks import FakeProvider, FakeUserStore, make_user

# Never pick up developer .env validation rules while testing
os.environ.setdefault("SKIP_ENV_VALIDATION", "1")


@pytest.fixture
def catalog():
    """Default plan catalog."""
    from plancheckout.features.checkout.plans import build_catalog
    return build_catalog()


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def user_store():
    """Standard client onto an in-memory users table holding u1 / a@b.com."""
    return FakeUserStore([make_user()])


@pytest.fixture
def no_sleep():
    """Records backoff delays instead of sleeping."""
    return []


@pytest.fixture
def make_service(catalog, fake_provider, user_store, no_sleep):
    """
    Factory for CheckoutService wired to fakes.

    Usage:
        service = make_service()                       # standard client only
        service = make_service(write_targets=[a, b])   # custom targets
    """
    from plancheckout.features.checkout.retry import RetryPolicy, exponential_backoff
    from plancheckout.features.checkout.service import CheckoutService

    def _make(**overrides):
        kwargs = dict(
            catalog=catalog,
            provider=fake_provider,
            reader=user_store,
            write_targets=[user_store],
            retry_policy=RetryPolicy(max_attempts=3, backoff=exponential_backoff(base=0.5)),
            site_url="https://example.com",
            sleep=no_sleep.append,
        )
        kwargs.update(overrides)
        return CheckoutService(**kwargs)

    return _make
