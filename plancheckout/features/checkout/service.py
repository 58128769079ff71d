"""
Checkout orchestrator.

Coordinates:
- Request validation (method, body shape, required fields)
- User existence check by (id, email)
- Plan resolution
- One checkout session with the payment provider
- Pending-plan persistence (never fatal)

All Stripe-specific code is in stripe_provider.py; all store-specific code
is in store.py / supabase_store.py.
"""
import json
import logging
import time
from urllib.parse import quote
from typing import Any, Callable, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError

from plancheckout.core.config import Settings, settings, stripe_configured, user_store_configured
from plancheckout.core.database import get_engine
from plancheckout.core.errors import (
    BillingDisabledError,
    MethodNotAllowedError,
    NotFoundError,
    ValidationError,
)
from plancheckout.core.logging import log_event
from plancheckout.features.checkout.persistence import persist_pending_plan
from plancheckout.features.checkout.plans import (
    PlanCatalog,
    PlanDecision,
    catalog_from_settings,
    require_identity,
    resolve_plan,
)
from plancheckout.features.checkout.provider import CheckoutProvider, CheckoutSession
from plancheckout.features.checkout.retry import RetryPolicy, policy_from_settings
from plancheckout.features.checkout.store import SqlUserStore, StoreError, UserStore
from plancheckout.features.checkout.stripe_provider import StripeProvider
from plancheckout.features.checkout.supabase_store import SupabaseUserStore
from plancheckout.models.checkout import CheckoutRequest, CheckoutResult

logger = logging.getLogger("plancheckout")

LOOKUP_COLUMNS = ("id", "email", "subscription_status")


class CheckoutService:
    """Creates a checkout session and records the pending plan."""

    def __init__(
        self,
        *,
        catalog: PlanCatalog,
        provider: CheckoutProvider,
        reader: UserStore,
        write_targets: Sequence[UserStore],
        retry_policy: RetryPolicy,
        site_url: str,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if not write_targets:
            raise ValueError("at least one write target is required")
        self.catalog = catalog
        self.provider = provider
        self.reader = reader
        self.write_targets = list(write_targets)
        self.retry_policy = retry_policy
        self.site_url = site_url.rstrip("/")
        self.sleep = sleep

    def close(self) -> None:
        """Release store clients (httpx sessions) held by this service."""
        stores = [self.reader] + [t for t in self.write_targets if t is not self.reader]
        for store in stores:
            close = getattr(store, "close", None)
            if close is not None:
                close()

    def handle(self, method: str, body: Any) -> CheckoutResult:
        """
        Entry point for a raw transport request.

        Args:
            method: HTTP method
            body: Raw body (bytes/str) or an already-decoded dict

        Raises:
            MethodNotAllowedError: method is not POST
            ValidationError: body is not a JSON object of the expected shape
        """
        if method.upper() != "POST":
            raise MethodNotAllowedError("Method not allowed")
        return self.create_checkout(parse_checkout_request(body))

    def create_checkout(self, request: CheckoutRequest) -> CheckoutResult:
        """
        Run the checkout workflow for a parsed request.

        Returns:
            CheckoutResult, whenever the provider session was created

        Raises:
            ValidationError: missing/unknown/conflicting input (no provider call)
            NotFoundError: (userId, customerEmail) does not match one user
            PaymentProviderError: session creation failed
        """
        customer_email, user_id = require_identity(request)
        self._ensure_user(user_id, customer_email)

        decision = resolve_plan(request, self.catalog)
        session = self._create_session(decision, customer_email)

        try:
            outcome = persist_pending_plan(
                decision,
                session.id,
                self.write_targets,
                self.retry_policy,
                sleep=self.sleep,
            )
        except Exception as e:
            # The session exists; the webhook settles the plan
            log_event(
                "error",
                "checkout.persist.unexpected_error",
                user_id=user_id,
                price_id=decision.selected_plan,
                error_code="persistence_failed",
                extra={"session_id": session.id, "error": repr(e)},
            )
            outcome = None
        if outcome is not None and not outcome.succeeded:
            logger.error(
                "checkout.persist.deferred_to_webhook",
                extra={"user_id": user_id, "session_id": session.id, "attempt": outcome.attempts},
            )

        return CheckoutResult(
            id=session.id,
            user_id=user_id,
            plan_type=decision.plan_name,
            mode=decision.transaction_mode,
        )

    def _ensure_user(self, user_id: str, customer_email: str) -> None:
        try:
            row = self.reader.find_one({"id": user_id, "email": customer_email}, LOOKUP_COLUMNS)
        except StoreError as e:
            log_event(
                "error",
                "checkout.user_lookup_failed",
                user_id=user_id,
                error_code="store_error",
                extra={"error": e},
            )
            row = None
        if row is None:
            # Same answer for unknown id and email mismatch
            raise NotFoundError("User not found")

    def _create_session(self, decision: PlanDecision, customer_email: str) -> CheckoutSession:
        user_id = decision.user_id
        session = self.provider.create_session(
            mode=decision.transaction_mode,
            line_items=decision.line_items,
            customer_email=customer_email,
            success_url=f"{self.site_url}/success.html?session_id={{CHECKOUT_SESSION_ID}}&userId={quote(user_id, safe='')}",
            cancel_url=f"{self.site_url}?checkout=cancelled",
            metadata=dict(decision.metadata),
        )
        log_event(
            "info",
            "checkout.session_created",
            user_id=user_id,
            price_id=decision.selected_plan,
            extra={"session_id": session.id, "mode": decision.transaction_mode, "plan_type": decision.plan_name},
        )
        return session


def parse_checkout_request(body: Any) -> CheckoutRequest:
    """Decode a raw body into a CheckoutRequest or raise malformed_request."""
    if isinstance(body, (bytes, bytearray)):
        try:
            body = body.decode("utf-8")
        except UnicodeDecodeError:
            raise ValidationError("Request body must be UTF-8 encoded JSON", code="malformed_request")
    if isinstance(body, str):
        try:
            body = json.loads(body) if body.strip() else None
        except json.JSONDecodeError:
            raise ValidationError("Request body must be valid JSON", code="malformed_request")
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object", code="malformed_request")
    try:
        return CheckoutRequest.model_validate(body)
    except PydanticValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise ValidationError(f"Invalid request fields: {fields}", code="malformed_request")


def build_user_stores(cfg: Settings):
    """
    Build (reader, write_targets) from configuration.

    Supabase wins when configured; otherwise the SQL database. The
    privileged client, when present, is the first write target.
    """
    if cfg.SUPABASE_URL and (cfg.SUPABASE_ANON_KEY or cfg.SUPABASE_SERVICE_ROLE_KEY):
        standard_key = cfg.SUPABASE_ANON_KEY or cfg.SUPABASE_SERVICE_ROLE_KEY
        standard = SupabaseUserStore(
            cfg.SUPABASE_URL, standard_key, name="standard", timeout=cfg.STORE_TIMEOUT_SECONDS
        )
        targets = [standard]
        if cfg.SUPABASE_SERVICE_ROLE_KEY and cfg.SUPABASE_ANON_KEY:
            privileged = SupabaseUserStore(
                cfg.SUPABASE_URL,
                cfg.SUPABASE_SERVICE_ROLE_KEY,
                name="privileged",
                timeout=cfg.STORE_TIMEOUT_SECONDS,
            )
            targets.insert(0, privileged)
        return standard, targets

    standard = SqlUserStore(get_engine(cfg.TEST_DATABASE_URL or cfg.DATABASE_URL), name="standard")
    targets = [standard]
    if cfg.PRIVILEGED_DATABASE_URL:
        targets.insert(0, SqlUserStore(get_engine(cfg.PRIVILEGED_DATABASE_URL), name="privileged"))
    return standard, targets


def billing_enabled(cfg: Optional[Settings] = None) -> bool:
    """Checkout needs both Stripe and a user store."""
    cfg = cfg or settings
    return stripe_configured(cfg) and user_store_configured(cfg)


def build_checkout_service(cfg: Optional[Settings] = None) -> CheckoutService:
    """
    Construct a CheckoutService from configuration.

    Raises:
        BillingDisabledError: Stripe or the user store is not configured
    """
    cfg = cfg or settings
    if not billing_enabled(cfg):
        raise BillingDisabledError("Billing disabled: Stripe or the user store is not configured")

    reader, targets = build_user_stores(cfg)
    return CheckoutService(
        catalog=catalog_from_settings(cfg),
        provider=StripeProvider(cfg.STRIPE_SECRET_KEY),
        reader=reader,
        write_targets=targets,
        retry_policy=policy_from_settings(cfg),
        site_url=cfg.URL,
    )
