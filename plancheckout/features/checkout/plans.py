"""
plancheckout/features/checkout/plans.py

Plan catalog and plan resolution.

Handles:
- The price-id -> plan table (catalog)
- Deal classification (yearly/lifetime) ahead of the catalog
- Building the checkout line item and session metadata

resolve_plan() is pure: no I/O, no logging side effects beyond debug output.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from plancheckout.core.errors import ValidationError
from plancheckout.models.checkout import CheckoutRequest

logger = logging.getLogger("plancheckout")


STARTER = "Starter"
PRO = "Pro"
YEARLY_DEAL = "Yearly Deal"
LIFETIME_DEAL = "Lifetime Deal"

MODE_SUBSCRIPTION = "subscription"
MODE_PAYMENT = "payment"

PENDING_ACTIVATION = "pending_activation"
PENDING_LIFETIME = "pending_lifetime"

PLAN_NAMES = (STARTER, PRO, YEARLY_DEAL, LIFETIME_DEAL)
TRANSACTION_MODES = (MODE_SUBSCRIPTION, MODE_PAYMENT)
PENDING_STATUSES = (PENDING_ACTIVATION, PENDING_LIFETIME)

LIFETIME_SENTINEL = "lifetime_deal"
YEARLY_DEAL_PRICE_ID = "price_1RasluE92IbV5FBUlp01YVZe"

# Default catalog for regular subscriptions
DEFAULT_CATALOG = {
    "price_1RYhAlE92IbV5FBUCtOmXIow": (STARTER, MODE_SUBSCRIPTION, PENDING_ACTIVATION),
    "price_1RSdrmE92IbV5FBUV1zE2VhD": (PRO, MODE_SUBSCRIPTION, PENDING_ACTIVATION),
    "price_1RYhFGE92IbV5FBUqiKOcIqX": (PRO, MODE_SUBSCRIPTION, PENDING_ACTIVATION),  # legacy Pro price
}


@dataclass(frozen=True)
class PlanCatalogEntry:
    price_id: str
    plan_name: str
    transaction_mode: str
    pending_status: str

    def __post_init__(self):
        if self.plan_name not in PLAN_NAMES:
            raise ValueError(f"Unknown plan name: {self.plan_name}")
        if self.transaction_mode not in TRANSACTION_MODES:
            raise ValueError(f"Unknown transaction mode: {self.transaction_mode}")
        if self.pending_status not in PENDING_STATUSES:
            raise ValueError(f"Unknown pending status: {self.pending_status}")


@dataclass(frozen=True)
class DealOffer:
    """A plan sold by flag (or a fixed price id) instead of through the catalog."""
    plan_name: str
    transaction_mode: str
    pending_status: str
    price_id: Optional[str] = None
    # Flat one-time charge, used when the deal has no recurring price
    amount: Optional[int] = None
    currency: str = "usd"
    product_name: Optional[str] = None
    product_description: Optional[str] = None

    def line_item(self) -> Dict[str, Any]:
        if self.transaction_mode == MODE_PAYMENT:
            return {
                "price_data": {
                    "currency": self.currency,
                    "unit_amount": self.amount,
                    "product_data": {
                        "name": self.product_name or self.plan_name,
                        "description": self.product_description or "",
                    },
                },
                "quantity": 1,
            }
        return {"price": self.price_id, "quantity": 1}


@dataclass(frozen=True)
class PlanCatalog:
    """Read-only price table plus the two fixed deals."""
    entries: Mapping[str, PlanCatalogEntry]
    yearly_deal: DealOffer
    lifetime_deal: DealOffer

    def lookup(self, price_id: str) -> Optional[PlanCatalogEntry]:
        return self.entries.get(price_id)

    def deal_for_price(self, price_id: Optional[str]) -> Optional[DealOffer]:
        if not price_id:
            return None
        for deal in (self.yearly_deal, self.lifetime_deal):
            if deal.price_id and deal.price_id == price_id:
                return deal
        return None

    @property
    def price_ids(self) -> Tuple[str, ...]:
        return tuple(self.entries)


@dataclass(frozen=True)
class PlanDecision:
    """Canonical plan descriptor shared by the provider call and persistence."""
    plan_name: str
    transaction_mode: str
    line_item: Dict[str, Any]
    pending_status: str
    selected_plan: str
    user_id: str
    metadata: Dict[str, str] = field(default_factory=dict)

    @property
    def line_items(self) -> List[Dict[str, Any]]:
        return [dict(self.line_item)]


def build_catalog(
    entries: Optional[List[Dict[str, Any]]] = None,
    *,
    lifetime_amount: int = 9900,
    currency: str = "usd",
    lifetime_price_id: Optional[str] = None,
    yearly_price_id: str = YEARLY_DEAL_PRICE_ID,
) -> PlanCatalog:
    """
    Build a PlanCatalog.

    Args:
        entries: Catalog rows as dicts (price_id, plan_name, transaction_mode,
            pending_status). Defaults to DEFAULT_CATALOG.
        lifetime_amount: Lifetime deal charge in minor units
        currency: Currency for flat deal charges
        lifetime_price_id: Optional fixed price id that also selects the lifetime deal
        yearly_price_id: Fixed price id of the yearly deal

    Raises:
        ValueError: On duplicate price ids, unknown enum values, or a catalog
            row that collides with a deal price id.
    """
    if entries is None:
        rows = [
            PlanCatalogEntry(price_id, name, mode, status)
            for price_id, (name, mode, status) in DEFAULT_CATALOG.items()
        ]
    else:
        rows = []
        for row in entries:
            if not isinstance(row, dict):
                raise ValueError(f"Catalog row must be an object: {row!r}")
            try:
                rows.append(PlanCatalogEntry(**row))
            except TypeError as e:
                raise ValueError(f"Invalid catalog row {row!r}: {e}")

    table: Dict[str, PlanCatalogEntry] = {}
    for row in rows:
        if row.price_id in table:
            raise ValueError(f"Duplicate price id in catalog: {row.price_id}")
        if row.price_id in (yearly_price_id, lifetime_price_id):
            raise ValueError(f"Price id {row.price_id} is reserved for a deal")
        table[row.price_id] = row

    if lifetime_amount <= 0:
        raise ValueError("lifetime_amount must be positive")

    return PlanCatalog(
        entries=table,
        yearly_deal=DealOffer(
            plan_name=YEARLY_DEAL,
            transaction_mode=MODE_SUBSCRIPTION,
            pending_status=PENDING_ACTIVATION,
            price_id=yearly_price_id,
        ),
        lifetime_deal=DealOffer(
            plan_name=LIFETIME_DEAL,
            transaction_mode=MODE_PAYMENT,
            pending_status=PENDING_LIFETIME,
            price_id=lifetime_price_id,
            amount=lifetime_amount,
            currency=currency,
            product_name="Lifetime Deal",
            product_description="One-time payment for lifetime access",
        ),
    )


def catalog_from_settings(cfg) -> PlanCatalog:
    """Build the catalog from Settings (PLAN_CATALOG_JSON overrides the default table)."""
    entries = None
    if cfg.PLAN_CATALOG_JSON:
        try:
            entries = json.loads(cfg.PLAN_CATALOG_JSON)
        except json.JSONDecodeError as e:
            raise ValueError(f"PLAN_CATALOG_JSON is not valid JSON: {e}")
        if not isinstance(entries, list):
            raise ValueError("PLAN_CATALOG_JSON must be a JSON list")
    return build_catalog(
        entries,
        lifetime_amount=cfg.LIFETIME_DEAL_AMOUNT,
        currency=cfg.DEAL_CURRENCY,
        lifetime_price_id=cfg.LIFETIME_DEAL_PRICE_ID,
    )


def require_identity(request: CheckoutRequest) -> Tuple[str, str]:
    """Return (customer_email, user_id) or raise missing_field."""
    missing = [
        name
        for name, value in (("customerEmail", request.customer_email), ("userId", request.user_id))
        if not value
    ]
    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing)}",
            code="missing_field",
        )
    return request.customer_email, request.user_id


def _select_deal(request: CheckoutRequest, catalog: PlanCatalog) -> Optional[DealOffer]:
    selected = []
    if request.is_yearly_deal:
        selected.append(catalog.yearly_deal)
    if request.is_lifetime_deal:
        selected.append(catalog.lifetime_deal)
    by_price = catalog.deal_for_price(request.price_id)
    if by_price is not None and by_price not in selected:
        selected.append(by_price)

    if len(selected) > 1:
        raise ValidationError(
            "Conflicting deal selection: choose either the yearly or the lifetime deal",
            code="conflicting_deal_flags",
        )
    return selected[0] if selected else None


def resolve_plan(request: CheckoutRequest, catalog: PlanCatalog) -> PlanDecision:
    """
    Classify a checkout request into a PlanDecision.

    Precedence:
    1. Deal flags or a deal price id (caller planType is ignored)
    2. Catalog lookup by priceId
    3. Unknown priceId -> ValidationError(unknown_price_id); never a default plan

    Raises:
        ValidationError: missing_field, conflicting_deal_flags, unknown_price_id
    """
    _, user_id = require_identity(request)

    deal = _select_deal(request, catalog)
    if deal is not None:
        selected_plan = deal.price_id or LIFETIME_SENTINEL
        plan_name = deal.plan_name
        mode = deal.transaction_mode
        status = deal.pending_status
        line_item = deal.line_item()
    else:
        if not request.price_id:
            raise ValidationError("Missing required fields: priceId", code="missing_field")
        entry = catalog.lookup(request.price_id)
        if entry is None:
            raise ValidationError(f"Invalid price ID: {request.price_id}", code="unknown_price_id")
        selected_plan = entry.price_id
        plan_name = entry.plan_name
        mode = entry.transaction_mode
        status = entry.pending_status
        line_item = {"price": entry.price_id, "quantity": 1}

    if request.plan_type and request.plan_type != plan_name:
        logger.debug(
            "checkout.plan_type_ignored",
            extra={"user_id": user_id, "price_id": request.price_id, "plan_type": request.plan_type},
        )

    return PlanDecision(
        plan_name=plan_name,
        transaction_mode=mode,
        line_item=line_item,
        pending_status=status,
        selected_plan=selected_plan,
        user_id=user_id,
        metadata={"userId": user_id, "planType": plan_name, "priceId": selected_plan},
    )
