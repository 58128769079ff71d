"""
Checkout API routes.

Minimal surface:
- POST    /create-checkout-session: Create checkout session and record pending plan
- OPTIONS /create-checkout-session: CORS preflight

Mounted under /api and under /.netlify/functions so existing pricing pages
keep working unchanged.
"""
from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response
from starlette.concurrency import run_in_threadpool

from plancheckout.core.errors import BillingDisabledError, CORS_HEADERS
from plancheckout.features.checkout.service import (
    CheckoutService,
    billing_enabled,
    build_checkout_service,
)


router = APIRouter(tags=["checkout"])

ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


@lru_cache(maxsize=1)
def _default_service() -> CheckoutService:
    return build_checkout_service()


def close_checkout_service() -> None:
    """Close the cached service's store clients, if one was built."""
    if _default_service.cache_info().currsize:
        _default_service().close()
        _default_service.cache_clear()


def get_checkout_service() -> Optional[CheckoutService]:
    """Dependency: the process-wide CheckoutService, or None when billing is disabled."""
    if not billing_enabled():
        return None
    return _default_service()


@router.api_route("/create-checkout-session", methods=ALL_METHODS)
async def create_checkout_session(
    request: Request,
    service: Optional[CheckoutService] = Depends(get_checkout_service),
):
    """
    Create a checkout session for the requested plan.

    Body:
        {"customerEmail", "userId", "priceId"?, "planType"?,
         "isYearlyDeal"?, "isLifetimeDeal"?}

    Returns:
        {"id", "userId", "success": true, "plan_type", "mode"}

    Errors:
        400: Missing/invalid fields or unknown price id
        404: User not found
        405: Method other than POST/OPTIONS
        503: Billing disabled (Stripe or user store not configured)
        5xx: Payment provider error
    """
    if request.method == "OPTIONS":
        return Response(status_code=200, headers=CORS_HEADERS)

    if service is None:
        raise BillingDisabledError("Billing disabled: Stripe or the user store is not configured")

    body = await request.body()
    # Blocking store I/O and backoff sleeps
    result = await run_in_threadpool(service.handle, request.method, body)
    return JSONResponse(content=result.model_dump(by_alias=True), headers=CORS_HEADERS)
