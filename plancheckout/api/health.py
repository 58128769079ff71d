"""
Health endpoints.

Lightweight probes that never expose secrets: only whether each
collaborator is configured.
"""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from plancheckout.core.config import settings, stripe_configured, user_store_configured

logger = logging.getLogger("plancheckout")

root_router = APIRouter(tags=["health"])


@root_router.get("/healthz")
def healthz():
    """Lightweight liveness check (no deps)."""
    return {"status": "ok"}


@root_router.get("/readyz")
def readyz():
    """Readiness check: payment provider and user store configured."""
    checks = {
        "stripe": stripe_configured(settings),
        "user_store": user_store_configured(settings),
    }
    if not all(checks.values()):
        missing = [name for name, ok in checks.items() if not ok]
        logger.warning(f"[readyz] not configured: {', '.join(missing)}")
        return JSONResponse(status_code=503, content={"status": "error", "checks": checks})
    return {"status": "ok", "checks": checks}
