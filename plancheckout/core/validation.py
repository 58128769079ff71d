"""
Environment validation utilities.

Ensures the service fails fast on misconfiguration while
remaining bypassable for tests via SKIP_ENV_VALIDATION.
"""

import os
from typing import Optional, Iterable
from urllib.parse import urlparse

from plancheckout.core.config import settings


class EnvValidationError(RuntimeError):
    """Raised when environment validation fails."""


def _is_valid_url(url: str) -> bool:
    """Basic URL validation using urlparse."""
    parsed = urlparse(url)
    return bool(parsed.scheme and parsed.netloc)


def _require(vars_required: Iterable[str], source: object) -> None:
    for var in vars_required:
        if not getattr(source, var, None):
            raise EnvValidationError(f"{var} is required in production")


def validate_env(env: Optional[str] = None, settings_obj=None) -> bool:
    """Validate environment configuration.

    Args:
        env: Override environment name (defaults to settings.ENV)
        settings_obj: Override settings object (defaults to plancheckout.core.config.settings)

    Returns:
        True if validation passes.

    Raises:
        EnvValidationError when a rule is violated.
    """
    if os.getenv("SKIP_ENV_VALIDATION") == "1":
        return True

    cfg = settings_obj or settings
    mode = (env or getattr(cfg, "ENV", "development") or "development").lower()

    for key in ("DATABASE_URL", "PRIVILEGED_DATABASE_URL", "SUPABASE_URL", "URL"):
        value = getattr(cfg, key, None)
        if value and not _is_valid_url(value):
            raise EnvValidationError(f"{key} must be a valid URL")

    test_db_url = getattr(cfg, "TEST_DATABASE_URL", None)

    if mode == "production":
        _require(["STRIPE_SECRET_KEY", "URL"], cfg)
        if getattr(cfg, "SUPABASE_URL", None):
            _require(["SUPABASE_ANON_KEY"], cfg)
        elif not getattr(cfg, "DATABASE_URL", None):
            raise EnvValidationError("SUPABASE_URL or DATABASE_URL is required in production")
        if test_db_url:
            raise EnvValidationError("TEST_DATABASE_URL must not be set in production")
    else:
        # Prevent accidental use of test database outside test mode
        if mode != "test" and test_db_url:
            raise EnvValidationError("TEST_DATABASE_URL is only allowed in test mode")

    if getattr(cfg, "PERSIST_MAX_ATTEMPTS", 1) < 1:
        raise EnvValidationError("PERSIST_MAX_ATTEMPTS must be at least 1")

    return True
