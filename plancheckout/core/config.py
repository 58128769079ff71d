import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Optional

class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # Public site URL used for checkout redirects
    URL: str = "http://localhost:8888"
    CORS_ALLOW_ORIGIN: str = "*"

    # Stripe
    STRIPE_SECRET_KEY: Optional[str] = None

    # Supabase user store
    SUPABASE_URL: Optional[str] = None
    SUPABASE_ANON_KEY: Optional[str] = None
    SUPABASE_SERVICE_ROLE_KEY: Optional[str] = None  # bypasses row-level security
    STORE_TIMEOUT_SECONDS: float = 10.0

    # SQL user store (used when Supabase is not configured)
    DATABASE_URL: Optional[str] = None
    PRIVILEGED_DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL: Optional[str] = None

    # Plan catalog
    PLAN_CATALOG_JSON: Optional[str] = None  # [{"price_id": ..., "plan_name": ..., ...}]
    LIFETIME_DEAL_PRICE_ID: Optional[str] = None
    LIFETIME_DEAL_AMOUNT: int = 9900  # minor units
    DEAL_CURRENCY: str = "usd"

    # Pending-status persistence
    PERSIST_MAX_ATTEMPTS: int = 3
    PERSIST_BACKOFF_BASE_SECONDS: float = 0.5
    PERSIST_BACKOFF_MAX_SECONDS: float = 4.0

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )
settings = Settings()


def stripe_configured(settings_obj: Optional[Settings] = None) -> bool:
    cfg = settings_obj or settings
    return bool(cfg.STRIPE_SECRET_KEY)


def user_store_configured(settings_obj: Optional[Settings] = None) -> bool:
    cfg = settings_obj or settings
    supabase_ok = bool(cfg.SUPABASE_URL and (cfg.SUPABASE_ANON_KEY or cfg.SUPABASE_SERVICE_ROLE_KEY))
    return supabase_ok or bool(cfg.DATABASE_URL or cfg.TEST_DATABASE_URL)


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate required configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are not logged, only missing keys.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("plancheckout")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    missing = []
    if not getattr(cfg, "STRIPE_SECRET_KEY", None):
        missing.append("STRIPE_SECRET_KEY")
    if not user_store_configured(cfg):
        missing.append("SUPABASE_URL/SUPABASE_ANON_KEY or DATABASE_URL")
    elif getattr(cfg, "SUPABASE_URL", None) and not getattr(cfg, "SUPABASE_SERVICE_ROLE_KEY", None):
        log.warning("SUPABASE_SERVICE_ROLE_KEY not set; pending-plan writes go through the anon client")

    if missing:
        message = f"Missing required configuration: {', '.join(missing)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True
