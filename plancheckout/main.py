import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from dotenv import load_dotenv

# Load env from the working directory .env (skipped under pytest)
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv()

from plancheckout.core.config import settings, validate_config
from plancheckout.core.logging import configure_logging
from plancheckout.core.middleware.request_id import RequestIdMiddleware
from plancheckout.core.validation import validate_env
from plancheckout.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    unhandled_exception_handler,
)
from plancheckout.core.database import dispose_engines
from plancheckout.api import checkout, health

configure_logging(settings.ENV)
validate_env()
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("plancheckout")
    logger.info("Starting plancheckout...")
    try:
        yield
    finally:
        checkout.close_checkout_service()
        dispose_engines()
        logging.getLogger("plancheckout").info("Stopping plancheckout...")


app = FastAPI(title="plancheckout", lifespan=lifespan)

# Middlewares
app.add_middleware(RequestIdMiddleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(HTTPException, http_error_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.include_router(checkout.router, prefix="/api")
app.include_router(checkout.router, prefix="/.netlify/functions")
app.include_router(health.root_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("plancheckout.main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
