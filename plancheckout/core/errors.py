"""Error normalization and handlers."""

import logging
from typing import Optional
from uuid import uuid4

from fastapi import HTTPException
from fastapi.responses import JSONResponse
from starlette.requests import Request

from plancheckout.core.config import settings
from plancheckout.core.logging import get_request_id


class AppError(Exception):
    code = "app_error"
    status_code = 500

    def __init__(self, message: str, *, code: Optional[str] = None, status_code: Optional[int] = None, request_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.request_id = request_id


class ValidationError(AppError, ValueError):
    code = "validation_error"
    status_code = 400


class NotFoundError(AppError, ValueError):
    code = "not_found"
    status_code = 404


class MethodNotAllowedError(AppError):
    code = "method_not_allowed"
    status_code = 405


class BillingDisabledError(AppError):
    code = "billing_disabled"
    status_code = 503


# CORS headers attached to every checkout response, including errors
CORS_HEADERS = {
    "Access-Control-Allow-Origin": settings.CORS_ALLOW_ORIGIN,
    "Access-Control-Allow-Headers": "Content-Type",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
}


def _extract_request_id(request: Request, fallback: Optional[str] = None) -> str:
    return (
        getattr(request.state, "request_id", None)
        or get_request_id()
        or fallback
        or str(uuid4())
    )


def _error_payload(code: str, message: str, request_id: str, details: Optional[str] = None) -> dict:
    payload = {"error": message, "code": code, "request_id": request_id}
    if details is not None:
        payload["details"] = details
    return payload


def _details_for(exc: Exception, status_code: int) -> Optional[str]:
    if status_code >= 500 and settings.ENV.lower() == "development":
        return repr(exc)
    return None


def _respond(status_code: int, payload: dict, rid: str) -> JSONResponse:
    response = JSONResponse(status_code=status_code, content=payload)
    response.headers["x-request-id"] = rid
    response.headers.update(CORS_HEADERS)
    return response


async def app_error_handler(request: Request, exc: AppError):
    rid = exc.request_id or _extract_request_id(request)
    payload = _error_payload(exc.code, exc.message, rid, _details_for(exc, exc.status_code))
    logger = logging.getLogger("plancheckout")
    log_level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        log_level,
        "app.error",
        extra={"request_id": rid, "error_code": exc.code, "error_message": exc.message, "status": exc.status_code},
    )
    return _respond(exc.status_code, payload, rid)


async def http_error_handler(request: Request, exc: HTTPException):
    rid = _extract_request_id(request)
    code = "not_found" if exc.status_code == 404 else "http_error"
    message = exc.detail if exc.detail else "HTTP error"
    payload = _error_payload(code, message, rid)
    logger = logging.getLogger("plancheckout")
    logger.warning("http.error", extra={"request_id": rid, "error_code": code, "status": exc.status_code})
    return _respond(exc.status_code, payload, rid)


async def unhandled_exception_handler(request: Request, exc: Exception):
    rid = _extract_request_id(request)
    logger = logging.getLogger("plancheckout")
    logger.error("unhandled.exception", exc_info=True, extra={"request_id": rid, "error_code": "internal_error"})
    payload = _error_payload("internal_error", "Unexpected error", rid, _details_for(exc, 500))
    return _respond(500, payload, rid)
