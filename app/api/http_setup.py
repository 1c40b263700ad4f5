"""Middleware and exception handlers shared by the CEAC HTTP surface."""

from __future__ import annotations

import re
import uuid
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.api.contracts import ApiErrorResponse
from app.api.errors import ApiErrorCode, to_error_payload
from app.ceac.errors import StoreUnavailable
from app.core.config import AppConfig
from app.core.logging import set_correlation_id, set_job_context

SECURITY_HEADERS: dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'; base-uri 'none'",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
    "Cache-Control": "no-store",
}

_JOB_PATH = re.compile(r"/api/ceac/jobs/([^/]+)")


def _error_response(status_code: int, error_code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ApiErrorResponse(error_code=error_code, message=message).model_dump(),
    )


def _request_extra(request: Request, status_code: int) -> dict[str, Any]:
    return {
        "path": request.url.path,
        "method": request.method,
        "status_code": status_code,
    }


def _declared_length(request: Request) -> int:
    try:
        return int(request.headers.get("content-length") or 0)
    except ValueError:
        return 0


def register_http_middleware(app: FastAPI, *, config: AppConfig, logger: Any) -> None:
    """Attach body-size limiting, request correlation and response hardening."""
    max_bytes = config.security.request_max_bytes

    @app.middleware("http")
    async def request_size_limit_middleware(request: Request, call_next):
        # Form payloads are small; anything larger is refused before parsing.
        if _declared_length(request) > max_bytes:
            return _error_response(
                413,
                ApiErrorCode.REQUEST_TOO_LARGE,
                f"Request size exceeds configured limit ({max_bytes} bytes).",
            )
        return await call_next(request)

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        correlation_id = (
            request.headers.get("x-request-id")
            or request.headers.get("x-correlation-id")
            or uuid.uuid4().hex
        )
        set_correlation_id(correlation_id)
        job_match = _JOB_PATH.match(request.url.path)
        set_job_context(job_match.group(1) if job_match else "")

        response = await call_next(request)
        response.headers["X-Request-ID"] = correlation_id
        response.headers.update(SECURITY_HEADERS)
        logger.info(
            "request_completed",
            extra=_request_extra(request, response.status_code),
        )
        return response


def register_exception_handlers(app: FastAPI, *, logger: Any) -> None:
    """Map exceptions onto the ``ApiErrorResponse`` envelope."""

    @app.exception_handler(HTTPException)
    async def handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:
        payload = to_error_payload(exc.detail, exc.status_code)
        logger.warning(
            "http_exception %s",
            payload["error_code"],
            extra=_request_extra(request, exc.status_code),
        )
        return _error_response(exc.status_code, payload["error_code"], payload["message"])

    @app.exception_handler(RequestValidationError)
    async def handle_validation_exception(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        logger.warning("validation_exception", extra=_request_extra(request, 422))
        return _error_response(422, ApiErrorCode.VALIDATION_ERROR, str(exc))

    @app.exception_handler(StoreUnavailable)
    async def handle_store_unavailable(
        request: Request,
        exc: StoreUnavailable,
    ) -> JSONResponse:
        # Driver messages can carry file paths; clients only get a generic text.
        logger.error("store_unavailable: %s", exc, extra=_request_extra(request, 503))
        return _error_response(
            503,
            ApiErrorCode.STORE_UNAVAILABLE,
            "State store is temporarily unavailable.",
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_exception(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unexpected_exception", extra=_request_extra(request, 500))
        return _error_response(
            500,
            ApiErrorCode.INTERNAL_SERVER_ERROR,
            str(exc) or "Internal server error",
        )
