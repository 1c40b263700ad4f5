from __future__ import annotations

import asyncio
import inspect
import json
import logging
from dataclasses import replace
from typing import Any

import pytest
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from starlette.requests import Request
from starlette.responses import Response

from app.api.errors import ApiError, ApiErrorCode
from app.api.http_setup import (
    SECURITY_HEADERS,
    register_exception_handlers,
    register_http_middleware,
)
from app.ceac.errors import StoreUnavailable
from app.core.config import AppConfig, SecurityConfig
from app.core.logging import JOB_ID_CTX

LOGGER = logging.getLogger(__name__)


def _app(request_max_bytes: int = 8) -> FastAPI:
    config = replace(
        AppConfig.from_env(),
        security=SecurityConfig(
            cors_allowed_origins=["http://localhost:3000"],
            request_max_bytes=request_max_bytes,
        ),
    )
    app = FastAPI()
    register_http_middleware(app, config=config, logger=LOGGER)
    register_exception_handlers(app, logger=LOGGER)
    return app


def _request(path: str, method: str = "GET", **headers: str) -> Request:
    scope: dict[str, Any] = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "path": path,
        "raw_path": path.encode("utf-8"),
        "query_string": b"",
        "root_path": "",
        "headers": [
            (name.replace("_", "-").encode("latin-1"), value.encode("latin-1"))
            for name, value in headers.items()
        ],
        "client": ("127.0.0.1", 1234),
        "server": ("testserver", 80),
    }

    async def receive() -> dict[str, Any]:
        return {"type": "http.request", "body": b"", "more_body": False}

    return Request(scope, receive)


def _middleware(app: FastAPI, name: str):
    for middleware in app.user_middleware:
        dispatch = middleware.kwargs.get("dispatch")
        if callable(dispatch) and getattr(dispatch, "__name__", "") == name:
            return dispatch
    raise AssertionError(f"Dispatch {name!r} not found")


async def _ok(_request: Request) -> Response:
    return Response(content="ok", status_code=200)


def _handle(
    app: FastAPI, exc_type: type[Exception], exc: Exception, path: str = "/"
) -> tuple[int, dict[str, Any]]:
    result = app.exception_handlers[exc_type](_request(path), exc)
    response = asyncio.run(result) if inspect.iscoroutine(result) else result
    return response.status_code, json.loads(response.body)


def test_responses_carry_request_id_and_security_headers() -> None:
    dispatch = _middleware(_app(), "request_logging_middleware")

    response = asyncio.run(dispatch(_request("/api/health", x_request_id="req-123"), _ok))

    assert response.headers["X-Request-ID"] == "req-123"
    for name, value in SECURITY_HEADERS.items():
        assert response.headers[name] == value


def test_job_routes_tag_log_context_with_job_id() -> None:
    dispatch = _middleware(_app(), "request_logging_middleware")
    seen: list[str] = []

    async def capture(_request: Request) -> Response:
        seen.append(JOB_ID_CTX.get())
        return Response(status_code=200)

    asyncio.run(dispatch(_request("/api/ceac/jobs/job-42/cancel", "POST"), capture))
    asyncio.run(dispatch(_request("/api/health"), capture))

    assert seen == ["job-42", ""]


@pytest.mark.parametrize(
    ("content_length", "expected_status"),
    [("20", 413), ("8", 200), ("not-a-number", 200)],
)
def test_size_limit_checks_declared_length(content_length: str, expected_status: int) -> None:
    dispatch = _middleware(_app(request_max_bytes=8), "request_size_limit_middleware")
    request = _request("/api/ceac/jobs", "POST", content_length=content_length)

    response = asyncio.run(dispatch(request, _ok))

    assert response.status_code == expected_status


def test_api_errors_keep_their_envelope() -> None:
    status, body = _handle(
        _app(),
        HTTPException,
        ApiError.not_found(ApiErrorCode.CEAC_JOB_NOT_FOUND, "Job not found: job-1"),
    )

    assert status == 404
    assert body == {"error_code": "CEAC_JOB_NOT_FOUND", "message": "Job not found: job-1"}


def test_request_validation_maps_to_422() -> None:
    status, body = _handle(_app(), RequestValidationError, RequestValidationError([]))

    assert status == 422
    assert body["error_code"] == "VALIDATION_ERROR"


def test_store_outage_maps_to_503_without_driver_text() -> None:
    status, body = _handle(
        _app(),
        StoreUnavailable,
        StoreUnavailable("SQLite error: database is locked"),
        path="/api/ceac/jobs/job-1",
    )

    assert status == 503
    assert body["error_code"] == "STORE_UNAVAILABLE"
    assert "database is locked" not in body["message"]


def test_unexpected_exceptions_map_to_500() -> None:
    status, body = _handle(_app(), Exception, RuntimeError("boom"))

    assert status == 500
    assert body == {"error_code": "INTERNAL_SERVER_ERROR", "message": "boom"}
