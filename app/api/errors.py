"""Error codes and the exception carrying the API error envelope."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from fastapi import HTTPException


class ApiErrorCode(StrEnum):
    """Machine-readable API error codes."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    CEAC_JOB_NOT_FOUND = "CEAC_JOB_NOT_FOUND"
    CEAC_JOB_NOT_CANCELLABLE = "CEAC_JOB_NOT_CANCELLABLE"
    CEAC_APPLICATION_NOT_FOUND = "CEAC_APPLICATION_NOT_FOUND"
    CAPTCHA_NOT_FOUND = "CAPTCHA_NOT_FOUND"
    CAPTCHA_STALE = "CAPTCHA_STALE"
    QUEUE_TASK_NOT_FOUND = "QUEUE_TASK_NOT_FOUND"
    REQUEST_TOO_LARGE = "REQUEST_TOO_LARGE"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


class ApiError(HTTPException):
    """``HTTPException`` whose detail is always ``{error_code, message}``."""

    def __init__(
        self, *, status_code: int, error_code: ApiErrorCode, message: str
    ) -> None:
        super().__init__(
            status_code=status_code,
            detail={"error_code": str(error_code), "message": message},
        )

    @classmethod
    def not_found(cls, error_code: ApiErrorCode, message: str) -> "ApiError":
        return cls(status_code=404, error_code=error_code, message=message)

    @classmethod
    def conflict(cls, error_code: ApiErrorCode, message: str) -> "ApiError":
        return cls(status_code=409, error_code=error_code, message=message)


def to_error_payload(detail: Any, status_code: int) -> dict[str, str]:
    """Envelope for any ``HTTPException`` detail, including plain strings."""
    fallback_code = f"HTTP_{status_code}"
    if not isinstance(detail, dict):
        return {"error_code": fallback_code, "message": str(detail or "HTTP error")}
    return {
        "error_code": str(detail.get("error_code") or fallback_code),
        "message": str(detail.get("message") or detail.get("detail") or "HTTP error"),
    }
