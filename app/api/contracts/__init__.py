"""Public API response contracts."""

from app.api.contracts.models import (
    ApiErrorResponse,
    ApplicationDataResponse,
    CaptchaChallengeResponse,
    CaptchaRefreshResponse,
    CaptchaSolveResponse,
    ErrorScreenshot,
    ErrorScreenshotsResponse,
    HealthResponse,
    JobAcceptedResponse,
    JobCancelResponse,
    JobStatusResponse,
    ProgressHistoryResponse,
    ProgressUpdateResponse,
    TaskStatusResponse,
)

__all__ = [
    "ApiErrorResponse",
    "ApplicationDataResponse",
    "CaptchaChallengeResponse",
    "CaptchaRefreshResponse",
    "CaptchaSolveResponse",
    "ErrorScreenshot",
    "ErrorScreenshotsResponse",
    "HealthResponse",
    "JobAcceptedResponse",
    "JobCancelResponse",
    "JobStatusResponse",
    "ProgressHistoryResponse",
    "ProgressUpdateResponse",
    "TaskStatusResponse",
]
