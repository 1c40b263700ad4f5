"""Pydantic API response models used in OpenAPI contracts."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field


class ApiErrorResponse(BaseModel):
    """Stable error envelope for API responses."""

    error_code: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error message")


class HealthResponse(BaseModel):
    """Health check response payload."""

    status: Literal["ok"]
    workers: int = 0


class TaskStatusResponse(BaseModel):
    """Response payload for async task status endpoint."""

    task_id: str
    task_type: str
    status: str
    attempts: int
    max_retries: int
    created_at: int
    updated_at: int
    expires_at: int
    result: dict[str, Any] | None = None
    error: str = ""
    dead_letter_reason: str = ""


class JobAcceptedResponse(BaseModel):
    """Response payload for an accepted CEAC job."""

    job_id: str
    task_id: str
    status: str
    status_url: str
    missing_required: list[str] = Field(
        default_factory=list,
        description="Required form keys with no value; the job still runs.",
    )


class ProgressUpdateResponse(BaseModel):
    """One entry of the append-only progress log."""

    update_id: int
    job_id: str
    step_name: str
    step_number: int | None = None
    status: str
    message: str
    percentage: int
    captcha_image: str | None = None
    needs_captcha: bool = False
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: int


class JobStatusResponse(BaseModel):
    """Job state with its latest progress update."""

    job_id: str
    user_id: str
    embassy: str
    status: str
    failure_reason: str = ""
    result: dict[str, Any] | None = None
    task_id: str = ""
    created_at: int
    updated_at: int
    application_id: str = ""
    application_date: str = ""
    latest_progress: ProgressUpdateResponse | None = None


class JobCancelResponse(BaseModel):
    job_id: str
    status: Literal["cancelled"]


class ProgressHistoryResponse(BaseModel):
    job_id: str
    updates: list[ProgressUpdateResponse]


class CaptchaChallengeResponse(BaseModel):
    """Open CAPTCHA challenge waiting for a human solution."""

    job_id: str
    challenge_id: str
    image_url: str
    created_at: int
    expires_at: int


class CaptchaSolveResponse(BaseModel):
    job_id: str
    challenge_id: str
    status: Literal["solved"]


class CaptchaRefreshResponse(BaseModel):
    job_id: str
    challenge_id: str
    status: Literal["refresh_requested"]
    update_id: int


class ApplicationDataResponse(BaseModel):
    """What an applicant needs to resume the application on CEAC."""

    job_id: str
    application_id: str
    application_date: str = ""
    security_answer: str = Field(
        description="Answer to the CEAC security question set during the run",
    )


class ErrorScreenshot(BaseModel):
    update_id: int
    step_name: str
    step_number: int | None = None
    error_code: str = ""
    message: str
    errors: list[str] = Field(default_factory=list)
    screenshot_url: str
    created_at: int


class ErrorScreenshotsResponse(BaseModel):
    job_id: str
    screenshots: list[ErrorScreenshot]
