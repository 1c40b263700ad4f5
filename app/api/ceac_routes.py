"""Route registration for CEAC jobs, progress and CAPTCHA endpoints."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable

from fastapi import FastAPI, Header
from pydantic import BaseModel, ConfigDict, Field

from app.api.contracts import (
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
from app.api.errors import ApiError, ApiErrorCode
from app.ceac.catalog import ceac_steps
from app.ceac.errors import InvalidStatusTransition
from app.ceac.field_resolver import flatten_form_data, missing_required
from app.ceac.models import ProgressStatus, ProgressUpdate
from app.ceac.worker import CEAC_JOB_TASK
from app.core.config import AppConfig
from app.storage.sqlite_store import (
    CeacStateStore,
    ChallengeNotFound,
    JobNotFound,
    StaleChallenge,
)


class CeacJobCreateRequest(BaseModel):
    """Payload for submitting one DS-160 application."""

    model_config = ConfigDict(extra="forbid")

    user_id: str = Field(min_length=1)
    embassy: str = Field(min_length=1, description="CEAC location code, e.g. ISL")
    form_data: dict[str, Any]


class CaptchaSolveRequest(BaseModel):
    """Human solution for the challenge currently shown."""

    model_config = ConfigDict(extra="forbid")

    challenge_id: str = Field(min_length=1)
    solution: str = Field(min_length=1, max_length=32)


@dataclass(frozen=True)
class CeacRouteDeps:
    """Dependencies required to mount CEAC routes."""

    config: AppConfig
    state_store: CeacStateStore
    task_queue: Any
    process_job_task: Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]
    on_shutdown: Callable[[], None]


def _safe(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _progress_response(update: ProgressUpdate) -> ProgressUpdateResponse:
    payload = asdict(update)
    payload["status"] = str(update.status)
    payload["update_id"] = update.update_id or 0
    return ProgressUpdateResponse(**payload)


def _error_screenshot(update: ProgressUpdate) -> ErrorScreenshot:
    metadata = update.metadata
    return ErrorScreenshot(
        update_id=update.update_id or 0,
        step_name=update.step_name,
        step_number=update.step_number,
        error_code=_safe(metadata.get("error_code")),
        message=update.message,
        errors=[str(error) for error in metadata.get("errors") or []],
        screenshot_url=str(metadata["screenshot_url"]),
        created_at=update.created_at,
    )


def _job_not_found(job_id: str) -> ApiError:
    return ApiError.not_found(
        ApiErrorCode.CEAC_JOB_NOT_FOUND,
        f"Job not found: {job_id}",
    )


def register_ceac_routes(app: FastAPI, *, deps: CeacRouteDeps) -> None:
    """Register health/job/progress/captcha endpoints and lifecycle hooks."""
    store = deps.state_store
    deps.task_queue.register_handler(CEAC_JOB_TASK, deps.process_job_task)

    @app.on_event("startup")
    async def startup_task_queue_worker() -> None:
        await deps.task_queue.start()

    @app.on_event("shutdown")
    async def shutdown_task_queue_worker() -> None:
        await deps.task_queue.stop()
        deps.task_queue.close()
        deps.on_shutdown()

    def require_job(job_id: str) -> dict[str, Any]:
        record = store.job_record(job_id)
        if record is None:
            raise _job_not_found(job_id)
        return record

    @app.get("/api/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(status="ok", workers=deps.task_queue.running_workers)

    @app.post(
        "/api/ceac/jobs",
        response_model=JobAcceptedResponse,
        status_code=202,
        responses={422: {"model": ApiErrorResponse}},
    )
    def create_job(
        req: CeacJobCreateRequest,
        idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    ) -> JobAcceptedResponse:
        form_data = flatten_form_data(req.form_data)
        missing = missing_required(ceac_steps(), form_data)
        key = _safe(idempotency_key)
        if key:
            existing_task = deps.task_queue.find_by_idempotency_key(key)
            if existing_task is not None:
                job_id = _safe(existing_task["payload"].get("job_id"))
                record = require_job(job_id)
                return JobAcceptedResponse(
                    job_id=job_id,
                    task_id=str(existing_task["task_id"]),
                    status=record["status"],
                    status_url=f"/api/ceac/jobs/{job_id}",
                    missing_required=missing,
                )

        job = store.create_job(
            user_id=req.user_id.strip(),
            embassy=req.embassy.strip(),
            form_data=form_data,
        )
        task_id = deps.task_queue.submit(
            task_type=CEAC_JOB_TASK,
            payload={"job_id": job.job_id},
            idempotency_key=key,
        )
        store.attach_task(job.job_id, task_id)
        return JobAcceptedResponse(
            job_id=job.job_id,
            task_id=task_id,
            status=str(job.status),
            status_url=f"/api/ceac/jobs/{job.job_id}",
            missing_required=missing,
        )

    @app.get(
        "/api/ceac/jobs/{job_id}",
        response_model=JobStatusResponse,
        responses={404: {"model": ApiErrorResponse}},
    )
    def get_job(job_id: str) -> JobStatusResponse:
        record = require_job(job_id)
        latest = store.latest(job_id)
        return JobStatusResponse(
            **record,
            latest_progress=_progress_response(latest) if latest else None,
        )

    @app.post(
        "/api/ceac/jobs/{job_id}/cancel",
        response_model=JobCancelResponse,
        responses={404: {"model": ApiErrorResponse}, 409: {"model": ApiErrorResponse}},
    )
    def cancel_job(job_id: str) -> JobCancelResponse:
        try:
            store.cancel_job(job_id)
        except JobNotFound as exc:
            raise _job_not_found(job_id) from exc
        except InvalidStatusTransition as exc:
            raise ApiError.conflict(
                ApiErrorCode.CEAC_JOB_NOT_CANCELLABLE,
                f"Only pending jobs can be cancelled (status: {exc.current}).",
            ) from exc
        return JobCancelResponse(job_id=job_id, status="cancelled")

    @app.get(
        "/api/ceac/jobs/{job_id}/application-data",
        response_model=ApplicationDataResponse,
        responses={404: {"model": ApiErrorResponse}},
    )
    def get_application_data(job_id: str) -> ApplicationDataResponse:
        require_job(job_id)
        application = store.application(job_id)
        if application is None:
            raise ApiError.not_found(
                ApiErrorCode.CEAC_APPLICATION_NOT_FOUND,
                f"No application id recorded yet for job {job_id}",
            )
        return ApplicationDataResponse(job_id=job_id, **application)

    @app.get(
        "/api/ceac/jobs/{job_id}/error-screenshots",
        response_model=ErrorScreenshotsResponse,
        responses={404: {"model": ApiErrorResponse}},
    )
    def get_error_screenshots(job_id: str) -> ErrorScreenshotsResponse:
        require_job(job_id)
        return ErrorScreenshotsResponse(
            job_id=job_id,
            screenshots=[
                _error_screenshot(update)
                for update in store.history(job_id)
                if str(update.status) == ProgressStatus.FAILED
                and update.metadata.get("screenshot_url")
            ],
        )

    @app.get(
        "/api/ceac/progress/{job_id}",
        response_model=ProgressHistoryResponse,
        responses={404: {"model": ApiErrorResponse}},
    )
    def get_progress(job_id: str) -> ProgressHistoryResponse:
        require_job(job_id)
        return ProgressHistoryResponse(
            job_id=job_id,
            updates=[_progress_response(update) for update in store.history(job_id)],
        )

    @app.get(
        "/api/ceac/captcha/{job_id}",
        response_model=CaptchaChallengeResponse,
        responses={404: {"model": ApiErrorResponse}},
    )
    def get_captcha(job_id: str) -> CaptchaChallengeResponse:
        require_job(job_id)
        challenge = store.unsolved_challenge(job_id)
        if challenge is None:
            raise ApiError.not_found(
                ApiErrorCode.CAPTCHA_NOT_FOUND,
                f"No CAPTCHA is waiting for job {job_id}",
            )
        return CaptchaChallengeResponse(
            job_id=job_id,
            challenge_id=challenge.challenge_id,
            image_url=challenge.image_url,
            created_at=challenge.created_at,
            expires_at=challenge.expires_at,
        )

    @app.post(
        "/api/ceac/captcha/{job_id}/solve",
        response_model=CaptchaSolveResponse,
        responses={
            404: {"model": ApiErrorResponse},
            409: {"model": ApiErrorResponse},
            422: {"model": ApiErrorResponse},
        },
    )
    def solve_captcha(job_id: str, req: CaptchaSolveRequest) -> CaptchaSolveResponse:
        require_job(job_id)
        try:
            challenge = store.solve_challenge(job_id, req.challenge_id, req.solution)
        except ChallengeNotFound as exc:
            raise ApiError.not_found(
                ApiErrorCode.CAPTCHA_NOT_FOUND,
                f"Challenge not found: {req.challenge_id}",
            ) from exc
        except StaleChallenge as exc:
            raise ApiError.conflict(
                ApiErrorCode.CAPTCHA_STALE,
                str(exc),
            ) from exc
        return CaptchaSolveResponse(
            job_id=job_id, challenge_id=challenge.challenge_id, status="solved"
        )

    @app.post(
        "/api/ceac/captcha/{job_id}/refresh",
        response_model=CaptchaRefreshResponse,
        status_code=202,
        responses={404: {"model": ApiErrorResponse}},
    )
    def refresh_captcha(job_id: str) -> CaptchaRefreshResponse:
        require_job(job_id)
        try:
            update = store.request_refresh(job_id)
        except ChallengeNotFound as exc:
            raise ApiError.not_found(
                ApiErrorCode.CAPTCHA_NOT_FOUND,
                f"No CAPTCHA is waiting for job {job_id}",
            ) from exc
        return CaptchaRefreshResponse(
            job_id=job_id,
            challenge_id=str(update.metadata.get("challenge_id") or ""),
            status="refresh_requested",
            update_id=update.update_id or 0,
        )

    @app.get(
        "/api/tasks/{task_id}",
        response_model=TaskStatusResponse,
        responses={404: {"model": ApiErrorResponse}},
    )
    def get_task_status(task_id: str) -> TaskStatusResponse:
        task_state = deps.task_queue.get(task_id)
        if not task_state:
            raise ApiError.not_found(
                ApiErrorCode.QUEUE_TASK_NOT_FOUND,
                f"Task not found: {task_id}",
            )
        return TaskStatusResponse(**task_state)
