from __future__ import annotations

from fastapi.routing import APIRoute

from web_api import app


def _schema_ref(operation: dict, status: str) -> str:
    return operation["responses"][status]["content"]["application/json"]["schema"]["$ref"]


def test_health_endpoint_contract_function() -> None:
    route = next(
        (
            candidate
            for candidate in app.routes
            if isinstance(candidate, APIRoute) and candidate.path == "/api/health"
        ),
        None,
    )

    assert route is not None
    payload = route.endpoint()
    assert payload.model_dump() == {"status": "ok", "workers": 0}


def test_openapi_contains_job_contracts() -> None:
    schema = app.openapi()

    create = schema["paths"]["/api/ceac/jobs"]["post"]
    assert _schema_ref(create, "202").endswith("JobAcceptedResponse")
    assert _schema_ref(create, "422").endswith("ApiErrorResponse")

    status = schema["paths"]["/api/ceac/jobs/{job_id}"]["get"]
    assert _schema_ref(status, "200").endswith("JobStatusResponse")
    assert _schema_ref(status, "404").endswith("ApiErrorResponse")

    cancel = schema["paths"]["/api/ceac/jobs/{job_id}/cancel"]["post"]
    assert _schema_ref(cancel, "409").endswith("ApiErrorResponse")

    progress = schema["paths"]["/api/ceac/progress/{job_id}"]["get"]
    assert _schema_ref(progress, "200").endswith("ProgressHistoryResponse")

    application = schema["paths"]["/api/ceac/jobs/{job_id}/application-data"]["get"]
    assert _schema_ref(application, "200").endswith("ApplicationDataResponse")
    assert _schema_ref(application, "404").endswith("ApiErrorResponse")

    screenshots = schema["paths"]["/api/ceac/jobs/{job_id}/error-screenshots"]["get"]
    assert _schema_ref(screenshots, "200").endswith("ErrorScreenshotsResponse")


def test_openapi_contains_captcha_contracts() -> None:
    schema = app.openapi()

    captcha = schema["paths"]["/api/ceac/captcha/{job_id}"]["get"]
    assert _schema_ref(captcha, "200").endswith("CaptchaChallengeResponse")

    solve = schema["paths"]["/api/ceac/captcha/{job_id}/solve"]["post"]
    assert _schema_ref(solve, "200").endswith("CaptchaSolveResponse")
    assert _schema_ref(solve, "409").endswith("ApiErrorResponse")

    refresh = schema["paths"]["/api/ceac/captcha/{job_id}/refresh"]["post"]
    assert _schema_ref(refresh, "202").endswith("CaptchaRefreshResponse")


def test_openapi_contains_error_contract_for_tasks_not_found() -> None:
    schema = app.openapi()
    task_status = schema["paths"]["/api/tasks/{task_id}"]["get"]

    assert _schema_ref(task_status, "200").endswith("TaskStatusResponse")
    assert _schema_ref(task_status, "404").endswith("ApiErrorResponse")
