"""Fault taxonomy of the automation engine and its scope classification."""

from __future__ import annotations

from enum import StrEnum


class CeacAutomationError(Exception):
    """Base class for engine faults."""

    error_code = "CEAC_AUTOMATION_ERROR"


class DriverTimeout(CeacAutomationError):
    """A bounded driver wait elapsed."""

    error_code = "DRIVER_TIMEOUT"


class ElementNotFound(CeacAutomationError):
    """A locator never became visible within its timeout."""

    error_code = "ELEMENT_NOT_FOUND"

    def __init__(self, locator: str, message: str = "") -> None:
        super().__init__(message or f"Element not found: {locator}")
        self.locator = locator


class NavigationTimeout(CeacAutomationError):
    """The page failed to load."""

    error_code = "NAVIGATION_TIMEOUT"


class PostbackAmbiguous(CeacAutomationError):
    """Network quiescence was not observed; never fatal."""

    error_code = "POSTBACK_AMBIGUOUS"


class ValidationRejected(CeacAutomationError):
    """The server rejected a step, or the page never left it."""

    error_code = "VALIDATION_REJECTED"

    def __init__(
        self,
        step_number: int,
        errors: list[str] | tuple[str, ...],
        *,
        diagnostics_captured: bool = False,
        screenshot_url: str = "",
    ) -> None:
        summary = "; ".join(errors) if errors else "page did not advance"
        super().__init__(f"Step {step_number} rejected: {summary}")
        self.step_number = step_number
        self.errors = list(errors)
        self.diagnostics_captured = diagnostics_captured
        self.screenshot_url = screenshot_url


class CaptchaTimeout(CeacAutomationError):
    """No accepted CAPTCHA solution within the resolution window."""

    error_code = "CAPTCHA_TIMEOUT"


class CaptchaRejectedRepeatedly(CeacAutomationError):
    """The site rejected more CAPTCHA solutions than the configured cap."""

    error_code = "CAPTCHA_REJECTED_REPEATEDLY"

    def __init__(self, rejections: int) -> None:
        super().__init__(f"CAPTCHA rejected {rejections} times")
        self.rejections = rejections


class StepFillFailed(CeacAutomationError):
    """Every field of a step failed to fill."""

    error_code = "STEP_FILL_FAILED"


class StoreUnavailable(CeacAutomationError):
    """A persistence collaborator could not serve the request."""

    error_code = "STORE_UNAVAILABLE"


class InvalidStatusTransition(CeacAutomationError):
    """Attempted to move a job backwards or out of a terminal state."""

    error_code = "INVALID_STATUS_TRANSITION"

    def __init__(self, job_id: str, current: str, target: str) -> None:
        super().__init__(f"Job {job_id}: cannot move from {current} to {target}")
        self.job_id = job_id
        self.current = current
        self.target = target


class FaultScope(StrEnum):
    """How far a fault is allowed to propagate."""

    FIELD_LOCAL = "field_local"
    ABSORBED = "absorbed"
    JOB_FATAL = "job_fatal"


_FIELD_LOCAL_FAULTS = (ElementNotFound, DriverTimeout)

# Faults that end the job with a typed failure instead of re-raising.
REPORTED_FATAL_FAULTS = (
    ValidationRejected,
    CaptchaTimeout,
    CaptchaRejectedRepeatedly,
    NavigationTimeout,
    StepFillFailed,
)


def classify_fault(exc: BaseException) -> FaultScope:
    """Map a fault to the scope it may affect.

    Misses and bounded waits on a single control stay local to that field,
    postback ambiguity is absorbed where it happens, and everything else
    (including unknown exceptions) is fatal for the job.
    """
    if isinstance(exc, PostbackAmbiguous):
        return FaultScope.ABSORBED
    if isinstance(exc, _FIELD_LOCAL_FAULTS):
        return FaultScope.FIELD_LOCAL
    return FaultScope.JOB_FATAL
