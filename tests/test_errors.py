from __future__ import annotations

import pytest

from app.ceac.errors import (
    CaptchaTimeout,
    DriverTimeout,
    ElementNotFound,
    FaultScope,
    InvalidStatusTransition,
    PostbackAmbiguous,
    StoreUnavailable,
    ValidationRejected,
    classify_fault,
)


@pytest.mark.parametrize(
    ("exc", "scope"),
    [
        (ElementNotFound("#x"), FaultScope.FIELD_LOCAL),
        (DriverTimeout("slow"), FaultScope.FIELD_LOCAL),
        (PostbackAmbiguous("quiet"), FaultScope.ABSORBED),
        (CaptchaTimeout("late"), FaultScope.JOB_FATAL),
        (StoreUnavailable("gone"), FaultScope.JOB_FATAL),
        (RuntimeError("boom"), FaultScope.JOB_FATAL),
    ],
)
def test_classify_fault(exc: BaseException, scope: FaultScope) -> None:
    assert classify_fault(exc) == scope


def test_validation_rejected_message_lists_errors() -> None:
    exc = ValidationRejected(3, ["Surnames is required.", "Sex is required."])

    assert str(exc) == "Step 3 rejected: Surnames is required.; Sex is required."
    assert exc.error_code == "VALIDATION_REJECTED"


def test_validation_rejected_without_errors() -> None:
    assert str(ValidationRejected(5, [])) == "Step 5 rejected: page did not advance"


def test_invalid_transition_names_both_states() -> None:
    exc = InvalidStatusTransition("job-1", "completed", "running")

    assert "completed" in str(exc) and "running" in str(exc)
